"""
Database models package.

This package contains SQLAlchemy ORM models for the Sentinel application.
"""

from sentinel.core.database import Base
from sentinel.models.sentinels import Activity, Sentinel

__all__ = [
    "Base",
    "Sentinel",
    "Activity",
]
