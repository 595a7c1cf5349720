"""
API routes package.

This package contains all FastAPI route modules organized by domain.
"""

from . import check_price, metrics, sentinels, wallet

__all__ = ["check_price", "metrics", "sentinels", "wallet"]
