"""
Core module containing configuration, network profiles and database setup.
"""

from sentinel.core.config import Settings, get_settings, settings

__all__ = ["Settings", "get_settings", "settings"]
