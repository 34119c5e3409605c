"""
Core: settings, database sessions, logging and the exception hierarchy
"""

from app.core.config import settings
from app.core.exceptions import PCShopException
from app.core.logging import get_logger

__all__ = ["PCShopException", "get_logger", "settings"]
