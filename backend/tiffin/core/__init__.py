"""Core module for configuration and utilities."""

from tiffin.core.config import settings
from tiffin.core.database import Base, get_session

__all__ = [
    "settings",
    "Base",
    "get_session",
]
