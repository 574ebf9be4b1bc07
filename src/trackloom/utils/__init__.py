"""Utility modules for trackloom."""

from trackloom.utils.config import get_setting, resolve_setting, set_setting
from trackloom.utils.json import DateTimeEncoder

__all__ = [
    "DateTimeEncoder",
    "get_setting",
    "resolve_setting",
    "set_setting",
]
