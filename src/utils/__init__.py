"""Utilities package for the clinic back-office application."""

from .config import Config, get_config, reset_config
from .datetime_utils import utc_now, to_iso

__all__ = [
    "Config",
    "get_config",
    "reset_config",
    "utc_now",
    "to_iso",
]
