"""
Configuration management for the Clinic Back-Office application.

This module handles:
- Database location and connection settings (SQLite or PostgreSQL)
- Environment-specific configuration (development vs. production)
- Stock ledger behaviour (optimistic locking, retry budget)

All values come from environment variables. Invalid numeric values fall
back to their defaults with a logged warning.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from .constants import (
    APP_NAME,
    APP_VERSION,
    DATABASE_FILENAME,
    DEFAULT_LOW_STOCK_LIMIT,
)

logger = logging.getLogger(__name__)

_TRUE_VALUES = ("1", "true", "yes", "on")
_VALID_DB_TYPES = ("sqlite", "postgresql")


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    """Read an integer environment variable, falling back to default on bad input."""
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Invalid {name} value '{raw}', using default {default}")
        return default
    if value < minimum:
        logger.warning(f"Invalid {name} value '{raw}' (minimum {minimum}), using default {default}")
        return default
    return value


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE_VALUES


class Config:
    """
    Application configuration manager.

    Handles database settings, environment mode and the stock ledger's
    concurrency options.
    """

    def __init__(self, environment: str = "production"):
        """
        Initialize configuration.

        Args:
            environment: Environment mode - 'production' or 'development'
        """
        self.environment = environment
        self._app_name = APP_NAME
        self._app_version = APP_VERSION

        if environment == "development":
            self._database_dir = self._get_project_data_dir()
        else:
            self._database_dir = Path(
                os.environ.get("CLINIC_DATA_DIR", str(Path.home() / ".clinic_backoffice"))
            )
        self._database_path = self._database_dir / DATABASE_FILENAME

        self._database_type = self._read_database_type()
        self._db_timeout = _env_int("CLINIC_DB_TIMEOUT", 30, minimum=1)
        self._db_pool_size = _env_int("CLINIC_DB_POOL_SIZE", 5, minimum=1)
        self._db_pool_recycle = _env_int("CLINIC_DB_POOL_RECYCLE", 3600, minimum=1)

        self._optimistic_locking = _env_bool("CLINIC_OPTIMISTIC_LOCKING", False)
        self._consume_max_retries = _env_int("CLINIC_CONSUME_MAX_RETRIES", 3, minimum=1)
        self._low_stock_limit = _env_int("CLINIC_LOW_STOCK_LIMIT", DEFAULT_LOW_STOCK_LIMIT, minimum=1)

        self._api_host = os.environ.get("CLINIC_API_HOST", "127.0.0.1")
        self._api_port = _env_int("CLINIC_API_PORT", 8000, minimum=1)

    def _get_project_data_dir(self) -> Path:
        """
        Get the project's data directory for development.

        Returns:
            Path to project data/ directory
        """
        project_root = Path(__file__).parent.parent.parent
        return project_root / "data"

    def _read_database_type(self) -> str:
        raw = os.environ.get("CLINIC_DB_TYPE", "sqlite").strip().lower()
        if raw not in _VALID_DB_TYPES:
            logger.warning(f"Invalid CLINIC_DB_TYPE '{raw}', using sqlite")
            return "sqlite"
        return raw

    def ensure_directories(self) -> None:
        """Create the SQLite data directory if it doesn't exist."""
        if self._database_type == "sqlite":
            self._database_dir.mkdir(parents=True, exist_ok=True)

    @property
    def app_name(self) -> str:
        """Application name."""
        return self._app_name

    @property
    def app_version(self) -> str:
        """Application version."""
        return self._app_version

    @property
    def database_type(self) -> str:
        """Either 'sqlite' or 'postgresql'."""
        return self._database_type

    @property
    def database_path(self) -> Path:
        """Full path to the SQLite database file."""
        return self._database_path

    @property
    def database_url(self) -> str:
        """
        SQLAlchemy database URL.

        Returns:
            Database URL string for SQLAlchemy

        Raises:
            ValueError: If PostgreSQL is selected without DATABASE_URL
        """
        if self._database_type == "postgresql":
            url = os.environ.get("DATABASE_URL")
            if not url:
                raise ValueError("DATABASE_URL environment variable required for postgresql")
            return url
        db_path_str = str(self._database_path).replace("\\", "/")
        return f"sqlite:///{db_path_str}"

    @property
    def db_timeout(self) -> int:
        """Seconds to wait for a locked database / pooled connection."""
        return self._db_timeout

    @property
    def db_pool_size(self) -> int:
        return self._db_pool_size

    @property
    def db_pool_recycle(self) -> int:
        return self._db_pool_recycle

    @property
    def db_connect_args(self) -> dict:
        """Driver-level connect arguments for create_engine()."""
        if self._database_type == "sqlite":
            return {"check_same_thread": False, "timeout": self._db_timeout}
        return {}

    @property
    def optimistic_locking(self) -> bool:
        """Use compare-and-swap writes when consuming stock."""
        return self._optimistic_locking

    @property
    def consume_max_retries(self) -> int:
        """Attempts allowed for a consumption batch that hits a stock conflict."""
        return self._consume_max_retries

    @property
    def low_stock_limit(self) -> int:
        """Default number of low-stock alerts returned."""
        return self._low_stock_limit

    @property
    def api_host(self) -> str:
        return self._api_host

    @property
    def api_port(self) -> int:
        return self._api_port

    def database_exists(self) -> bool:
        """
        Check if the SQLite database file exists.

        Always True for PostgreSQL, whose existence is the server's concern.
        """
        if self._database_type == "postgresql":
            return True
        return self._database_path.exists()

    def __repr__(self) -> str:
        """String representation of config."""
        return (
            f"Config(environment='{self.environment}', "
            f"database_type='{self._database_type}', "
            f"database_path='{self._database_path}')"
        )


# Global configuration instance
_config_instance: Optional[Config] = None


def get_config(environment: Optional[str] = None) -> Config:
    """
    Get the global configuration instance.

    Once created, the singleton's environment cannot be changed by passing
    a different environment argument - this prevents switching databases
    mid-session.

    Args:
        environment: Optional environment for initial creation. If None, uses
                    CLINIC_ENV or defaults to production. Ignored if the
                    singleton already exists.

    Returns:
        Config instance
    """
    global _config_instance

    if _config_instance is None:
        if environment is None:
            environment = os.environ.get("CLINIC_ENV", "production")
        _config_instance = Config(environment)
    elif environment is not None and environment != _config_instance.environment:
        logger.warning(
            f"get_config() called with environment='{environment}' but singleton "
            f"already exists with environment='{_config_instance.environment}'. "
            f"Returning existing singleton to prevent database switching."
        )

    return _config_instance


def reset_config():
    """
    Reset the global configuration instance.

    Useful for testing.
    """
    global _config_instance
    _config_instance = None

