"""
Configuration management for the Belt Tracker application.

This module handles:
- Database path configuration
- Environment-specific configuration (development vs. production)
- Compound ledger tuning (batch generation, retry and search bounds)
"""

import os
from dataclasses import dataclass, field, replace
from datetime import date
from pathlib import Path
from typing import FrozenSet, Optional

from .constants import (
    APP_NAME,
    APP_VERSION,
    DATABASE_FILENAME,
    DATABASE_VERSION,
    DEFAULT_BATCH_COUNT_MAX,
    DEFAULT_BATCH_COUNT_MIN,
    DEFAULT_MAX_BATCHES_PER_CONSUME,
    DEFAULT_MAX_CONFLICT_RETRIES,
    DEFAULT_MAX_FREE_DATE_SEARCH_DAYS,
    DEFAULT_MAX_PRODUCTION_DATE_SEARCH_DAYS,
    DEFAULT_RETRY_BACKOFF_SECONDS,
    HOLIDAYS,
)


def _default_holidays() -> FrozenSet[date]:
    return frozenset(date.fromisoformat(value) for value in HOLIDAYS)


@dataclass(frozen=True)
class LedgerSettings:
    """Tuning knobs for the compound batch ledger.

    Attributes:
        batch_count_min: Lower bound for the batch count of an auto-created batch
        batch_count_max: Upper bound (inclusive) for the same
        max_batches_per_consume: Auto-created batches allowed in one consume call
        max_conflict_retries: Conditional-update attempts before giving up
        retry_backoff_seconds: Base delay; attempt N sleeps N * base
        max_free_date_search_days: Days scanned for a globally free batch date
        max_production_date_search_days: Days scanned when separating cover/skim dates
        holidays: Non-working calendar days besides Sundays
    """

    batch_count_min: int = DEFAULT_BATCH_COUNT_MIN
    batch_count_max: int = DEFAULT_BATCH_COUNT_MAX
    max_batches_per_consume: int = DEFAULT_MAX_BATCHES_PER_CONSUME
    max_conflict_retries: int = DEFAULT_MAX_CONFLICT_RETRIES
    retry_backoff_seconds: float = DEFAULT_RETRY_BACKOFF_SECONDS
    max_free_date_search_days: int = DEFAULT_MAX_FREE_DATE_SEARCH_DAYS
    max_production_date_search_days: int = DEFAULT_MAX_PRODUCTION_DATE_SEARCH_DAYS
    holidays: FrozenSet[date] = field(default_factory=_default_holidays)

    def __post_init__(self) -> None:
        if self.batch_count_min < 1 or self.batch_count_max < self.batch_count_min:
            raise ValueError(
                f"Invalid batch count range: {self.batch_count_min}..{self.batch_count_max}"
            )
        if self.max_conflict_retries < 1:
            raise ValueError("max_conflict_retries must be >= 1")
        if self.retry_backoff_seconds < 0:
            raise ValueError("retry_backoff_seconds must be >= 0")


class Config:
    """
    Application configuration manager.

    Handles database location, environment settings and ledger tuning.
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
        self._database_version = DATABASE_VERSION
        self._ledger = LedgerSettings()

        if environment == "development":
            self._base_dir = self._get_project_data_dir()
        else:
            self._base_dir = self._get_user_data_dir()

        self._database_dir = self._base_dir
        self._database_path = self._database_dir / DATABASE_FILENAME
        self._database_url_override = os.environ.get("BELT_TRACKER_DATABASE_URL")

    def _get_project_data_dir(self) -> Path:
        """
        Get the project's data directory for development.

        Returns:
            Path to project data/ directory
        """
        project_root = Path(__file__).parent.parent.parent
        return project_root / "data"

    def _get_user_data_dir(self) -> Path:
        """
        Get the per-user data directory for production.

        Returns:
            Path to ~/.belt_tracker
        """
        return Path.home() / ".belt_tracker"

    def ensure_directories(self):
        """Create the database directory if it doesn't exist."""
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
    def database_version(self) -> str:
        """Database schema version."""
        return self._database_version

    @property
    def database_path(self) -> Path:
        """Full path to the database file."""
        return self._database_path

    @property
    def database_url(self) -> str:
        """
        SQLAlchemy database URL.

        BELT_TRACKER_DATABASE_URL wins over the file-based default.
        """
        if self._database_url_override:
            return self._database_url_override
        db_path_str = str(self._database_path).replace("\\", "/")
        return f"sqlite:///{db_path_str}"

    @property
    def ledger(self) -> LedgerSettings:
        """Current ledger tuning settings."""
        return self._ledger

    def configure_ledger(self, **overrides) -> LedgerSettings:
        """
        Replace ledger settings with the given overrides.

        Args:
            **overrides: Any LedgerSettings field

        Returns:
            The new LedgerSettings
        """
        self._ledger = replace(self._ledger, **overrides)
        return self._ledger

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    def database_exists(self) -> bool:
        """
        Check if database file exists.

        Returns:
            True if database file exists, False otherwise
        """
        return self._database_path.exists()

    def __repr__(self) -> str:
        """String representation of config."""
        return (
            f"Config(environment='{self.environment}', " f"database_url='{self.database_url}')"
        )


# Global configuration instance
_config_instance: Optional[Config] = None


def get_config(environment: Optional[str] = None) -> Config:
    """
    Get the global configuration instance.

    Once created, the singleton's environment cannot be changed by passing
    a different environment argument.

    Args:
        environment: Optional environment for initial creation. If None, uses
                    BELT_TRACKER_ENV or defaults to production. Ignored if
                    singleton already exists.

    Returns:
        Config instance
    """
    global _config_instance

    if _config_instance is None:
        if environment is None:
            environment = os.environ.get("BELT_TRACKER_ENV", "production")
        _config_instance = Config(environment)
    elif environment is not None and environment != _config_instance.environment:
        import logging

        logger = logging.getLogger(__name__)
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


def get_ledger_settings() -> LedgerSettings:
    """Shortcut for get_config().ledger."""
    return get_config().ledger
