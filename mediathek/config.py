from pathlib import Path
import logging

from croniter import croniter
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Validates configuration at startup to catch misconfiguration early.
    """

    database_path: str = "./data/mediathek.db"
    mirror_list_url: str = "http://zdfmediathk.sourceforge.net/akt.xml"
    user_agent: str = "mediathek-catalog/0.1.0"
    mirror_list_update_after_days: int = 7
    catalog_update_after_hours: int = 3
    sync_check_cron: str = "0 * * * *"  # Hourly
    sync_check_misfire_grace_sec: int = 600

    http_timeout_sec: float = 120.0
    download_max_retries: int = 3
    download_backoff_initial_sec: float = 1.0
    download_backoff_multiplier: float = 2.0
    download_backoff_max_sec: float = 30.0

    catalog_parse_timeout_sec: int = 600  # 0 disables timeout
    catalog_import_chunk_size: int = 10000

    sqlite_journal_mode: str = "WAL"
    sqlite_cache_size_kb: int = 64000

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="MEDIATHEK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("mirror_list_url")
    @classmethod
    def validate_mirror_list_url(cls, value: str) -> str:
        """Validate mirror list URL is HTTP/HTTPS."""
        if not value.lower().startswith(("http://", "https://")):
            raise ValueError(f"Mirror list URL must be HTTP/HTTPS: {value}")
        return value

    @field_validator("database_path")
    @classmethod
    def validate_database_path(cls, value: str) -> str:
        """Validate database path is accessible."""
        path = Path(value)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            return value
        except (OSError, PermissionError) as exc:
            raise ValueError(f"Cannot access database path '{value}': {exc}") from exc

    @field_validator("mirror_list_update_after_days", "catalog_update_after_hours")
    @classmethod
    def validate_thresholds(cls, value: int, info) -> int:
        """Update thresholds may be zero (always refresh) but not negative."""
        if value < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return value

    @field_validator(
        "sync_check_misfire_grace_sec",
        "catalog_parse_timeout_sec",
    )
    @classmethod
    def validate_non_negative_ints(cls, value: int, info) -> int:
        if value < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return value

    @field_validator(
        "download_max_retries",
        "catalog_import_chunk_size",
        "sqlite_cache_size_kb",
    )
    @classmethod
    def validate_positive_ints(cls, value: int, info) -> int:
        """Ensure counts and sizes are positive integers."""
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator("http_timeout_sec")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("http_timeout_sec must be > 0")
        return value

    @field_validator("download_backoff_initial_sec", "download_backoff_max_sec")
    @classmethod
    def validate_backoff_durations(cls, value: float, info) -> float:
        """Backoff durations may be zero to retry immediately."""
        if value < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return value

    @field_validator("download_backoff_multiplier")
    @classmethod
    def validate_backoff_multiplier(cls, value: float) -> float:
        """Ensure the backoff multiplier is at least 1."""
        if value < 1:
            raise ValueError("download_backoff_multiplier must be >= 1")
        return value

    @field_validator("sqlite_journal_mode")
    @classmethod
    def validate_journal_mode(cls, value: str) -> str:
        """Validate SQLite journal mode."""
        normalized = value.upper()
        allowed = {"DELETE", "TRUNCATE", "PERSIST", "MEMORY", "WAL", "OFF"}
        if normalized not in allowed:
            raise ValueError(f"sqlite_journal_mode must be one of {sorted(allowed)}")
        return normalized

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        normalized = value.upper()
        if normalized not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {value}")
        return normalized

    @field_validator("sync_check_cron")
    @classmethod
    def validate_cron_expression(cls, value: str) -> str:
        """Validate cron expression is valid."""
        try:
            croniter(value)
            return value
        except (ValueError, KeyError) as exc:
            raise ValueError(f"Invalid cron expression '{value}': {exc}") from exc

    def __init__(self, **data):
        """Initialize settings and log configuration."""
        super().__init__(**data)

        logger.info("Configuration loaded:")
        logger.info("  Database: %s", self.database_path)
        logger.info("  Mirror List: %s", self.mirror_list_url)
        logger.info(
            "  Update Thresholds: mirror list %s days, catalog %s hours",
            self.mirror_list_update_after_days,
            self.catalog_update_after_hours,
        )
        logger.info("  Check Schedule: %s", self.sync_check_cron)
        logger.info(
            "  Download: timeout=%.1fs retries=%s backoff initial=%.1fs multiplier=%.1f max=%.1fs",
            self.http_timeout_sec,
            self.download_max_retries,
            self.download_backoff_initial_sec,
            self.download_backoff_multiplier,
            self.download_backoff_max_sec,
        )
        logger.info(
            "  Parse Timeout: %s",
            f"{self.catalog_parse_timeout_sec}s" if self.catalog_parse_timeout_sec else "disabled",
        )
        logger.info("  Import Batch Size: %s", self.catalog_import_chunk_size)
        logger.info("  SQLite Journal Mode: %s", self.sqlite_journal_mode)


settings = Settings()


def setup_logging(level: str | None = None) -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level).upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
