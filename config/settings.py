from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from gigflow.models.schemas import MAX_PAYMENT_REQUESTS


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    db_path: str = Field(
        default="data/gigflow.db",
        description="Path to the SQLite database holding gig documents",
    )
    attachments_dir: str = Field(
        default="data/attachments",
        description="Root directory of the report attachment store",
    )
    notifications_path: str = Field(
        default="config/notifications.yaml",
        description="YAML file with notification message templates",
    )
    payment_request_cap: int = Field(
        default=5,
        ge=1,
        le=MAX_PAYMENT_REQUESTS,
        description="Lifetime number of payout requests allowed per gig",
    )
    payment_cooldown_hours: float = Field(
        default=2.0,
        gt=0,
        description="Hours a worker must wait between payout requests",
    )
    stalled_payout_hours: float = Field(
        default=72.0,
        gt=0,
        description="Hours after which an unprocessed payout is escalated",
    )
    commission_rate: float = Field(
        default=0.02,
        ge=0,
        lt=1,
        description="Platform commission deducted from the gig budget",
    )
    dispatch_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Upper bound on a single notification dispatch",
    )
    sweep_interval_seconds: int = Field(
        default=900,
        ge=1,
        description="Seconds between stalled-payout sweeps",
    )

    @property
    def base_dir(self) -> Path:
        """Return the project root directory."""
        return Path(__file__).resolve().parent.parent

    @property
    def abs_db_path(self) -> Path:
        """Return the absolute path to the database file."""
        return self.base_dir / self.db_path

    @property
    def abs_attachments_dir(self) -> Path:
        """Return the absolute path to the attachment store root."""
        return self.base_dir / self.attachments_dir

    @property
    def abs_notifications_path(self) -> Path:
        """Return the absolute path to the notification templates."""
        return self.base_dir / self.notifications_path


settings = Settings()
