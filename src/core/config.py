"""Configuration management for caretrack."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Document store
    sqlite_db_path: str = Field(default="data/care_tasks.db", description="SQLite database file path")

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")

    # Runtime context
    environment: str = Field(default="development", description="Deployment environment (development, test, ci, ...)")
    ci: bool = Field(default=False, description="Set by CI platforms (CI=true)")
    timezone: str = Field(default="UTC", description="Timezone used for day and year boundaries")

    # Daily execution scheduler
    disable_task_scheduler: bool = Field(default=False, description="Disable the daily execution backfill job")
    scheduler_run_hour: int = Field(default=0, description="Hour of the daily backfill run")
    scheduler_run_minute: int = Field(
        default=10, description="Minute of the daily backfill run (offset from midnight)"
    )
    scheduler_task_timeout_seconds: float = Field(
        default=30.0, description="Upper bound for backfilling a single task during a scheduler run"
    )

    # Store transactions
    store_transaction_max_attempts: int = Field(
        default=5, description="Attempts for a store transaction that hits a locked database"
    )

    @property
    def task_scheduler_enabled(self) -> bool:
        """Whether the daily execution scheduler may start in this process."""
        if self.disable_task_scheduler or self.ci:
            return False
        return self.environment.lower() not in {"test", "ci"}


# Application Constants
class Constants:
    """Application-wide constants."""

    # Money
    MONEY_EPSILON: float = 1e-6  # Tolerance for cost/refund/budget equality
    COST_DECIMALS: int = 2  # Per-unit costs are rounded to cents

    # Care tasks
    DEFAULT_PURCHASE_QUANTITY_UNIT: str = "piece"
    EXECUTION_CREATION_ALLOWED_STATUSES: tuple[str, ...] = ("TODO", "DONE")

    # Pagination Defaults
    DEFAULT_PER_PAGE_LIMIT: int = 100  # Default pagination limit for list queries

    # Scheduler
    DAILY_GENERATION_JOB: str = "daily_execution_backfill"
    STORE_RETRY_BASE_DELAY_SECONDS: float = 0.05

    # Paths
    PROJECT_ROOT: Path = Path(__file__).parent.parent.parent


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()
