from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Solid Queue", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment")
    debug: bool = Field(default=False, description="Debug mode")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )

    # Admin API server
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./solid_queue.db",
        description="Job store connection URL",
    )
    db_pool_size: int = Field(default=10, description="Database connection pool size")
    db_max_overflow: int = Field(default=20, description="Database max overflow connections")
    db_pool_timeout: int = Field(default=30, description="Database pool timeout in seconds")
    db_pool_recycle: int = Field(default=3600, description="Database connection recycle time in seconds")
    db_echo: bool = Field(default=False, description="Echo SQL statements")

    # Job queue
    job_workers: int = Field(default=5, description="Number of concurrent workers")
    job_default_queue: str = Field(default="default", description="Queue used when none is given")
    job_max_attempts: int = Field(default=3, ge=1, description="Default attempt budget per job")
    job_idle_poll_ms: int = Field(
        default=100, ge=1, description="Worker back-off when no job is eligible"
    )
    job_recovery_interval_s: float = Field(
        default=1.0, gt=0, description="Recovery poller period in seconds"
    )
    job_retry_cooldown_s: float = Field(
        default=30.0, ge=0, description="Time a job stays in retrying before requeue"
    )
    job_requeue_delay_s: float = Field(
        default=5.0, ge=0, description="Delay applied to scheduled_at on requeue"
    )
    job_lease_s: float = Field(
        default=300.0, gt=0, description="Claim lease length in seconds"
    )
    job_heartbeat_s: float = Field(
        default=30.0, gt=0, description="Lease extension period for in-flight jobs"
    )
    job_shutdown_timeout_s: float = Field(
        default=30.0, ge=0, description="Default wait bound when stopping the queue"
    )

    def model_post_init(self, __context) -> None:
        """Validate settings after initialization."""
        if self.job_heartbeat_s >= self.job_lease_s:
            raise ValueError(
                f"JOB_HEARTBEAT_S={self.job_heartbeat_s} must be shorter than "
                f"JOB_LEASE_S={self.job_lease_s}, otherwise in-flight leases expire."
            )
        if self.environment == "production" and self.debug:
            raise ValueError("DEBUG=true is not allowed in production environment.")


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Dependency injection function for settings."""
    return settings

