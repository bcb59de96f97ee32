"""Worker configuration using pydantic-settings.

All values are loaded from the .env file or the environment.
No hardcoded secrets or credentials.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Worker settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Redis configuration
    use_redis: bool = Field(default=True, description="Disable to make the queue report itself unavailable")
    redis_host: str = Field(default="localhost", description="Redis host")
    redis_port: int = Field(default=6379, description="Redis port")
    redis_password: str = Field(default="", description="Redis password (requirepass)")
    redis_db: int = Field(default=0, description="Redis database number")

    # Queue and retry policy
    queue_name: str = Field(default="jobs", description="Queue name used as Redis key prefix")
    job_max_retries: int = Field(default=3, ge=0, description="Default max_retries for jobs without an override")
    job_retry_delay: int = Field(default=30, ge=0, description="Base backoff delay in seconds")
    dead_letter_max_length: int = Field(default=1000, ge=1, description="Abandoned jobs kept in the dead-letter list")

    # Dispatch loop timing
    poll_timeout: int = Field(default=5, ge=1, description="Blocking dequeue timeout in seconds")
    delayed_sweep_interval: float = Field(default=5.0, gt=0, description="Seconds between delayed job sweeps")
    error_cooldown: float = Field(default=1.0, ge=0, description="Pause after a failed loop iteration")
    handler_timeout: float = Field(default=120.0, ge=0, description="Per-job handler timeout in seconds (0 disables)")
    retry_permanent_failures: bool = Field(
        default=True,
        description="Send unknown-type and invalid-payload jobs through the retry path",
    )

    # SMS gateway
    sms_api_url: str = Field(
        default="https://api.smsgateway.example/v1/messages",
        description="SMS gateway endpoint",
    )

    # Cliniko configuration
    cliniko_api_key: str = Field(default="", description="Cliniko API key (shard suffix included, e.g. '...-au1')")
    cliniko_user_agent: str = Field(
        default="ClinicJobsWorker (ops@example.com)",
        description="User-Agent required by the Cliniko API",
    )

    # Telegram admin alerts (optional)
    telegram_bot_token: str = Field(default="", description="Telegram bot token for admin alerts")
    admin_telegram_chat_id: str = Field(default="", description="Admin Telegram chat ID for dead-letter alerts")

    log_level: str = Field(default="INFO", description="Logging level")

    @property
    def redis_url(self) -> str:
        """Construct Redis URL."""
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    @property
    def cliniko_shard(self) -> str:
        """Cliniko shard encoded as the API key suffix (defaults to au1)."""
        if "-" in self.cliniko_api_key:
            return self.cliniko_api_key.rsplit("-", 1)[1]
        return "au1"

    @property
    def cliniko_base_url(self) -> str:
        """Construct Cliniko API base URL."""
        return f"https://api.{self.cliniko_shard}.cliniko.com/v1"

    @property
    def alerts_enabled(self) -> bool:
        return bool(self.telegram_bot_token and self.admin_telegram_chat_id)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance.

    Using @lru_cache keeps settings loading lazy, so importing modules
    during tests does not require a .env file.
    """
    return Settings()
