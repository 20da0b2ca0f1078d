"""Runtime settings, read from the environment and an optional .env file."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from quotapool.coordination.retry import RetryPolicy


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="QUOTAPOOL_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "Quota Pool Engine"

    database_url: str = "sqlite:///./quotapool.db"

    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"

    # Pool and claim writes under contention
    retry_max_attempts: int = Field(default=4, ge=0)
    retry_initial_delay: float = Field(default=0.01, gt=0)
    retry_exponential_base: float = Field(default=5.0, ge=1.0)
    retry_jitter: bool = True

    reconcile_interval: float = Field(default=30.0, gt=0)
    worker_concurrency: int = Field(default=10, ge=1)

    enable_metrics: bool = True
    metrics_port: int = 9090

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.retry_max_attempts,
            initial_delay=self.retry_initial_delay,
            exponential_base=self.retry_exponential_base,
            jitter=self.retry_jitter,
        )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
