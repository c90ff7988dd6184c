import os
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

load_dotenv()


class Settings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Backend Configuration
    api_url: str = Field(default="http://localhost:4300", alias="API_URL")
    environment: str = Field(default="development", alias="ENVIRONMENT")

    # Request Pipeline Configuration
    request_timeout: float = Field(default=30.0, alias="API_TIMEOUT")
    max_retries: int = Field(default=2, alias="API_MAX_RETRIES")
    retry_backoff: float = Field(default=1.0, alias="API_RETRY_BACKOFF")

    # Cache Configuration
    cache_sweep_interval_seconds: int = Field(default=60, alias="CACHE_SWEEP_INTERVAL")
    cache_debug: bool = Field(default=False, alias="CACHE_DEBUG")

    # Poller Configuration
    progress_cache_ttl_seconds: int = Field(default=30, alias="PROGRESS_CACHE_TTL")
    progress_default_ttl_seconds: int = Field(default=10, alias="PROGRESS_DEFAULT_TTL")
    health_cache_ttl_seconds: int = Field(default=60, alias="HEALTH_CACHE_TTL")
    health_poll_interval_seconds: int = Field(default=120, alias="HEALTH_POLL_INTERVAL")
    health_path: str = Field(default="/health", alias="HEALTH_PATH")

    # Session Configuration
    token_store_path: str = Field(
        default=str(Path.home() / ".lmsapi" / "session.json"), alias="TOKEN_STORE_PATH"
    )

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment (after .env is loaded)."""
        return cls.model_validate(dict(os.environ))

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def progress_cache_ttl(self) -> timedelta:
        return timedelta(seconds=self.progress_cache_ttl_seconds)

    @property
    def progress_default_ttl(self) -> timedelta:
        return timedelta(seconds=self.progress_default_ttl_seconds)

    @property
    def health_cache_ttl(self) -> timedelta:
        return timedelta(seconds=self.health_cache_ttl_seconds)


global_settings = Settings.from_env()
