"""Service configuration pulled from environment variables via pydantic."""
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from utils.logging_utils import get_tagged_logger, mask_url

logger = get_tagged_logger(__name__)


class Settings(BaseSettings):
    """Environment-driven configuration for the fleetwatch enrichment service."""
    model_config = SettingsConfigDict(env_prefix="FLEET_", extra="ignore")

    data_source: str = "http"  # options: http
    api_base_url: str = "http://localhost:8080"
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    request_retries: int = Field(default=2, ge=0, le=10)

    # None keeps enrichment results for the whole session; a positive value
    # expires them lazily on read.
    enrichment_cache_ttl_seconds: Optional[float] = Field(default=None, gt=0)
    inter_task_delay_ms: int = Field(default=50, ge=0, le=5000)
    debounce_ms: int = Field(default=150, ge=0, le=5000)
    progress_settle_ms: int = Field(default=500, ge=0, le=10000)

    session_ttl_seconds: float = Field(default=3600.0, gt=0)

    log_level: str = "INFO"

    @field_validator("api_base_url", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize base URLs to avoid double slashes."""
        return str(v).rstrip("/")

    @property
    def inter_task_delay_seconds(self) -> float:
        return self.inter_task_delay_ms / 1000.0

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000.0

    @property
    def progress_settle_seconds(self) -> float:
        return self.progress_settle_ms / 1000.0


settings = Settings()


if __name__ == "__main__":
    logger.setLevel("DEBUG")
    dumped = settings.model_dump()
    dumped["api_base_url"] = mask_url(settings.api_base_url)
    logger.debug(f"Loaded settings: {dumped}")
