"""Application configuration loading via Pydantic settings."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Runtime configuration sourced from environment variables."""

    env: Literal["dev", "test", "prod"] = Field(default="dev", alias="DASHBOARD_ENV")
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=3000, alias="PORT")
    storage_dir: Path = Field(default=Path("storage"), alias="STORAGE_DIR")
    metrics_document: str = Field(default="metrics.json", alias="METRICS_DOCUMENT")
    persist_timeout_seconds: float = Field(default=2.0, gt=0, alias="PERSIST_TIMEOUT_SECONDS")
    subscriber_send_timeout_seconds: float = Field(default=5.0, gt=0, alias="SUBSCRIBER_SEND_TIMEOUT_SECONDS")
    subscriber_queue_size: int = Field(default=256, ge=1, alias="SUBSCRIBER_QUEUE_SIZE")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def metrics_document_path(self) -> Path:
        """Return the location of the single persisted counters document."""

        return self.storage_dir / self.metrics_document


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings instance."""

    settings = Settings()  # type: ignore[call-arg]
    settings.storage_dir.mkdir(parents=True, exist_ok=True)
    return settings
