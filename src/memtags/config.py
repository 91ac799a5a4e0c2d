"""
memtags Configuration

This module manages client configuration via environment variables and ~/.memtags/.env file.

Configuration is loaded from:
1. Environment variables (prefixed with MEMTAGS_)
2. ~/.memtags/.env file

Key settings:
- MEMTAGS_API_URL: Memory server origin (default: http://localhost:8787)
- MEMTAGS_API_KEY: Bearer token for the memory server
- MEMTAGS_MAX_DEPTH: Depth guard for tag tree walks
"""

import logging
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".memtags"
ENV_FILE = CONFIG_DIR / ".env"


class Settings(BaseSettings):
    """memtags configuration settings."""

    app_name: str = "Memory Tags"

    # Server connection
    api_url: str = "http://localhost:8787"
    api_prefix: str = "/api"
    api_key: str | None = None
    timeout: float = Field(default=30.0, gt=0)

    # Hierarchy depth is user-controlled; every tree walk stops here
    max_depth: int = Field(default=64, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="MEMTAGS_",
        env_file=ENV_FILE,
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def base_url(self) -> str:
        """Origin plus API prefix, without a trailing slash."""
        prefix = "/" + self.api_prefix.strip("/") if self.api_prefix.strip("/") else ""
        return self.api_url.rstrip("/") + prefix

    @property
    def is_authenticated(self) -> bool:
        """Check if an API key is configured."""
        return bool(self.api_key)


settings = Settings()
