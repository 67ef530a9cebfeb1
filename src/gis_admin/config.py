"""
Configuration settings for the GIS administration client.
"""
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings

# Folders holding platform utility services; skipped by recursive listings.
DEFAULT_EXCLUDED_FOLDERS = ["System", "Utilities"]


class AdminSettings(BaseSettings):
    """Client configuration loaded from environment variables."""

    # Transport
    request_timeout: float = 30.0

    # Data store validation (cloud-backed stores can be slow)
    validate_timeout_ms: int = Field(default=30000, ge=1)

    # Service lifecycle polling
    service_wait_timeout_ms: int = Field(default=120000, ge=1)
    poll_interval: float = Field(default=2.0, ge=0)
    excluded_folders: List[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDED_FOLDERS))

    # Log queries
    log_page_cap: int = Field(default=1000, ge=1)
    default_log_hours: int = Field(default=24, ge=1)
    default_log_level: str = "WARNING"

    # Federated token cache
    token_cache_capacity: int = Field(default=100, ge=1)
    federated_token_ttl: int = Field(default=3600, ge=1)
    federated_token_buffer: int = Field(default=120, ge=0)

    class Config:
        env_file = ".env"
        env_prefix = "GIS_ADMIN_"
        case_sensitive = False


# Global settings instance
settings = AdminSettings()
