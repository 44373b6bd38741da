from pydantic_settings import BaseSettings
from functools import lru_cache
import logging

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Manifest
    manifest_path: str = "webhook-tools.json"

    # External secrets (authFrom)
    secrets_dir: str = "~/.webhook-tools-secrets"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    public_base_url: str = "http://localhost:8000"
    debug: bool = False

    # Timeouts (seconds)
    callback_timeout_seconds: float = 30.0
    health_check_timeout_seconds: float = 5.0

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()
    logger.info(f"Settings loaded - Manifest: {settings.manifest_path}")
    logger.info(f"Settings loaded - Public base URL: {settings.public_base_url}")
    return settings
