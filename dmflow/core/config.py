"""
Configuration settings using Pydantic
"""
from functools import lru_cache
from typing import Optional
from pathlib import Path
from pydantic_settings import BaseSettings

# Project root (where .env lives)
ROOT_DIR = Path(__file__).resolve().parent.parent.parent
ENV_FILE = ROOT_DIR / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # App
    APP_NAME: str = "DM Flow"
    DEBUG: bool = False

    # Supabase
    SUPABASE_URL: str = ""
    SUPABASE_KEY: str = ""

    # OpenAI
    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_TIMEOUT_SECONDS: float = 15.0

    # Instagram Graph API
    GRAPH_API_BASE_URL: str = "https://graph.instagram.com"
    GRAPH_API_VERSION: str = "v21.0"
    GRAPH_API_TIMEOUT_SECONDS: float = 15.0
    MAX_MESSAGE_LENGTH: int = 1000

    @property
    def GRAPH_API_URL(self) -> str:
        """Versioned Graph API base URL"""
        return f"{self.GRAPH_API_BASE_URL.rstrip('/')}/{self.GRAPH_API_VERSION}"

    # Tenant configuration cache
    ACCOUNT_CACHE_TTL_SECONDS: int = 300

    # Scheduled execution sweep
    SWEEP_ENABLED: bool = False
    SWEEP_INTERVAL_SECONDS: int = 60
    SWEEP_BATCH_SIZE: int = 50

    # Notifications
    NOTIFICATION_WEBHOOK_URL: Optional[str] = None

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    class Config:
        env_file = str(ENV_FILE)
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
