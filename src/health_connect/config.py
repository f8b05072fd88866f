"""
Settings for Health Connect, loaded from the environment (and ``.env``).
"""

import os
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv

from .models import DEFAULT_MODEL


load_dotenv()


def _flag(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Settings:
    """Application settings loaded from environment variables.

    Keep all credentials and config centralized here.
    """

    def __init__(self):
        self.google_api_key: Optional[str] = os.getenv("GOOGLE_API_KEY") or os.getenv("YOUR_API_KEY")
        self.default_model: str = os.getenv("DEFAULT_MODEL", DEFAULT_MODEL)
        self.thinking_budget: int = int(os.getenv("THINKING_BUDGET", "24576"))

        self.cache_enabled: bool = _flag(os.getenv("CACHE_ENABLED", "true"))
        self.cache_ttl: int = int(os.getenv("CACHE_TTL", "3600"))
        self.session_ttl_days: int = int(os.getenv("SESSION_TTL_DAYS", "30"))
        self.redis_url: Optional[str] = os.getenv("REDIS_URL") or None

        self.provider_timeout: float = float(os.getenv("PROVIDER_TIMEOUT", "120"))
        self.provider_max_retries: int = int(os.getenv("PROVIDER_MAX_RETRIES", "2"))

        self.host: str = os.getenv("HOST", "127.0.0.1")
        self.port: int = int(os.getenv("PORT", "4000"))
        self.log_level: str = os.getenv("LOG_LEVEL", "info")
        self.cors_origins: List[str] = [
            o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()
        ]

    @property
    def session_ttl_seconds(self) -> int:
        return self.session_ttl_days * 24 * 60 * 60


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
