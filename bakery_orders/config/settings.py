# bakery_orders/config/settings.py
from pydantic import field_validator
from pydantic_settings import BaseSettings
from typing import List, Optional
from functools import lru_cache


class Settings(BaseSettings):
    # Application Settings
    APP_NAME: str = "Bakery Branch Ordering API"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    # Database Settings
    DATABASE_URL: str = "sqlite:///./bakery_orders.db"

    # Redis Settings
    REDIS_URL: Optional[str] = None

    # Rate Limiting
    RATE_LIMIT_STRATEGY: str = "memory"  # memory | redis
    RATE_LIMIT_PREFIX: str = "rl"
    LOGIN_RATE_LIMIT_MAX: int = 10
    LOGIN_RATE_LIMIT_WINDOW_SECONDS: int = 15 * 60
    # honour X-Forwarded-For only when running behind a trusted proxy
    TRUST_PROXY_HEADERS: bool = False

    # JWT Settings
    JWT_SECRET_KEY: str = "change-me-in-production-bakery-orders-jwt-secret"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    ACCESS_TOKEN_COOKIE_NAME: str = "access_token"
    REFRESH_TOKEN_COOKIE_NAME: str = "refresh_token"
    COOKIE_SECURE: bool = False
    COOKIE_SAMESITE: str = "lax"

    # CORS Settings
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]

    # Logging Settings
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    # Ordering
    ORDER_NUMBER_MAX_ATTEMPTS: int = 5
    DEFAULT_DELIVERY_TIME: str = "07:00"

    @field_validator("RATE_LIMIT_STRATEGY")
    @classmethod
    def normalize_strategy(cls, v):
        v = (v or "memory").strip().lower()
        if v not in ("memory", "redis"):
            raise ValueError("RATE_LIMIT_STRATEGY must be 'memory' or 'redis'")
        return v

    @field_validator("REDIS_URL")
    @classmethod
    def empty_redis_url(cls, v):
        if v is None or not v.strip():
            return None
        return v.strip()

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    return Settings()
