"""
core/config.py

Centralizes all environment-based configuration for Inkpost.
Using pydantic-settings gives typed values and automatic .env loading,
so lockout thresholds and token lifetimes are tunable without code changes.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

DEV_JWT_SECRET = "inkpost-dev-secret-change-me"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Application
    app_name: str = "Inkpost"
    app_env: str = "development"
    debug: bool = False
    cors_origins: List[str] = ["*"]

    # Database
    database_url: str = "sqlite+aiosqlite:///./inkpost.db"

    # JWT
    jwt_secret_key: str = DEV_JWT_SECRET
    jwt_algorithm: str = "HS256"
    jwt_issuer: str = "inkpost"
    admin_token_ttl_hours: int = 24
    user_token_ttl_days: int = 7

    # Password hashing
    bcrypt_rounds: int = 12

    # Lockout policy
    login_max_attempts: int = 5
    login_window_minutes: int = 15
    register_max_attempts: int = 3
    register_window_minutes: int = 60

    # Lockout store: "memory" | "redis"
    rate_limit_backend: str = "memory"

    # Redis
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: str = ""

    # Bootstrap admin (created on startup when both are set)
    admin_username: Optional[str] = None
    admin_password: Optional[str] = None
    admin_email: Optional[str] = None


@lru_cache()
def get_settings() -> Settings:
    """Returns a cached singleton of Settings; .env is parsed once."""
    return Settings()
