"""Checkout Service Configuration"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment"""

    # Application
    app_name: str = "Checkout Service"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8001

    # Concurrency
    lock_timeout_seconds: float = 5.0

    # Completed checkout tokens are forgotten after this long
    idempotency_ttl_seconds: float = 86400.0

    # Catalog
    seed_demo_catalog: bool = True

    # Identity
    operator_role: str = "operator"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "CHECKOUT_"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
