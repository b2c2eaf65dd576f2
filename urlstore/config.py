from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """
    Storage core settings loaded from environment variables.

    Loading priority (highest to lowest):
    1. Environment variables (prefixed with SHORTENER_)
    2. .env file
    3. Default values below
    """

    # Environment
    environment: str = "development"

    # Application
    app_name: str = "URL Shortener Storage"
    app_version: str = "1.0.0"

    # Logging
    log_level: str = "INFO"
    log_json: bool = False
    log_file: Optional[str] = None

    # Storage backend selection
    storage_backend: str = "relational"  # Options: "relational", "redis", "embedded"

    # Relational backend (PostgreSQL in production, SQLite for development)
    database_url: str = "sqlite:///./url_shortener.db"
    relational_pool_size: int = 10
    relational_pool_timeout: float = 30.0  # Seconds to wait for a pooled connection

    # Redis backend
    redis_url: str = "redis://localhost:6379/0"
    redis_max_connections: int = 10
    redis_socket_timeout: float = 2.0
    redis_key_prefix: str = "link:"

    # Embedded key/value backend
    embedded_path: str = "links.db"
    embedded_bucket: str = "links"
    embedded_timeout: float = 1.0  # Seconds to wait for the file lock

    # Read cache settings
    cache_backend: str = "memory"  # Options: "memory", "null"
    cache_capacity: int = 10000

    # ID allocation
    find_existing: bool = True  # Reuse the code of an identical active URL
    max_collision_retries: int = 16

    # Expiry cleaner
    cleaner_interval: float = 3600.0  # Seconds between sweeps (hourly)

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_prefix="SHORTENER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


# Create settings instance
settings = Settings()
