"""Application configuration."""
from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # App
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_debug: bool = True
    log_level: str = "DEBUG"

    # CORS
    cors_origins: str = "http://localhost:3000"

    # Document store
    store_backend: str = Field(
        default="memory",
        description="Document store backend: 'memory' (single process) or 'redis'",
    )
    store_key_prefix: str = Field(
        default="backr",
        description="Key prefix for every document, index and change channel",
    )

    # Redis
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL (used when store_backend='redis')",
    )
    redis_max_connections: int = Field(
        default=50,
        description="Redis max connections",
    )
    redis_socket_timeout: float = Field(
        default=5.0,
        description="Redis socket timeout in seconds",
    )
    redis_socket_connect_timeout: float = Field(
        default=5.0,
        description="Redis socket connect timeout in seconds",
    )
    redis_health_check_interval: int = Field(
        default=30,
        description="Redis health check interval in seconds",
    )

    # Live views
    projection_debounce_ms: int = Field(
        default=50,
        description="Quiet period before a changed view is re-projected",
    )
    reconnect_initial_delay: float = Field(
        default=0.5,
        description="First reconnect delay after a stream failure (seconds)",
    )
    reconnect_max_delay: float = Field(
        default=30.0,
        description="Upper bound for the reconnect backoff (seconds)",
    )

    # Listing
    event_list_limit: int = Field(
        default=100,
        description="Maximum events returned by the event listing",
    )

    @field_validator("store_backend")
    @classmethod
    def validate_store_backend(cls, v: str) -> str:
        """Only the two bundled backends are supported."""
        v = v.lower()
        if v not in ("memory", "redis"):
            raise ValueError("store_backend must be 'memory' or 'redis'")
        return v

    @field_validator(
        "projection_debounce_ms", "reconnect_initial_delay", "reconnect_max_delay"
    )
    @classmethod
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError("delays must not be negative")
        return v

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Validate settings for production environment."""
        if self.app_env == "production":
            if self.app_debug:
                raise ValueError(
                    "app_debug must be False in production environment"
                )

            origins = [o.strip() for o in self.cors_origins.split(",")]
            if "*" in origins:
                raise ValueError(
                    "CORS wildcard '*' is not allowed in production environment. "
                    "Specify explicit allowed origins."
                )

        if self.reconnect_max_delay < self.reconnect_initial_delay:
            raise ValueError(
                "reconnect_max_delay must be >= reconnect_initial_delay"
            )

        return self

    model_config = {
        "env_file": ".env",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
