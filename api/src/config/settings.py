"""Application settings using Pydantic Settings.

Every value can be overridden by an environment variable of the same name
(case-insensitive) or from a local ``.env`` file.
"""

from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


Environment = Literal["development", "staging", "production", "testing"]


class Settings(BaseSettings):
    """Settings for the reviews API and its two stores."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Service
    app_name: str = Field(default="product-reviews", description="Service name")
    app_version: str = Field(default="0.1.0", description="Service version")
    environment: Environment = Field(default="development")

    # HTTP
    user_id_header: str = Field(
        default="X-User-ID",
        description="Header carrying the numeric user id resolved by the gateway",
    )

    # Counter store: like counts, liked sets, pinned pointers
    redis_url: str = Field(default="redis://localhost:6379/0")
    redis_max_connections: int = Field(default=20, description="Pool size")
    redis_socket_timeout: float = Field(
        default=2.0, description="Per-command timeout in seconds"
    )
    redis_socket_connect_timeout: float = Field(default=2.0)
    redis_retry_on_timeout: bool = Field(default=True)
    redis_health_check_interval: int = Field(
        default=30, description="Seconds between idle connection checks"
    )

    # Review store
    cassandra_hosts: Annotated[list[str], NoDecode] = Field(
        default=["localhost"],
        description="Contact points, comma separated in the environment",
    )
    cassandra_port: int = Field(default=9042)
    cassandra_keyspace: str = Field(default="product_reviews")
    cassandra_username: str | None = Field(default=None)
    cassandra_password: str | None = Field(default=None)
    cassandra_protocol_version: int = Field(default=4)
    cassandra_local_datacenter: str = Field(
        default="datacenter1",
        description="Local DC for routing and for production replication",
    )
    cassandra_replication_factor: int = Field(
        default=3, ge=1, description="Replicas per DC outside development"
    )
    cassandra_connect_timeout: float = Field(default=10.0)
    cassandra_request_timeout: float = Field(
        default=5.0, description="Default per-query timeout in seconds"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", description="Renderer for stdout"
    )
    log_include_caller_info: bool = Field(default=True)
    log_dir: str = Field(default="logs", description="Directory for JSON log files")
    log_file_max_bytes: int = Field(default=10 * 1024 * 1024)
    log_file_backup_count: int = Field(default=5)
    log_requests: bool = Field(default=True, description="Log request start/finish")
    log_exclude_paths: Annotated[list[str], NoDecode] = Field(
        default=["/health"],
        description="Path prefixes that are not request-logged",
    )

    # CORS
    cors_origins: Annotated[list[str], NoDecode] = Field(default=["*"])
    cors_allow_credentials: bool = Field(default=False)
    cors_allow_methods: list[str] = Field(default=["GET", "POST", "DELETE"])
    cors_allow_headers: list[str] = Field(default=["*"])
    cors_max_age: int = Field(default=600)

    @field_validator(
        "cassandra_hosts", "log_exclude_paths", "cors_origins", mode="before"
    )
    @classmethod
    def split_comma_separated(cls, v: object) -> object:
        """Accept ``a,b,c`` from the environment as well as real lists."""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_testing(self) -> bool:
        return self.environment == "testing"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
