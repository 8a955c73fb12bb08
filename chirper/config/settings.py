"""Application settings using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="chirper", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Literal["development", "staging", "production", "testing"] = Field(
        default="development", description="Environment name"
    )
    debug: bool = Field(default=True, description="Debug mode")

    # API Server
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")

    # Authentication (tokens are issued by the external auth service)
    auth_secret_key: str = Field(
        default="dev-jwt-secret-key-change-in-production-32chars!",
        description="JWT verification key (min 32 chars)",
    )
    auth_algorithm: str = Field(default="HS256", description="JWT algorithm")
    auth_access_token_expire_minutes: int = Field(
        default=60 * 24, description="Access token expiration (minutes)"
    )

    # Backends
    comment_store_backend: Literal["cassandra", "memory"] = Field(
        default="cassandra", description="Comment persistence backend"
    )
    directory_backend: Literal["cassandra", "memory"] = Field(
        default="cassandra", description="User/post directory backend"
    )
    image_store_backend: Literal["firebase", "memory"] = Field(
        default="firebase", description="Image upload backend"
    )

    # Redis
    redis_enabled: bool = Field(default=True, description="Connect to Redis on startup")
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )
    redis_max_connections: int = Field(default=10, description="Max Redis connections")
    redis_socket_timeout: float = Field(default=5.0, description="Redis socket timeout")
    redis_socket_connect_timeout: float = Field(
        default=5.0, description="Redis connect timeout"
    )
    redis_retry_on_timeout: bool = Field(default=True, description="Retry on timeout")
    redis_health_check_interval: int = Field(
        default=30, description="Health check interval"
    )

    # Like toggle serialization
    like_lock_timeout_seconds: float = Field(
        default=5.0, description="Max time a like lock may be held"
    )
    like_lock_blocking_timeout_seconds: float = Field(
        default=5.0, description="Max time to wait for a like lock"
    )

    # Cassandra
    cassandra_hosts: list[str] = Field(
        default=["localhost"], description="Cassandra hosts"
    )
    cassandra_port: int = Field(default=9042, description="Cassandra port")
    cassandra_keyspace: str = Field(default="chirper", description="Cassandra keyspace")
    cassandra_username: str | None = Field(default=None, description="Cassandra user")
    cassandra_password: str | None = Field(
        default=None, description="Cassandra password"
    )
    cassandra_protocol_version: int = Field(default=4, description="Protocol version")
    cassandra_connect_timeout: float = Field(
        default=10.0, description="Connect timeout"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="DEBUG", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", description="Log format"
    )
    log_include_caller_info: bool = Field(
        default=True, description="Include caller info"
    )
    log_dir: str = Field(default="logs", description="Directory for log files")
    log_file_max_bytes: int = Field(
        default=10 * 1024 * 1024, description="Max size per log file (10MB default)"
    )
    log_file_backup_count: int = Field(
        default=5, description="Number of backup log files to keep"
    )
    log_requests: bool = Field(
        default=True, description="Log HTTP request start/finish"
    )
    log_exclude_paths: list[str] = Field(
        default=["/health", "/health/live", "/health/ready"],
        description="Paths to exclude from request logging",
    )

    # CORS
    cors_origins: list[str] = Field(default=["*"], description="CORS origins")
    cors_allow_credentials: bool = Field(default=True, description="Allow credentials")
    cors_allow_methods: list[str] = Field(default=["*"], description="Allowed methods")
    cors_allow_headers: list[str] = Field(default=["*"], description="Allowed headers")
    cors_max_age: int = Field(default=600, description="CORS max age")

    # Firebase Storage
    firebase_credentials_path: str | None = Field(
        default=None, description="Path to Firebase service account JSON file"
    )
    firebase_storage_bucket: str | None = Field(
        default=None,
        description="Firebase Storage bucket (e.g., project-id.appspot.com)",
    )
    firebase_project_id: str | None = Field(
        default=None, description="Firebase project ID"
    )

    # Upload Settings
    upload_max_file_size_mb: int = Field(
        default=10, description="Maximum image size for uploads in MB"
    )
    upload_allowed_image_types: list[str] = Field(
        default=["image/jpeg", "image/png", "image/webp", "image/gif"],
        description="Allowed image MIME types",
    )
    upload_folder: str = Field(
        default="chirper/images", description="Storage folder for comment images"
    )

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    @property
    def is_testing(self) -> bool:
        """Check if running in testing mode."""
        return self.environment == "testing"

    @property
    def firebase_configured(self) -> bool:
        """Check if Firebase Storage is configured."""
        return bool(self.firebase_credentials_path and self.firebase_storage_bucket)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
