"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic import RedisDsn, computed_field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from wakegate.core.constants import DEFAULT_INSECURE_SECRET, MIN_SECRET_KEY_LENGTH


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Wakegate"
    debug: bool = False
    environment: str = "development"  # development, staging, production
    secret_key: str = DEFAULT_INSECURE_SECRET
    public_base_url: str = "http://localhost:8080"

    # Observability
    log_level: str = "INFO"

    # Auth
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 30
    token_refresh_window_minutes: int = 10
    cookie_name: str = "session"
    cookie_domain: str | None = None
    cookie_secure: bool = True
    admin_token: str | None = None

    # Registry
    registry_backend: Literal["memory", "redis"] = "memory"
    redis_url: RedisDsn | None = None

    # Summary store
    database_url: str = "sqlite+aiosqlite:///./central.db"
    database_echo: bool = False

    # Lifecycle
    idle_minutes: int = 20
    reaper_interval_seconds: float = 60.0
    run_reaper_in_app: bool = True
    provision_timeout_seconds: float = 45.0
    provision_max_attempts: int = 2
    health_check_retries: int = 15
    health_check_interval_seconds: float = 2.0
    wake_wait_timeout_seconds: float = 60.0
    wake_poll_interval_seconds: float = 0.5
    # Provisioning or reaping claims older than this are treated as abandoned
    claim_stale_seconds: float = 120.0

    # Proxy
    proxy_timeout_seconds: float = 60.0
    proxy_connect_timeout_seconds: float = 5.0
    forwarded_proto: str = "https"

    # Tenant runtime
    tenant_image: str = "tenant-base:latest"
    tenant_port: int = 8080
    tenant_cpus: int = 2
    tenant_memory_gb: int = 4
    tenant_pids_limit: int = 512
    tenant_namespace_key: str = "rotate-this-32-byte-key"
    tenant_env: dict[str, str] = {}

    @field_validator("secret_key")
    @classmethod
    def validate_secret_key(cls, v: str) -> str:
        """Reject short signing secrets.

        The insecure default is let through here and refused by
        is_production instead, so development can run without setup.
        """
        if v != DEFAULT_INSECURE_SECRET and len(v) < MIN_SECRET_KEY_LENGTH:
            raise ValueError(
                f"SECRET_KEY must be at least {MIN_SECRET_KEY_LENGTH} characters. "
                "Generate one with: python -c 'import secrets; print(secrets.token_urlsafe(32))'"
            )
        return v

    @field_validator("provision_max_attempts", "health_check_retries")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Retry budgets must allow at least one attempt."""
        if v < 1:
            raise ValueError("retry budgets must be at least 1")
        return v

    @model_validator(mode="after")
    def validate_claim_expiry(self) -> "Settings":
        """A claim may only be declared abandoned after its owner's deadline."""
        if self.claim_stale_seconds <= self.provision_timeout_seconds:
            raise ValueError("CLAIM_STALE_SECONDS must exceed PROVISION_TIMEOUT_SECONDS")
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_production(self) -> bool:
        """Check if running in production environment.

        Raises:
            ValueError: If using insecure secret key in production
        """
        is_prod = self.environment == "production"
        if is_prod and self.secret_key == DEFAULT_INSECURE_SECRET:
            raise ValueError(
                "SECRET_KEY must be set to a secure value in production. "
                "Generate one with: python -c 'import secrets; print(secrets.token_urlsafe(32))'"
            )
        return is_prod


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
