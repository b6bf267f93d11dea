"""Application configuration using pydantic-settings."""
from functools import lru_cache
from urllib.parse import urlparse

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Database
    database_url: str

    # Auth - tokens are issued by the external auth service and signed with a shared secret
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"

    # Development mode - bypasses auth for local development
    dev_mode: bool = False

    # CORS - comma-separated list of allowed origins (stored as string, parsed via property)
    cors_origins_str: str = Field(
        default="http://localhost:5173",
        validation_alias="CORS_ORIGINS",
    )

    # Metadata enrichment budgets (seconds)
    metadata_fetch_timeout: float = Field(default=10.0, gt=0)
    title_fetch_timeout: float = Field(default=5.0, gt=0)

    # Field length limits
    max_title_length: int = 500
    max_description_length: int = 2000

    log_level: str = "INFO"

    @model_validator(mode="after")
    def validate_dev_mode_security(self) -> "Settings":
        """
        Prevent DEV_MODE from being enabled with a production database.

        DEV_MODE bypasses authentication, so it is only allowed against a local
        database (or SQLite, which has no host).
        """
        if not self.dev_mode:
            return self

        parsed = urlparse(self.database_url)
        if parsed.scheme.startswith("sqlite"):
            return self

        hostname = parsed.hostname or ""
        local_hosts = {"localhost", "127.0.0.1", "0.0.0.0", "::1"}
        if hostname.lower() not in local_hosts:
            raise ValueError(
                f"DEV_MODE cannot be enabled with a non-local database. "
                f"Database host '{hostname}' appears to be a production database. "
                f"DEV_MODE bypasses all authentication and must only be used locally.",
            )

        return self

    @property
    def cors_origins(self) -> list[str]:
        """Parse comma-separated CORS origins string into a list."""
        if not self.cors_origins_str:
            return []
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
