"""Unified settings for the catalog server.

Values are read from the environment and from ``.env`` next to the
working directory. Only ``POSTGRES_URL`` is required.

    from catalog_server.settings import get_settings
    settings = get_settings()
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from catalog_server.catalog.versions import CatalogVersion


def _split_csv(value: str) -> List[str]:
    """Split comma-separated string into list."""
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """Catalog server settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === PostgreSQL ===
    postgres_url: str = Field(
        description="PostgreSQL async connection URL (postgresql+asyncpg://...)"
    )
    postgres_pool_size: int = Field(
        default=5,
        description="Connection pool size",
        ge=1,
    )
    postgres_max_overflow: int = Field(
        default=10,
        description="Max pool overflow connections",
        ge=0,
    )
    postgres_statement_timeout_ms: Optional[int] = Field(
        default=None,
        description="Server-side statement_timeout applied to every connection",
        ge=0,
    )

    # === Catalog ===
    catalog_version: CatalogVersion = Field(
        default=CatalogVersion.V1_1,
        description="Catalog version migrations move to; initialise only accepts the bundled DDL version",
    )
    admin_role: str = Field(
        default="admin",
        description="Role used for metadata operations issued by the server",
    )

    # === Server ===
    allowed_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated CORS origins",
    )
    uvicorn_host: str = Field(default="0.0.0.0", description="Server host")
    uvicorn_port: int = Field(default=8080, description="Server port")

    @field_validator("postgres_url")
    @classmethod
    def require_asyncpg_driver(cls, v: str) -> str:
        if v.startswith("postgres://"):
            v = "postgresql://" + v[len("postgres://"):]
        if v.startswith("postgresql://"):
            v = "postgresql+asyncpg://" + v[len("postgresql://"):]
        if not v.startswith("postgresql+asyncpg://"):
            raise ValueError("POSTGRES_URL must be a postgresql+asyncpg:// URL")
        return v

    @property
    def allowed_origins_list(self) -> List[str]:
        return _split_csv(self.allowed_origins)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings singleton."""
    return Settings()
