"""
Database configuration settings.

Manages connection parameters for the SQLAlchemy engine used by records.
An explicit URL wins; otherwise a PostgreSQL URL is assembled from parts.

Dependencies: pydantic, pydantic_settings
System role: Database connection configuration for the record layer
"""

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from cti_record.configs.base import BaseSettings


class DatabaseSettings(BaseSettings):
    """Database connection configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="CTI_DB_",
        case_sensitive=False,
        extra="ignore",
    )

    url: str | None = Field(default=None, description="Full SQLAlchemy URL (overrides parts)")

    host: str = Field(default="localhost", description="PostgreSQL host")
    port: int = Field(default=5432, description="PostgreSQL port")
    user: str = Field(default="postgres", description="PostgreSQL user")
    password: str = Field(default="postgres", description="PostgreSQL password")
    name: str = Field(default="cti_record", description="PostgreSQL database name")
    sslmode: str | None = Field(default=None, description="libpq sslmode, e.g. \"require\" for RDS")

    pool_size: int = Field(default=10, description="Connection pool size")
    max_overflow: int = Field(default=20, description="Maximum overflow connections")
    pool_timeout: int = Field(default=30, description="Connection pool timeout in seconds")
    echo_sql: bool = Field(default=False, description="Echo SQL statements to logs")

    @property
    def database_url(self) -> str:
        """
        Resolve the SQLAlchemy connection URL.

        Returns:
            str: `url` when set, otherwise a PostgreSQL URL built from parts
        """
        if self.url:
            return self.url
        url = f"postgresql+psycopg://{self.user}:{self.password}@{self.host}:{self.port}/{self.name}"
        return f"{url}?sslmode={self.sslmode}" if self.sslmode else url
