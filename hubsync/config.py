"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL

from hubsync.exceptions import ConfigurationError


class Settings(BaseSettings):
    """HubSync application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Core
    service_name: str = "learning-hub-sync-api"
    debug: bool = False

    # Auth
    sync_api_key: str = ""

    # Database: an explicit URL wins over the MySQL parts below
    database_url: str = ""
    mysql_host: str | None = Field(
        default=None, validation_alias=AliasChoices("mysql_host", "MYSQLHOST")
    )
    mysql_port: int = Field(
        default=3306, ge=1, le=65535, validation_alias=AliasChoices("mysql_port", "MYSQLPORT")
    )
    mysql_database: str | None = Field(
        default=None, validation_alias=AliasChoices("mysql_database", "MYSQLDATABASE")
    )
    mysql_user: str | None = Field(
        default=None, validation_alias=AliasChoices("mysql_user", "MYSQLUSER")
    )
    mysql_password: str | None = Field(
        default=None, validation_alias=AliasChoices("mysql_password", "MYSQLPASSWORD")
    )

    # Uploads are read fully into memory
    max_upload_bytes: int = Field(default=512 * 1024 * 1024, ge=1)

    # Server
    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)

    # Response hardening
    security_headers_enabled: bool = True

    def resolve_database_url(self) -> str:
        """Return the SQLAlchemy URL for the snapshot store.

        Raises ConfigurationError when neither ``DATABASE_URL`` nor a complete set
        of MySQL variables (host, database, user) is available.
        """
        if self.database_url:
            return self.database_url

        if not self.mysql_host or not self.mysql_database or not self.mysql_user:
            raise ConfigurationError("MySQL environment variables missing")

        url = URL.create(
            "mysql+aiomysql",
            username=self.mysql_user,
            password=self.mysql_password,
            host=self.mysql_host,
            port=self.mysql_port,
            database=self.mysql_database,
            query={"charset": "utf8mb4"},
        )
        return url.render_as_string(hide_password=False)
