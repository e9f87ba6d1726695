"""Application configuration settings."""

from typing import Optional, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationMissing(Exception):
    """Raised when a required configuration value is absent at first use."""

    def __init__(self, missing: List[str]):
        super().__init__(f"Missing required configuration: {', '.join(missing)}")
        self.missing = missing


class _EnvSettings(BaseSettings):
    """Shared settings base reading the process environment and `.env`."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


class DatabaseSettings(_EnvSettings):
    """Database configuration."""

    model_config = SettingsConfigDict(env_prefix="DB_")

    url: str = Field(default="sqlite:///./data/mirror.db")


class FTPSettings(_EnvSettings):
    """Destination FTP server configuration."""

    model_config = SettingsConfigDict(env_prefix="FTP_")

    host: Optional[str] = None
    port: int = 21
    username: Optional[str] = None
    password: Optional[str] = None
    timeout: float = Field(default=30.0, description="Connect timeout in seconds")

    def require(self) -> "FTPSettings":
        """Fail fast if the destination cannot be reached with this configuration."""
        missing = [
            f"FTP_{name.upper()}"
            for name in ("host", "username", "password")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigurationMissing(missing)
        return self


class GoogleSettings(_EnvSettings):
    """Google API credentials configuration."""

    model_config = SettingsConfigDict(env_prefix="GOOGLE_")

    credentials_path: Optional[str] = Field(default="./secrets/google_service_account.json")
    service_account_key: Optional[str] = None  # Inline JSON, takes precedence over the file
    application_name: str = "Sheet Mirror"


class SheetSettings(_EnvSettings):
    """Tabular source configuration."""

    model_config = SettingsConfigDict(env_prefix="SHEET_")

    id: Optional[str] = None
    range: str = "Sheet1!A:D"
    records_range: str = "Sheet2!A1:Z1000"
    records_enabled: bool = False
    records_collection: str = "Sheet2Collection"


class SchedulingSettings(_EnvSettings):
    """Scheduling configuration."""

    model_config = SettingsConfigDict(env_prefix="SCHEDULE_")

    sync_interval_minutes: float = 5
    max_concurrent_rows: int = Field(default=1, ge=1)
    max_retries: int = Field(default=0, ge=0)
    retry_backoff_seconds: float = 1.0


class LoggingSettings(_EnvSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: str = "INFO"
    format: str = "json"
    file_path: Optional[str] = "./logs/mirror.log"


class AppSettings(_EnvSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(env_prefix="APP_")

    name: str = "Sheet Mirror"
    version: str = "1.0.0"
    environment: str = Field(default="development", validation_alias="ENVIRONMENT")
    host: str = "0.0.0.0"
    port: int = 8080

    # Sub-settings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    ftp: FTPSettings = Field(default_factory=FTPSettings)
    google: GoogleSettings = Field(default_factory=GoogleSettings)
    sheet: SheetSettings = Field(default_factory=SheetSettings)
    scheduling: SchedulingSettings = Field(default_factory=SchedulingSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


# Global settings instance
_settings: Optional[AppSettings] = None


def get_settings() -> AppSettings:
    """Get application settings."""
    global _settings
    if _settings is None:
        _settings = AppSettings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
