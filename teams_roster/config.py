"""
Configuration management for the Teams roster provisioning tool.
"""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_ENV_SETTINGS = dict(
    env_file=".env",
    env_file_encoding="utf-8",
    extra="ignore",
    populate_by_name=True,
)


class AzureConfig(BaseSettings):
    """Azure AD app registration used to call Microsoft Graph."""

    model_config = SettingsConfigDict(**_ENV_SETTINGS)

    tenant_id: str = Field(..., validation_alias="AZURE_TENANT_ID")
    client_id: str = Field(..., validation_alias="AZURE_CLIENT_ID")
    client_secret: str = Field(..., validation_alias="AZURE_CLIENT_SECRET")


class GraphConfig(BaseSettings):
    """Microsoft Graph endpoint and team creation settings."""

    model_config = SettingsConfigDict(**_ENV_SETTINGS)

    base_url: str = Field("https://graph.microsoft.com/v1.0", validation_alias="GRAPH_BASE_URL")
    timeout: float = Field(30.0, validation_alias="GRAPH_TIMEOUT")

    team_visibility: str = Field("private", validation_alias="TEAM_VISIBILITY")
    team_description: str = Field("", validation_alias="TEAM_DESCRIPTION")
    creation_poll_interval: float = Field(5.0, validation_alias="TEAM_CREATION_POLL_INTERVAL")
    creation_poll_attempts: int = Field(24, validation_alias="TEAM_CREATION_POLL_ATTEMPTS")

    @field_validator("team_visibility")
    @classmethod
    def _check_visibility(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in ("private", "public"):
            raise ValueError("TEAM_VISIBILITY must be 'private' or 'public'")
        return value

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class MonitoringConfig(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(**_ENV_SETTINGS)

    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")

    @field_validator("log_level")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.strip().upper()


class Config(BaseSettings):
    """Main configuration class that combines all settings."""

    model_config = SettingsConfigDict(**_ENV_SETTINGS)

    azure: AzureConfig = Field(default_factory=AzureConfig)
    graph: GraphConfig = Field(default_factory=GraphConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)


def load_config(env_file: Optional[str] = None) -> Config:
    """Build the configuration, reading ``env_file`` instead of ``.env`` when given."""
    env_file = env_file or ".env"
    return Config(
        azure=AzureConfig(_env_file=env_file),
        graph=GraphConfig(_env_file=env_file),
        monitoring=MonitoringConfig(_env_file=env_file),
    )
