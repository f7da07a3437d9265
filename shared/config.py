"""
Shared configuration management for the EOG Parser service.
"""

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    env: str = Field(default="local", validation_alias=AliasChoices("PARSER_ENV", "env"))
    log_level: str = Field(default="info", validation_alias=AliasChoices("PARSER_LOG_LEVEL", "log_level"))

    # Observability
    enable_tracing: bool = Field(
        default=False, validation_alias=AliasChoices("PARSER_ENABLE_TRACING", "enable_tracing")
    )
    otel_exporter: str = Field(
        default="http://localhost:4317", validation_alias=AliasChoices("PARSER_OTEL_EXPORTER", "otel_exporter")
    )
    enable_console_tracing: bool = Field(
        default=False,
        validation_alias=AliasChoices("PARSER_ENABLE_CONSOLE_TRACING", "enable_console_tracing"),
    )


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str = "service"
    port: int = 8000
    host: str = "0.0.0.0"


def get_config(service_name: str, port: int) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port)
