"""
Configuration for the Parser service.
"""

from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, Field

from shared.config import ServiceConfig


def _env(*names: str) -> AliasChoices:
    return AliasChoices(*names)


class ParserConfig(ServiceConfig):
    """Settings for the PDF parse façade and the agent runtime it drives."""

    service_name: str = "parser"
    port: int = Field(default=8080, validation_alias=_env("PORT", "port"))

    # Filesystem staging
    upload_dir: Path = Field(default=Path("/data/uploads"), validation_alias=_env("UPLOAD_DIR", "upload_dir"))
    output_dir: Path = Field(default=Path("/data/output"), validation_alias=_env("OUTPUT_DIR", "output_dir"))
    state_dir: Path = Field(
        default=Path("/data/.openclaw"), validation_alias=_env("OPENCLAW_STATE_DIR", "state_dir")
    )
    workspace_dir: Path = Field(
        default=Path("/data/workspace"), validation_alias=_env("OPENCLAW_WORKSPACE_DIR", "workspace_dir")
    )
    skills_source_dir: Optional[Path] = Field(
        default=None, validation_alias=_env("SKILLS_SOURCE_DIR", "skills_source_dir")
    )

    # Security
    trust_proxy_headers: bool = Field(
        default=False, validation_alias=_env("TRUST_PROXY_HEADERS", "trust_proxy_headers")
    )
    api_key: Optional[str] = Field(default=None, validation_alias=_env("API_KEY", "api_key"))
    gateway_token: Optional[str] = Field(
        default=None, validation_alias=_env("OPENCLAW_GATEWAY_TOKEN", "gateway_token")
    )
    anthropic_api_key: Optional[str] = Field(
        default=None, validation_alias=_env("ANTHROPIC_API_KEY", "anthropic_api_key")
    )

    # Agent runtime
    agent_command: str = Field(default="openclaw", validation_alias=_env("AGENT_COMMAND", "agent_command"))
    agent_name: str = Field(default="main", validation_alias=_env("AGENT_NAME", "agent_name"))
    agent_model: str = Field(
        default="anthropic/claude-sonnet-4-20250514", validation_alias=_env("AGENT_MODEL", "agent_model")
    )
    gateway_host: str = Field(default="127.0.0.1", validation_alias=_env("GATEWAY_HOST", "gateway_host"))
    gateway_port: int = Field(default=18789, validation_alias=_env("GATEWAY_PORT", "gateway_port"))
    start_gateway: bool = Field(default=True, validation_alias=_env("START_GATEWAY", "start_gateway"))
    agent_bootstrap: bool = Field(default=True, validation_alias=_env("AGENT_BOOTSTRAP", "agent_bootstrap"))

    # Timeouts and delays (seconds)
    backend_timeout_seconds: float = Field(
        default=300.0, validation_alias=_env("BACKEND_TIMEOUT_SECONDS", "backend_timeout_seconds")
    )
    gateway_startup_grace_seconds: float = Field(
        default=5.0, validation_alias=_env("GATEWAY_STARTUP_GRACE_SECONDS", "gateway_startup_grace_seconds")
    )
    upload_cleanup_delay_seconds: float = Field(
        default=60.0, validation_alias=_env("UPLOAD_CLEANUP_DELAY_SECONDS", "upload_cleanup_delay_seconds")
    )
    download_cleanup_delay_seconds: float = Field(
        default=300.0, validation_alias=_env("DOWNLOAD_CLEANUP_DELAY_SECONDS", "download_cleanup_delay_seconds")
    )

    # Limits
    max_upload_bytes: int = Field(
        default=50 * 1024 * 1024, validation_alias=_env("MAX_UPLOAD_BYTES", "max_upload_bytes")
    )
    rate_limit_requests: int = Field(
        default=100, validation_alias=_env("RATE_LIMIT_REQUESTS", "rate_limit_requests")
    )
    rate_limit_window_seconds: float = Field(
        default=3600.0, validation_alias=_env("RATE_LIMIT_WINDOW_SECONDS", "rate_limit_window_seconds")
    )


def get_parser_config(**overrides) -> ParserConfig:
    """Load parser configuration from the environment, applying overrides."""
    return ParserConfig(**overrides)
