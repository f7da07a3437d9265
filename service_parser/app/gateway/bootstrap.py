"""
Prepare on-disk state for the agent runtime before the gateway starts.
"""

import json
import os
import shutil
from pathlib import Path
from typing import Any, Dict, Optional

from shared.logging import get_logger

from ..config import ParserConfig

CONFIG_FILENAME = "openclaw.json"
AUTH_PROFILES_FILENAME = "auth-profiles.json"
DEFAULT_AUTH_PROFILE = "anthropic:default"

logger = get_logger("parser.gateway.bootstrap")


def build_agent_config(config: ParserConfig, token: Optional[str]) -> Dict[str, Any]:
    """Agent runtime configuration: model, workspace, gateway auth and skills."""
    workspace = str(config.workspace_dir)
    return {
        "auth": {
            "profiles": {
                DEFAULT_AUTH_PROFILE: {
                    "provider": "anthropic",
                    "mode": "api_key",
                }
            }
        },
        "agents": {
            "defaults": {
                "model": {"primary": config.agent_model},
                "workspace": workspace,
                "compaction": {"mode": "safeguard"},
            }
        },
        "gateway": {
            "port": config.gateway_port,
            "bind": "loopback",
            "auth": {"mode": "token", "token": token},
        },
        "skills": {
            "load": {
                "extraDirs": [str(config.workspace_dir / "skills")],
                "watch": True,
            }
        },
        "channels": {},
        "tools": {
            "web": {"search": {"enabled": False}, "fetch": {"enabled": True}},
        },
    }


def write_json(path: Path, payload: Dict[str, Any], mode: Optional[int] = None) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    if mode is not None:
        os.chmod(path, mode)


def write_auth_profiles(config: ParserConfig) -> Optional[Path]:
    """Fallback credential store for the agent, written only when a key is set."""
    if not config.anthropic_api_key:
        return None

    path = config.state_dir / "agents" / config.agent_name / "agent" / AUTH_PROFILES_FILENAME
    write_json(
        path,
        {
            "profiles": {
                DEFAULT_AUTH_PROFILE: {
                    "provider": "anthropic",
                    "mode": "api_key",
                    "apiKey": config.anthropic_api_key,
                }
            }
        },
        mode=0o600,
    )
    logger.info("Wrote agent auth profiles", path=str(path))
    return path


def prepare_agent_state(config: ParserConfig, token: Optional[str]) -> Path:
    """Create state/workspace dirs, write the agent config if absent, copy skills."""
    skills_dir = config.workspace_dir / "skills"
    for directory in (config.state_dir, config.workspace_dir, skills_dir):
        directory.mkdir(parents=True, exist_ok=True)

    config_path = config.state_dir / CONFIG_FILENAME
    if config_path.exists():
        logger.info("Agent config already present", path=str(config_path))
    else:
        write_json(config_path, build_agent_config(config, token), mode=0o600)
        logger.info("Created agent config", path=str(config_path))

    source = config.skills_source_dir
    if source is not None and source.is_dir():
        shutil.copytree(source, skills_dir / source.name, dirs_exist_ok=True)
        logger.info("Copied agent skill", source=str(source), destination=str(skills_dir / source.name))

    write_auth_profiles(config)
    return config_path
