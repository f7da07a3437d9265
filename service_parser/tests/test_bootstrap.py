"""
Unit tests for agent state bootstrap.
"""

import json
import stat

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_parser.app.config import ParserConfig
from service_parser.app.gateway.bootstrap import CONFIG_FILENAME, build_agent_config, prepare_agent_state


class TestPrepareAgentState:
    """Test cases for prepare_agent_state."""

    @pytest.fixture
    def make_config(self, tmp_path):
        def _make(**overrides) -> ParserConfig:
            values = dict(
                upload_dir=tmp_path / "uploads",
                output_dir=tmp_path / "output",
                state_dir=tmp_path / ".openclaw",
                workspace_dir=tmp_path / "workspace",
                gateway_port=19999,
                anthropic_api_key=None,
            )
            values.update(overrides)
            return ParserConfig(**values)
        return _make

    def test_writes_config_when_absent(self, make_config, tmp_path):
        """Test a fresh state dir gets a private agent config."""
        config = make_config()

        path = prepare_agent_state(config, "tok-123")

        assert path == tmp_path / ".openclaw" / CONFIG_FILENAME
        written = json.loads(path.read_text())
        assert written["gateway"]["port"] == 19999
        assert written["gateway"]["bind"] == "loopback"
        assert written["gateway"]["auth"] == {"mode": "token", "token": "tok-123"}
        assert written["agents"]["defaults"]["workspace"] == str(tmp_path / "workspace")
        assert stat.S_IMODE(path.stat().st_mode) == 0o600
        assert (tmp_path / "workspace" / "skills").is_dir()

    def test_existing_config_left_alone(self, make_config, tmp_path):
        """Test operator-provided config is never overwritten."""
        config = make_config()
        state = tmp_path / ".openclaw"
        state.mkdir()
        (state / CONFIG_FILENAME).write_text('{"custom": true}')

        prepare_agent_state(config, "tok-123")

        assert json.loads((state / CONFIG_FILENAME).read_text()) == {"custom": True}

    def test_auth_profiles_only_with_key(self, make_config, tmp_path):
        """Test the credential store is written only when a key is configured."""
        profiles = tmp_path / ".openclaw" / "agents" / "main" / "agent" / "auth-profiles.json"

        prepare_agent_state(make_config(), "tok")
        assert not profiles.exists()

        prepare_agent_state(make_config(anthropic_api_key="sk-ant-test"), "tok")
        data = json.loads(profiles.read_text())
        assert data["profiles"]["anthropic:default"]["apiKey"] == "sk-ant-test"
        assert stat.S_IMODE(profiles.stat().st_mode) == 0o600

    def test_skills_copied(self, make_config, tmp_path):
        """Test a bundled skill directory lands in the workspace."""
        source = tmp_path / "eog-parser"
        source.mkdir()
        (source / "SKILL.md").write_text("# EOG parser skill\n")

        prepare_agent_state(make_config(skills_source_dir=source), "tok")

        assert (tmp_path / "workspace" / "skills" / "eog-parser" / "SKILL.md").read_text() == "# EOG parser skill\n"

    def test_build_agent_config_model(self, make_config):
        """Test the configured model becomes the agent default."""
        config = make_config(agent_model="anthropic/claude-test")

        payload = build_agent_config(config, None)

        assert payload["agents"]["defaults"]["model"] == {"primary": "anthropic/claude-test"}
        assert payload["gateway"]["auth"]["token"] is None
