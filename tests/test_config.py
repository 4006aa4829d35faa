"""Tests for configuration management."""

from pathlib import Path

import pytest
import yaml

from impulse.validation.config import (
    Config,
    ConfigCredentialSource,
    ConfigError,
    ImpulseConfig,
    StaticCredentialSource,
)


@pytest.fixture
def isolated_config(tmp_path, monkeypatch):
    """Point global and local config lookups at a temporary directory."""
    home = tmp_path / "home"
    project = tmp_path / "project"
    project.mkdir()
    monkeypatch.setattr(Config, "GLOBAL_CONFIG_DIR", home / ".impulse")
    monkeypatch.chdir(project)
    monkeypatch.delenv("IMPULSE_API_KEY", raising=False)
    monkeypatch.delenv("Z_AI_API_KEY", raising=False)
    return home, project


class TestConfig:
    """Tests for Config class."""

    def test_deep_merge(self):
        """Test deep merging of dictionaries."""
        config = Config()

        base = {
            "a": 1,
            "b": {"c": 2, "d": 3},
            "e": [1, 2, 3],
        }

        override = {
            "b": {"c": 10, "f": 5},
            "g": "new",
        }

        result = config._deep_merge(base, override)

        assert result["a"] == 1
        assert result["b"]["c"] == 10
        assert result["b"]["d"] == 3
        assert result["b"]["f"] == 5
        assert result["e"] == [1, 2, 3]
        assert result["g"] == "new"

    def test_local_overrides_global(self):
        """Local values win; untouched global values survive."""
        config = Config(
            global_config={"mcp": {"call_timeout": 30, "tool_timeout": 45}},
            local_config={"mcp": {"call_timeout": 90}},
        )

        assert config.merged.mcp.call_timeout == 90
        assert config.merged.mcp.tool_timeout == 45

    def test_invalid_config_raises(self):
        """Validation failures surface as ConfigError."""
        config = Config(global_config={"agent": {"max_subagent_iterations": "lots"}})

        with pytest.raises(ConfigError, match="Invalid configuration"):
            config.merged

    def test_malformed_yaml_raises(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("api_key: [unterminated\n")

        with pytest.raises(ConfigError, match="Failed to load config"):
            Config._load_yaml(path)

    def test_missing_file_is_empty(self, tmp_path):
        assert Config._load_yaml(tmp_path / "missing.yaml") == {}
        assert Config._load_yaml(None) == {}

    def test_api_key_prefers_config(self, monkeypatch):
        monkeypatch.setenv("IMPULSE_API_KEY", "from-env")
        config = Config(global_config={"api_key": "from-config"})

        assert config.get_api_key() == "from-config"

    def test_api_key_falls_back_to_env(self, monkeypatch):
        monkeypatch.delenv("IMPULSE_API_KEY", raising=False)
        monkeypatch.setenv("Z_AI_API_KEY", "zai-key")

        assert Config().get_api_key() == "zai-key"

    def test_api_key_absent(self, monkeypatch):
        monkeypatch.delenv("IMPULSE_API_KEY", raising=False)
        monkeypatch.delenv("Z_AI_API_KEY", raising=False)

        assert Config().get_api_key() is None

    def test_set_api_key_resets_cache(self):
        config = Config()
        assert config.merged.api_key is None

        config.set_api_key("new-key")

        assert config.merged.api_key == "new-key"

    def test_load_and_save_round_trip(self, isolated_config):
        home, project = isolated_config
        local_dir = project / ".impulse"
        local_dir.mkdir()
        (local_dir / "config.yaml").write_text(yaml.dump({"interaction": {"express": True}}))

        config = Config.load()
        assert config.merged.interaction.express is True

        config.set_api_key("saved-key", global_=True)
        config.save()

        saved = yaml.safe_load((home / ".impulse" / "config.yaml").read_text())
        assert saved == {"api_key": "saved-key"}
        assert Config.load().get_api_key() == "saved-key"


class TestImpulseConfig:
    """Tests for ImpulseConfig schema."""

    def test_default_config(self):
        """Test default configuration values."""
        config = ImpulseConfig()

        assert config.api_key is None
        assert config.agent.max_subagent_iterations == 10
        assert config.mcp.enabled is True
        assert config.mcp.health_check_timeout == 5.0
        assert config.mcp.call_timeout == 60.0
        assert config.interaction.express is False

    def test_server_overrides(self):
        config = ImpulseConfig(mcp={"servers": {"context7": {"enabled": False}}})

        assert config.mcp.servers["context7"].enabled is False
        assert config.mcp.servers["context7"].url is None


class TestCredentialSources:
    """Tests for the credential sources handed to the MCP manager."""

    def test_static_source(self):
        assert StaticCredentialSource("k").load().api_key == "k"
        assert StaticCredentialSource().load().api_key is None

    def test_config_source_rereads_files(self, isolated_config):
        """A key written after start-up is seen by the next load()."""
        home, _ = isolated_config
        source = ConfigCredentialSource()
        assert source.load().api_key is None

        (home / ".impulse").mkdir(parents=True)
        (home / ".impulse" / "config.yaml").write_text("api_key: late-key\n")

        assert source.load().api_key == "late-key"
