"""
Impulse Configuration - Configuration loading and validation.

This module provides the Config class for managing Impulse configuration
from both global (~/.impulse/config.yaml) and local (.impulse/config.yaml)
sources, and the credential source the MCP manager reads its API key from.
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

import yaml
from pydantic import BaseModel, Field, ValidationError

API_KEY_ENV_VARS = ("IMPULSE_API_KEY", "Z_AI_API_KEY")


class ConfigError(Exception):
    """Raised when there's a configuration error."""

    pass


class AgentConfig(BaseModel):
    """Configuration for the agent and its subagents."""

    model: Optional[str] = None
    subagent_model: Optional[str] = None
    api_base: Optional[str] = None
    max_subagent_iterations: int = 10
    request_timeout: float = 120.0


class MCPServerOverride(BaseModel):
    """Per-server overrides applied on top of the built-in provider set."""

    enabled: Optional[bool] = None
    url: Optional[str] = None
    command: Optional[str] = None
    args: Optional[List[str]] = None
    env: Optional[Dict[str, str]] = None


class MCPConfig(BaseModel):
    """Configuration for the MCP provider layer."""

    enabled: bool = True
    health_check_timeout: float = 5.0
    call_timeout: float = 60.0
    tool_timeout: float = 60.0
    servers: Dict[str, MCPServerOverride] = Field(default_factory=dict)


class InteractionConfig(BaseModel):
    """Configuration for questions and permission prompts."""

    question_timeout: float = 600.0
    permission_timeout: float = 600.0
    express: bool = False


class ImpulseConfig(BaseModel):
    """Complete Impulse configuration schema."""

    api_key: Optional[str] = None
    agent: AgentConfig = Field(default_factory=AgentConfig)
    mcp: MCPConfig = Field(default_factory=MCPConfig)
    interaction: InteractionConfig = Field(default_factory=InteractionConfig)


class Credentials(BaseModel):
    """The credential set handed to capability providers."""

    api_key: Optional[str] = None


class CredentialSource(Protocol):
    def load(self) -> Credentials: ...


class Config:
    """
    Impulse configuration manager.

    Handles loading, merging, and validating configuration from:
    - Global: ~/.impulse/config.yaml
    - Local: .impulse/config.yaml (project-specific)

    Local configuration overrides global configuration.

    Example:
        >>> config = Config.load()
        >>> key = config.get_api_key()
        >>> config.set_api_key("sk-...", global_=True)
        >>> config.save()
    """

    GLOBAL_CONFIG_DIR = Path.home() / ".impulse"
    LOCAL_CONFIG_DIR = Path(".impulse")

    def __init__(
        self,
        global_config: Optional[Dict[str, Any]] = None,
        local_config: Optional[Dict[str, Any]] = None,
        local_path: Optional[Path] = None,
    ):
        """
        Initialize Config.

        Args:
            global_config: Global configuration dictionary.
            local_config: Local (project) configuration dictionary.
            local_path: Where the local configuration was read from.
        """
        self._global_config = global_config or {}
        self._local_config = local_config or {}
        self._local_path = local_path
        self._merged: Optional[ImpulseConfig] = None

    @classmethod
    def load(cls) -> "Config":
        """
        Load configuration from default locations.

        Returns:
            Config instance with loaded configuration.
        """
        local_path = cls._find_local_config()
        global_config = cls._load_yaml(cls.GLOBAL_CONFIG_DIR / "config.yaml")
        local_config = cls._load_yaml(local_path)

        return cls(global_config=global_config, local_config=local_config, local_path=local_path)

    @classmethod
    def _load_yaml(cls, path: Optional[Path]) -> Dict[str, Any]:
        """Load YAML file if it exists."""
        if path is None or not path.exists():
            return {}

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load config from {path}: {e}")
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"Failed to load config from {path}: expected a mapping")
        return data

    @classmethod
    def _find_local_config(cls) -> Optional[Path]:
        """Find the local config file by walking up the directory tree."""
        current = Path.cwd()
        while current != current.parent:
            config_path = current / cls.LOCAL_CONFIG_DIR / "config.yaml"
            if config_path.exists():
                return config_path
            current = current.parent
        return None

    def get_merged_config(self) -> Dict[str, Any]:
        """Get the merged configuration as a dictionary."""
        return self._deep_merge(self._global_config.copy(), self._local_config)

    def get_global_config(self) -> Dict[str, Any]:
        return self._global_config

    def get_local_config(self) -> Dict[str, Any]:
        return self._local_config

    @property
    def merged(self) -> ImpulseConfig:
        """Get the validated merged configuration."""
        if self._merged is None:
            try:
                self._merged = ImpulseConfig(**self.get_merged_config())
            except ValidationError as e:
                raise ConfigError(f"Invalid configuration: {e}")
        return self._merged

    def get_api_key(self) -> Optional[str]:
        """
        Get the provider API key.

        Checks config first, then environment variables.
        """
        if self.merged.api_key:
            return self.merged.api_key

        for env_var in API_KEY_ENV_VARS:
            value = os.environ.get(env_var)
            if value:
                return value

        return None

    def set_api_key(self, api_key: str, global_: bool = True) -> None:
        config = self._global_config if global_ else self._local_config
        config["api_key"] = api_key
        self._merged = None  # Reset cache

    def set_express(self, enabled: bool, global_: bool = False) -> None:
        """Turn express mode (auto-approve permission prompts) on or off."""
        config = self._global_config if global_ else self._local_config
        config.setdefault("interaction", {})["express"] = enabled
        self._merged = None

    def save(self) -> None:
        """Save configuration to files."""
        self._save_yaml(self.GLOBAL_CONFIG_DIR / "config.yaml", self._global_config)

        if self._local_config:
            local_path = self._local_path or (Path.cwd() / self.LOCAL_CONFIG_DIR / "config.yaml")
            self._save_yaml(local_path, self._local_config)
            self._local_path = local_path

    def _save_yaml(self, path: Path, data: Dict[str, Any]) -> None:
        """Save data to a YAML file."""
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries, with override taking precedence."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result


class ConfigCredentialSource:
    """
    Reads the API key from the configuration files on every ``load()``.

    A key written to the config (or exported) after start-up is seen by
    the next caller, which is what lets a manager waiting for a credential
    recover without a restart.
    """

    def __init__(self, loader=Config.load):
        self._loader = loader

    def load(self) -> Credentials:
        return Credentials(api_key=self._loader().get_api_key())


class StaticCredentialSource:
    """A fixed credential set, for tests and embedding."""

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key

    def load(self) -> Credentials:
        return Credentials(api_key=self.api_key)
