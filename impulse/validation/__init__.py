"""
Impulse validation module.

This module provides configuration validation and the credential source.
"""

from impulse.validation.config import (
    Config,
    ConfigCredentialSource,
    ConfigError,
    CredentialSource,
    Credentials,
    ImpulseConfig,
    StaticCredentialSource,
)

__all__ = [
    "Config",
    "ConfigCredentialSource",
    "ConfigError",
    "CredentialSource",
    "Credentials",
    "ImpulseConfig",
    "StaticCredentialSource",
]
