"""
Configuration Management Module for Crowdfund Validators

Handles hierarchical configuration loading, environment variable mapping and
validation of the constants injected into validators at instantiation:
royalty percentage, royalty address and the identification token that marks
the protocol configuration entry.
"""

import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from ledger.exceptions import ConfigurationError
from ledger.transaction import Address, Credential


# Configuration file locations in order of precedence (highest to lowest)
CONFIG_SEARCH_PATHS = [
    Path.cwd() / '.crowdfund.yml',
    Path.cwd() / '.crowdfund.json',
    Path.home() / '.crowdfund' / 'config.yml',
    Path.home() / '.crowdfund' / 'config.json',
    Path('/etc/crowdfund/config.yml'),
]

# Environment variable prefix; nested keys are separated by a double underscore
# e.g. CROWDFUND_VALIDATOR__ROYALTY_PERCENT=7
ENV_PREFIX = 'CROWDFUND_'
ENV_SEPARATOR = '__'

DEFAULT_CONFIG = {
    'validator': {
        'validator_id': 'crowdfund_validator_v1',
        'royalty_percent': 5,
        'identification_token_name': b'CONFIG'.hex(),
        'log_level': 'INFO',
    }
}


class ValidatorSettings(BaseModel):
    """Constants injected into validators at instantiation."""

    model_config = ConfigDict(frozen=True)

    validator_id: str = Field(default='crowdfund_validator_v1')
    royalty_percent: int = Field(default=5, ge=0, le=100, description="Platform share of releases")
    identification_policy: bytes = Field(..., description="Policy of the config identification token")
    identification_token_name: bytes = Field(default=b'CONFIG')
    royalty_key_hash: bytes = Field(..., description="Platform payout key hash")
    royalty_stake_key_hash: Optional[bytes] = Field(default=None)
    log_level: str = Field(default='INFO')

    @field_validator('identification_policy', 'identification_token_name',
                     'royalty_key_hash', 'royalty_stake_key_hash', mode='before')
    @classmethod
    def parse_hex(cls, v):
        """Accept hex strings for byte fields."""
        if isinstance(v, str):
            if v.startswith('0x'):
                v = v[2:]
            try:
                return bytes.fromhex(v)
            except ValueError:
                raise ValueError('Expected a hex string')
        return v

    @field_validator('identification_policy', 'royalty_key_hash', 'royalty_stake_key_hash')
    @classmethod
    def validate_hash_size(cls, v):
        """Validate 28-byte hashes."""
        if v is not None and len(v) != 28:
            raise ValueError('Hash must be 28 bytes')
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level name."""
        level = v.upper()
        if level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ValueError(f'Invalid log level: {v}')
        return level

    @property
    def royalty_address(self) -> Address:
        """Address receiving the platform share of milestone releases."""
        stake = Credential.key(self.royalty_stake_key_hash) if self.royalty_stake_key_hash else None
        return Address(Credential.key(self.royalty_key_hash), stake)


class ConfigurationManager:
    """Manages hierarchical configuration with environment variable support."""

    def __init__(self, config_file: Optional[str] = None,
                 environ: Optional[Dict[str, str]] = None):
        """
        Initialize configuration manager.

        Args:
            config_file: Explicit configuration file path
            environ: Environment mapping (defaults to os.environ)
        """
        self.logger = logging.getLogger('validator.config')
        self.config_file = config_file
        self.environ = os.environ if environ is None else environ
        self._config_cache = None
        self._config_sources: List[str] = []

    def load(self) -> Dict[str, Any]:
        """
        Load configuration from all sources in hierarchical order.

        Returns:
            Merged configuration dictionary
        """
        if self._config_cache is not None:
            return self._config_cache

        configs = [DEFAULT_CONFIG]
        self._config_sources = ["defaults"]

        if self.config_file:
            path = Path(self.config_file)
            if not path.exists():
                raise ConfigurationError(f"Config file not found: {path}")
            configs.append(self._load_config_file(path))
            self._config_sources.append(f"file:{path}")
        else:
            for path in CONFIG_SEARCH_PATHS:
                if path.exists():
                    configs.append(self._load_config_file(path))
                    self._config_sources.append(f"file:{path}")
                    self.logger.debug(f"Loaded config from {path}")
                    break

        env_config = self._load_environment_variables()
        if env_config:
            configs.append(env_config)
            self._config_sources.append("environment")

        self._config_cache = self._deep_merge(*configs)
        return self._config_cache

    def _load_config_file(self, path: Path) -> Dict[str, Any]:
        """Load configuration from a YAML or JSON file."""
        try:
            with open(path, 'r') as f:
                if path.suffix in ['.yml', '.yaml']:
                    data = yaml.safe_load(f)
                elif path.suffix == '.json':
                    data = json.load(f)
                else:
                    raise ConfigurationError(f"Unknown config file format: {path}")
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Failed to load config from {path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")
        return data

    def _load_environment_variables(self) -> Dict[str, Any]:
        """Load configuration from environment variables."""
        env_config: Dict[str, Any] = {}

        for key, value in self.environ.items():
            if not key.startswith(ENV_PREFIX):
                continue

            parts = key[len(ENV_PREFIX):].lower().split(ENV_SEPARATOR)
            current = env_config
            for part in parts[:-1]:
                current = current.setdefault(part, {})
            # Values stay strings; ValidatorSettings coerces them
            current[parts[-1]] = value

        return env_config

    def _deep_merge(self, *dicts: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge multiple dictionaries."""
        result: Dict[str, Any] = {}

        for dictionary in dicts:
            for key, value in dictionary.items():
                if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                    result[key] = self._deep_merge(result[key], value)
                else:
                    result[key] = value

        return result

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-notation path.

        Args:
            key_path: Dot-separated path (e.g., 'validator.royalty_percent')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        current = self.load()
        for key in key_path.split('.'):
            if isinstance(current, dict) and key in current:
                current = current[key]
            else:
                return default
        return current

    def get_sources(self) -> List[str]:
        """Get list of configuration sources that were loaded."""
        self.load()
        return self._config_sources

    def settings(self) -> ValidatorSettings:
        """
        Build validated validator settings.

        Returns:
            ValidatorSettings instance
        """
        section = self.load().get('validator', {})
        try:
            return ValidatorSettings(**section)
        except PydanticValidationError as e:
            raise ConfigurationError(f"Invalid validator configuration: {e}") from e


def load_settings(config_file: Optional[str] = None,
                  environ: Optional[Dict[str, str]] = None) -> ValidatorSettings:
    """
    Load validator settings from defaults, file and environment.

    Args:
        config_file: Optional explicit configuration file
        environ: Optional environment mapping

    Returns:
        Validated settings
    """
    return ConfigurationManager(config_file, environ).settings()


def setup_logging(level: str = 'INFO') -> logging.Logger:
    """Configure the validator logger hierarchy."""
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    logger = logging.getLogger('validator')
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    if not logger.handlers:
        logger.addHandler(handler)
    return logger
