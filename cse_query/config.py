"""
Configuration loading and management for cse-query.

Directory endpoints and search bases are read from a YAML file with
environment variable overrides. Without a configuration file the built-in
defaults for the UNSW and CSE directories are used.
"""

import copy
import os
import logging
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = 'cse_query.yaml'

ORGANIZATION = 'organization'
DEPARTMENT = 'department'

DEFAULT_DIRECTORIES = {
    ORGANIZATION: {
        'server_url': 'ldaps://ad.unsw.edu.au/',
        'search_base': 'OU=IDM,DC=ad,DC=unsw,DC=edu,DC=au',
        'bind_domain': 'ad.unsw.edu.au',
        'requires_credentials': True,
    },
    DEPARTMENT: {
        'server_url': 'ldaps://bandleader.cse.unsw.edu.au/',
        'search_base': 'dc=cse,dc=unsw,dc=edu,dc=au',
        'requires_credentials': False,
    },
}


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing required fields."""
    pass


class ConfigLoader:
    """Handles loading and validation of application configuration."""

    ENV_OVERRIDES = {
        'directories.organization.server_url': 'CSE_QUERY_ORGANIZATION_URL',
        'directories.department.server_url': 'CSE_QUERY_DEPARTMENT_URL',
        'logging.level': 'CSE_QUERY_LOG_LEVEL',
    }

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize config loader.

        Args:
            config_path: Path to config file. If None, uses CSE_QUERY_CONFIG env var or 'cse_query.yaml'
        """
        self.explicit = bool(config_path or os.getenv('CSE_QUERY_CONFIG'))
        self.config_path = config_path or os.getenv('CSE_QUERY_CONFIG') or DEFAULT_CONFIG_PATH
        self.config = {}

    def load(self) -> Dict[str, Any]:
        """
        Load configuration from file and apply environment overrides.

        Returns:
            Parsed and validated configuration dictionary

        Raises:
            ConfigurationError: If a requested config file is missing or validation fails
        """
        try:
            with open(self.config_path, 'r') as f:
                data = yaml.safe_load(f) or {}
            logger.debug(f"Read configuration from {self.config_path}")
        except FileNotFoundError:
            if self.explicit:
                raise ConfigurationError(f"Configuration file not found: {self.config_path}")
            logger.debug("No configuration file, using built-in directory settings")
            data = {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")

        return self.build(data)

    def build(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply defaults, environment overrides and validation to data."""
        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration must be a mapping: {self.config_path}")
        self.config = data

        self._apply_defaults()
        self._apply_env_overrides()
        self._validate()

        return self.config

    def _apply_env_overrides(self):
        """Apply environment variable overrides."""
        for config_key, env_var in self.ENV_OVERRIDES.items():
            env_value = os.getenv(env_var)
            if env_value:
                self._set_nested_value(self.config, config_key, env_value)
                logger.debug(f"Applied environment override for {config_key}")

    def _set_nested_value(self, config: Dict, key_path: str, value: Any):
        """Set a nested configuration value using dot notation."""
        keys = key_path.split('.')
        current = config
        for key in keys[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]
        current[keys[-1]] = value

    def _validate(self):
        """Validate required configuration fields."""
        errors = []

        directories = self.config.get('directories', {})
        for name in (ORGANIZATION, DEPARTMENT):
            directory = directories.get(name)
            if not isinstance(directory, dict):
                errors.append(f"Missing directory configuration: {name}")
                continue

            for field in ('server_url', 'search_base'):
                if not directory.get(field):
                    errors.append(f"Missing required field directories.{name}.{field}")

            server_url = str(directory.get('server_url', ''))
            if server_url and not server_url.lower().startswith(('ldap://', 'ldaps://')):
                errors.append(f"Invalid server_url for directories.{name}: {server_url}")

            for field in ('connection_timeout', 'receive_timeout'):
                value = directory.get(field)
                if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
                    errors.append(f"Invalid {field} for directories.{name}: {value}")

        if errors:
            raise ConfigurationError("Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in errors))

    def _apply_defaults(self):
        """Apply default values for optional configuration fields."""
        directories = self.config.get('directories')
        if directories is None:
            directories = self.config['directories'] = {}
        if not isinstance(directories, dict):
            raise ConfigurationError("'directories' must be a mapping")

        for name, defaults in DEFAULT_DIRECTORIES.items():
            directory = directories.setdefault(name, {})
            if not isinstance(directory, dict):
                continue
            for key, value in defaults.items():
                directory.setdefault(key, copy.deepcopy(value))
            directory.setdefault('verify_ssl', True)
            directory.setdefault('connection_timeout', 10)
            directory.setdefault('receive_timeout', 10)

        logging_defaults = {
            'level': 'WARNING',
            'log_dir': None,
            'retention_days': 7
        }
        logging_config = self.config.get('logging')
        if logging_config is None:
            logging_config = self.config['logging'] = {}
        if not isinstance(logging_config, dict):
            raise ConfigurationError("'logging' must be a mapping")
        for key, value in logging_defaults.items():
            logging_config.setdefault(key, value)


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Convenience function to load configuration.

    Args:
        config_path: Path to config file

    Returns:
        Loaded configuration dictionary
    """
    loader = ConfigLoader(config_path)
    return loader.load()


def default_config() -> Dict[str, Any]:
    """Return the built-in configuration without reading any file."""
    return ConfigLoader().build({})
