"""
Local configuration loading.

Loads the settings a process needs before any remote source is reachable
(backend hosts, credentials, namespace overrides, retry bounds) from a YAML
or JSON file and ``KVCONFIG_*`` environment variables. Nested documents are
flattened into the same dot/bracket key space remote sources use:

    kvconfig:
      config:
        etcd:
          hosts: http://etcd-1:2379
    servers:
      - host: a

becomes ``kvconfig.config.etcd.hosts`` and ``servers[0].host``.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from ...core.domain.values import serialize_value


class ConfigLoader:
    """Configuration loader supporting YAML, JSON and environment variables."""

    def __init__(self, env_prefix: str = "KVCONFIG_") -> None:
        self._env_prefix = env_prefix

    def load_config(self, config_file: Optional[str] = None) -> Dict[str, str]:
        """
        Load flat configuration from file and environment variables.

        Args:
            config_file: Path to configuration file (optional)

        Returns:
            Flat key to string value mapping; environment wins over file
        """
        config_data: Dict[str, str] = {}

        if config_file:
            config_data.update(flatten(self._load_from_file(config_file)))

        config_data.update(self._load_from_environment())
        return config_data

    def _load_from_file(self, file_path: str) -> Dict[str, Any]:
        """Load configuration from file."""
        path = Path(file_path)

        if not path.exists():
            raise FileNotFoundError(
                f"Configuration file not found: {file_path}")

        if path.suffix.lower() in ['.yaml', '.yml']:
            return self._load_yaml(file_path)
        elif path.suffix.lower() == '.json':
            return self._load_json(file_path)
        else:
            raise ValueError(
                f"Unsupported configuration file format: {path.suffix}")

    def _load_yaml(self, file_path: str) -> Dict[str, Any]:
        """Load YAML configuration file."""
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {file_path}: {e}")
        except OSError as e:
            raise ValueError(f"Error reading {file_path}: {e}")
        if not isinstance(data, dict):
            raise ValueError(f"Top level of {file_path} must be a mapping")
        return data

    def _load_json(self, file_path: str) -> Dict[str, Any]:
        """Load JSON configuration file."""
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {file_path}: {e}")
        except OSError as e:
            raise ValueError(f"Error reading {file_path}: {e}")
        if not isinstance(data, dict):
            raise ValueError(f"Top level of {file_path} must be an object")
        return data

    def _load_from_environment(self) -> Dict[str, str]:
        """Load configuration overrides from environment variables."""
        env_mappings = {
            f"{self._env_prefix}ENV": "kvconfig.env",
            f"{self._env_prefix}SERVICE_NAME": "kvconfig.service-name",
            f"{self._env_prefix}VERSION": "kvconfig.version",
            f"{self._env_prefix}NAMESPACE": "kvconfig.config.namespace",
            f"{self._env_prefix}START_RETRY_DELAY_MS": "kvconfig.config.start-retry-delay-ms",
            f"{self._env_prefix}MAX_RETRY_DELAY_MS": "kvconfig.config.max-retry-delay-ms",
            f"{self._env_prefix}CONSUL_AGENT": "kvconfig.config.consul.agent",
            f"{self._env_prefix}CONSUL_TOKEN": "kvconfig.config.consul.token",
            f"{self._env_prefix}CONSUL_CA": "kvconfig.config.consul.ca",
            f"{self._env_prefix}CONSUL_NAMESPACE": "kvconfig.config.consul.namespace",
            f"{self._env_prefix}ETCD_HOSTS": "kvconfig.config.etcd.hosts",
            f"{self._env_prefix}ETCD_USERNAME": "kvconfig.config.etcd.username",
            f"{self._env_prefix}ETCD_PASSWORD": "kvconfig.config.etcd.password",
            f"{self._env_prefix}ETCD_CA": "kvconfig.config.etcd.ca",
            f"{self._env_prefix}ETCD_NAMESPACE": "kvconfig.config.etcd.namespace",
            f"{self._env_prefix}ZOOKEEPER_HOSTS": "kvconfig.config.zookeeper.hosts",
            f"{self._env_prefix}ZOOKEEPER_USERNAME": "kvconfig.config.zookeeper.username",
            f"{self._env_prefix}ZOOKEEPER_PASSWORD": "kvconfig.config.zookeeper.password",
            f"{self._env_prefix}ZOOKEEPER_CA": "kvconfig.config.zookeeper.ca",
            f"{self._env_prefix}ZOOKEEPER_NAMESPACE": "kvconfig.config.zookeeper.namespace",
            f"{self._env_prefix}LOG_LEVEL": "kvconfig.logging.level",
        }

        config: Dict[str, str] = {}
        for env_var, key in env_mappings.items():
            value = os.getenv(env_var)
            if value is not None:
                config[key] = value
        return config


def flatten(data: Mapping[str, Any], prefix: str = "") -> Dict[str, str]:
    """
    Flatten a nested mapping into flat configuration keys.

    Lists become ``[n]`` suffixes, scalars are serialized the way they would
    be stored remotely, and None values are dropped.
    """
    result: Dict[str, str] = {}
    for key, value in data.items():
        full_key = f"{prefix}.{key}" if prefix else str(key)
        _flatten_value(full_key, value, result)
    return result


def _flatten_value(key: str, value: Any, result: Dict[str, str]) -> None:
    if value is None:
        return
    if isinstance(value, Mapping):
        result.update(flatten(value, key))
    elif isinstance(value, (list, tuple)):
        for index, item in enumerate(value):
            _flatten_value(f"{key}[{index}]", item, result)
    elif isinstance(value, (str, bool, int, float)):
        result[key] = serialize_value(value)
    else:
        result[key] = str(value)
