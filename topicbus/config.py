"""Configuration management for topicbus."""

import os
import json
import yaml
from copy import deepcopy
from typing import Dict, Optional, Any
from urllib.parse import urlparse

from .errors import PatternError


DEFAULTS: Dict[str, Any] = {
    "bus": {
        "url": "mqtt://localhost:1883",
        "client_id": None,
        "keepalive": 60,
        "qos": 0,
    },
    "patterns": {},
    "logging": {
        "level": "INFO",
    },
    "monitoring": {
        "prometheus_enabled": False,
        "prometheus_port": 9090,
    },
    "api": {
        "host": "0.0.0.0",
        "port": 8080,
    },
}


def _to_bool(value: str) -> bool:
    return value.lower() == "true"


class Config:
    """Configuration manager with file and environment variable support."""

    ENV_MAPPINGS = {
        "MQTT_URL": ("bus", "url"),
        "MQTT_CLIENT_ID": ("bus", "client_id"),
        "MQTT_KEEPALIVE": ("bus", "keepalive", int),
        "MQTT_QOS": ("bus", "qos", int),
        "LOG_LEVEL": ("logging", "level"),
        "PROMETHEUS_ENABLED": ("monitoring", "prometheus_enabled", _to_bool),
        "PROMETHEUS_PORT": ("monitoring", "prometheus_port", int),
        "API_HOST": ("api", "host"),
        "API_PORT": ("api", "port", int),
    }

    def __init__(self, config_file: Optional[str] = None):
        self.config: Dict[str, Any] = {}
        self.config_file = config_file or os.getenv('TOPICBUS_CONFIG', 'topicbus.yaml')
        self._load_config()
        self._load_env_overrides()

    def _load_config(self):
        """Load configuration from file, on top of the defaults."""
        self._set_defaults()
        if not os.path.exists(self.config_file):
            return

        with open(self.config_file, 'r') as f:
            if self.config_file.endswith('.yaml') or self.config_file.endswith('.yml'):
                loaded = yaml.safe_load(f) or {}
            elif self.config_file.endswith('.json'):
                loaded = json.load(f)
            else:
                return

        if not isinstance(loaded, dict):
            raise ValueError(f"config file must contain a mapping ({self.config_file})")

        for section, values in loaded.items():
            # an empty section ("logging:") keeps its defaults
            if values is None:
                continue
            if not isinstance(values, dict):
                raise ValueError(f"config section {section!r} must be a mapping ({self.config_file})")
            if isinstance(self.config.get(section), dict):
                self.config[section].update(values)
            else:
                self.config[section] = values

    def _set_defaults(self):
        """Set default configuration values."""
        self.config = deepcopy(DEFAULTS)

    def _load_env_overrides(self):
        """Override config with environment variables."""
        for env_key, (section, key, *converters) in self.ENV_MAPPINGS.items():
            value = os.getenv(env_key)
            if value is not None:
                if converters:
                    converter = converters[0]
                    try:
                        value = converter(value)
                    except (ValueError, TypeError):
                        continue
                self.set(section, key, value)

    def get(self, section: str, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        value = self.config.get(section, {}).get(key, default)
        return default if value is None else value

    def set(self, section: str, key: str, value: Any):
        """Set configuration value."""
        if section not in self.config:
            self.config[section] = {}
        self.config[section][key] = value

    @property
    def patterns(self) -> Dict[str, str]:
        """Label to pattern mapping registered at startup, in file order."""
        return dict(self.config.get("patterns") or {})

    def save(self, filename: Optional[str] = None):
        """Save configuration to file."""
        target_file = filename or self.config_file
        with open(target_file, 'w') as f:
            if target_file.endswith('.yaml') or target_file.endswith('.yml'):
                yaml.safe_dump(self.config, f, default_flow_style=False, sort_keys=False)
            else:
                json.dump(self.config, f, indent=2)

    def validate(self) -> tuple[bool, list[str]]:
        """Validate configuration."""
        from .pattern import Pattern

        errors = []

        url = urlparse(self.get("bus", "url", ""))
        if url.scheme not in ("mqtt", "mqtts", "tcp", "ssl"):
            errors.append(f"Invalid broker URL scheme: {url.scheme!r}")

        if self.get("bus", "qos") not in (0, 1, 2):
            errors.append("Invalid QoS level, expected 0, 1 or 2")

        if self.get("bus", "keepalive", 60) < 1:
            errors.append("Invalid keepalive")

        for section in ("monitoring", "api"):
            key = "prometheus_port" if section == "monitoring" else "port"
            port = self.get(section, key)
            if not isinstance(port, int) or port < 1 or port > 65535:
                errors.append(f"Invalid {section} port")

        for label, source in self.patterns.items():
            try:
                Pattern(source)
            except PatternError as e:
                errors.append(f"Invalid pattern for label {label!r}: {e}")

        return len(errors) == 0, errors
