"""
Configuration loader for the entity sync engine.

A config document has three blocks:

    layer_config:        service_name, port, log_level, log_format,
                         config_refresh_interval
    system_config:       snowflake_* connection settings, memory_headroom,
                         batch_size
    dataset_definitions: list of dataset definitions

Documents are YAML or JSON, read from a file or fetched from an HTTP(S) URL.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

try:
    import yaml
except ImportError:
    yaml = None

try:
    import requests
except ImportError:
    requests = None

from ..core.exceptions import ConfigError
from ..core.models import DatasetDefinition


logger = logging.getLogger(__name__)

REQUIRED_LAYER_KEYS = ("service_name",)
REQUIRED_SYSTEM_KEYS = (
    "snowflake_db",
    "snowflake_schema",
    "snowflake_user",
    "snowflake_account",
    "snowflake_warehouse",
    "snowflake_private_key",
)

# environment variable -> (block, key)
ENV_OVERRIDES = {
    "MEMORY_HEADROOM": ("system_config", "memory_headroom"),
    "SNOWFLAKE_DB": ("system_config", "snowflake_db"),
    "SNOWFLAKE_SCHEMA": ("system_config", "snowflake_schema"),
    "SNOWFLAKE_USER": ("system_config", "snowflake_user"),
    "SNOWFLAKE_ACCOUNT": ("system_config", "snowflake_account"),
    "SNOWFLAKE_WAREHOUSE": ("system_config", "snowflake_warehouse"),
    "SNOWFLAKE_PRIVATE_KEY": ("system_config", "snowflake_private_key"),
    "LOG_LEVEL": ("layer_config", "log_level"),
    "LOG_FORMAT": ("layer_config", "log_format"),
}

DEFAULT_BATCH_SIZE = 50000
DEFAULT_MEMORY_HEADROOM_MB = 500
DEFAULT_REFRESH_INTERVAL = 60


def is_url(location: Union[str, Path]) -> bool:
    return str(location).startswith(("http://", "https://"))


def parse_document(text: str) -> Dict[str, Any]:
    """
    Parse a YAML or JSON config document.

    Datahub content envelopes ({"id": ..., "data": {...}}) are unwrapped.
    """
    if yaml is None:
        raise ImportError(
            "pyyaml is required for config loading. "
            "Install with: pip install pyyaml"
        )
    try:
        # JSON is a subset of YAML
        document = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Config is neither valid YAML nor JSON: {e}") from e

    if document is None:
        return {}
    if not isinstance(document, dict):
        raise ConfigError(f"Config must be a mapping, got {type(document).__name__}")
    if "data" in document and "layer_config" not in document and isinstance(document["data"], dict):
        document = document["data"]
    return document


def fetch_document(url: str, token: Optional[str] = None, timeout: int = 30) -> str:
    """Fetch a config document over HTTP(S)."""
    if requests is None:
        raise ImportError(
            "requests library is required for loading config from a URL. "
            "Install with: pip install requests"
        )
    headers = {"Accept": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    try:
        response = requests.get(url, headers=headers, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        raise ConfigError(f"Failed to fetch config from {url}: {e}") from e
    return response.text


class SyncConfig:
    """
    Configuration for the entity sync engine.

    Loads the document, applies environment overrides and exposes the
    blocks and dataset definitions.
    """

    def __init__(
        self,
        location: Optional[Union[str, Path]] = None,
        config: Optional[Dict[str, Any]] = None,
        token_provider: Optional[Callable[[], str]] = None,
    ):
        """
        Initialize configuration.

        Args:
            location: Path or URL of the config document (optional)
            config: Already parsed document, used when no location is given
            token_provider: Returns a bearer token for URL locations
        """
        self.location = location
        self.token_provider = token_provider
        if location is not None:
            self.config = self._load_config()
        else:
            self.config = config if config is not None else self._default_config()
        self._apply_env_overrides()

    def read_source(self) -> str:
        """Read the raw document from the configured location."""
        if is_url(self.location):
            token = self.token_provider() if self.token_provider else None
            return fetch_document(str(self.location), token=token)

        path = Path(self.location)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        return path.read_text(encoding="utf-8")

    def _load_config(self) -> Dict[str, Any]:
        logger.info(f"Loading config from: {self.location}")
        return parse_document(self.read_source())

    def _default_config(self) -> Dict[str, Any]:
        """Return default configuration."""
        return {
            "layer_config": {
                "service_name": "entity-sync",
                "log_level": "INFO",
                "log_format": "text",
                "config_refresh_interval": DEFAULT_REFRESH_INTERVAL,
            },
            "system_config": {
                "memory_headroom": DEFAULT_MEMORY_HEADROOM_MB,
                "batch_size": DEFAULT_BATCH_SIZE,
            },
            "dataset_definitions": [],
        }

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides to loaded config."""
        for variable, (block, key) in ENV_OVERRIDES.items():
            value = os.environ.get(variable)
            if value:
                self.config.setdefault(block, {})[key] = value

    def validate(self) -> None:
        """
        Check that required settings are present.

        Raises:
            ConfigError: listing every missing key
        """
        missing = []
        for block, keys in (("layer_config", REQUIRED_LAYER_KEYS), ("system_config", REQUIRED_SYSTEM_KEYS)):
            section = self.config.get(block)
            if not isinstance(section, dict):
                missing.append(block)
                continue
            missing.extend(f"{block}.{key}" for key in keys if not section.get(key))
        if missing:
            raise ConfigError(f"Missing config values: {', '.join(missing)}")

        for definition in self.get_dataset_definitions():
            if not definition.name:
                raise ConfigError("Dataset definition without a name")

    def get_layer_config(self) -> Dict[str, Any]:
        """Get layer (service) configuration."""
        return self.config.get("layer_config") or {}

    def get_system_config(self) -> Dict[str, Any]:
        """Get system (warehouse) configuration."""
        return self.config.get("system_config") or {}

    def get_dataset_definitions(self) -> List[DatasetDefinition]:
        """Get parsed dataset definitions."""
        return [DatasetDefinition.from_dict(d) for d in self.config.get("dataset_definitions") or []]

    def _get_number(self, key: str, default: int) -> int:
        value = self.get(key, default)
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"{key} must be a number, got {value!r}") from e

    @property
    def batch_size(self) -> int:
        return self._get_number("system_config.batch_size", DEFAULT_BATCH_SIZE)

    @property
    def memory_headroom(self) -> int:
        return self._get_number("system_config.memory_headroom", DEFAULT_MEMORY_HEADROOM_MB)

    @property
    def refresh_interval(self) -> int:
        return self._get_number("layer_config.config_refresh_interval", DEFAULT_REFRESH_INTERVAL)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by dotted key."""
        keys = key.split(".")
        value = self.config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

        return value if value is not None else default

    def to_json(self) -> str:
        return json.dumps(self.config, sort_keys=True, default=str)
