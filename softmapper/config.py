"""
Config system - layered configuration for the database connection.

Sources are merged with precedence (later overrides earlier):
    config files (YAML / JSON) < .env file < environment variables < overrides

Environment keys use a prefix and ``__`` for nesting:
    SM_DATABASE__URL=postgresql://app:secret@db/app
    SM_DATABASE__OPTIONS__CONNECT_RETRIES=5

Usage:
    loader = ConfigLoader.load(["softmapper.yaml"], env_file=".env")
    db = configure_database(loader)
"""

from typing import Any, Dict, List, Optional
from pathlib import Path
from urllib.parse import quote
import json
import logging
import os

import yaml
from dotenv import dotenv_values

from .faults.domains import ConfigInvalidFault

logger = logging.getLogger("softmapper.config")

_DEFAULT_PORTS = {"postgresql": 5432, "mysql": 3306}

_DRIVER_ALIASES = {
    "sqlite": "sqlite",
    "sqlite3": "sqlite",
    "postgres": "postgresql",
    "postgresql": "postgresql",
    "pgsql": "postgresql",
    "mysql": "mysql",
    "mariadb": "mysql",
}


class ConfigLoader:
    """
    Loads and merges configuration from multiple sources with precedence:
    overrides > environment variables > .env file > config files
    """

    def __init__(self, env_prefix: str = "SM_"):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}

    @classmethod
    def load(
        cls,
        paths: Optional[List[str]] = None,
        env_prefix: str = "SM_",
        env_file: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "ConfigLoader":
        """
        Load configuration from multiple sources with proper merge strategy.

        Args:
            paths: List of config file paths (glob patterns supported)
            env_prefix: Prefix for environment variables
            env_file: Path to .env file
            overrides: Manual overrides (highest precedence)

        Returns:
            Configured ConfigLoader instance
        """
        loader = cls(env_prefix=env_prefix)

        for pattern in paths or []:
            loader._load_from_files(pattern)

        if env_file:
            loader._load_env_file(env_file)

        loader._load_from_env()

        if overrides:
            loader._merge_dict(loader.config_data, overrides)

        return loader

    def _load_from_files(self, pattern: str):
        """Load config from JSON or YAML files."""
        from glob import glob

        matches = sorted(glob(pattern))
        if not matches:
            logger.debug(f"No config file matches {pattern!r}")
        for path_str in matches:
            path = Path(path_str)
            if path.suffix == ".json":
                self._load_json_file(path)
            elif path.suffix in (".yaml", ".yml"):
                self._load_yaml_file(path)
            else:
                raise ConfigInvalidFault(str(path), "unsupported config file type (use .yaml, .yml or .json)")

    def _load_json_file(self, path: Path):
        """Load config from JSON file."""
        with open(path) as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as exc:
                raise ConfigInvalidFault(str(path), f"invalid JSON: {exc}") from exc
        self._merge_mapping(path, data)

    def _load_yaml_file(self, path: Path):
        """Load config from YAML file."""
        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as exc:
                raise ConfigInvalidFault(str(path), f"invalid YAML: {exc}") from exc
        if data:
            self._merge_mapping(path, data)

    def _merge_mapping(self, path: Path, data: Any):
        if not isinstance(data, dict):
            raise ConfigInvalidFault(str(path), "top level must be a mapping")
        self._merge_dict(self.config_data, data)
        logger.debug(f"Loaded config file {path}")

    def _load_env_file(self, path: str):
        """Load prefixed keys from a .env file."""
        env_path = Path(path)
        if not env_path.exists():
            logger.debug(f"No .env file at {path}")
            return

        for key, value in dotenv_values(env_path).items():
            if key.startswith(self.env_prefix) and value is not None:
                self._set_nested(key, value)

    def _load_from_env(self):
        """Load config from environment variables."""
        for key, value in os.environ.items():
            if key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _set_nested(self, key: str, value: str):
        """Convert SM_DATABASE__OPTIONS__CONNECT_RETRIES to nested dict."""
        key = key[len(self.env_prefix):]

        # Split by double underscore for nested keys
        parts = key.lower().split("__")

        current = self.config_data
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        current[parts[-1]] = self._parse_value(value)

    def _parse_value(self, value: str) -> Any:
        """Parse string value to appropriate type."""
        # Boolean
        if value.lower() in ("true", "yes"):
            return True
        if value.lower() in ("false", "no"):
            return False

        # Number
        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

        # JSON
        if value.startswith(("{", "[")):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass

        return value

    def _merge_dict(self, target: dict, source: dict):
        """Deep merge source into target."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._merge_dict(target[key], value)
            else:
                target[key] = value

    def get(self, path: str, default: Any = None) -> Any:
        """Get config value by dot-separated path."""
        parts = path.split(".")
        current = self.config_data

        for part in parts:
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default

        return current

    def database_url(self) -> str:
        """
        Connection URL from ``database.url``, or assembled from
        ``database.driver/host/port/user/password/name``.

        Raises:
            ConfigInvalidFault: no usable database section
        """
        url = self.get("database.url")
        if url:
            return str(url)

        section = self.get("database")
        if not isinstance(section, dict) or not section:
            raise ConfigInvalidFault("database", "missing; set database.url or database.driver")

        raw_driver = str(section.get("driver", "sqlite")).lower()
        driver = _DRIVER_ALIASES.get(raw_driver)
        if driver is None:
            raise ConfigInvalidFault("database.driver", f"unsupported driver {raw_driver!r}")

        name = section.get("name")
        if driver == "sqlite":
            return f"sqlite:///{name or ':memory:'}"

        if not name:
            raise ConfigInvalidFault("database.name", f"required for {driver}")

        auth = ""
        user = section.get("user")
        if user:
            auth = quote(str(user), safe="")
            password = section.get("password")
            if password:
                auth += ":" + quote(str(password), safe="")
            auth += "@"
        host = section.get("host", "localhost")
        port = section.get("port", _DEFAULT_PORTS[driver])
        return f"{driver}://{auth}{host}:{port}/{name}"

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.config_data)
