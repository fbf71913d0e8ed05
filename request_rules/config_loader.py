"""Two-tier configuration loading: bundled engine settings + ruleset definitions."""

import hashlib
import logging
import os
import time
import urllib.parse
from importlib.resources import files
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
import yaml
from jsonschema import ValidationError as SchemaValidationError
from jsonschema import validate

from .errors import ConfigError

logger = logging.getLogger(__name__)


# Shape of a ruleset definition file. Type names and rule consistency are
# checked again by RuleLoader when the Rule objects are built.
RULESETS_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["rulesets"],
    "properties": {
        "rulesets": {
            "type": "object",
            "additionalProperties": {"$ref": "#/definitions/ruleset"},
        },
    },
    "definitions": {
        "ruleset": {
            "type": "object",
            "properties": {
                "metadata": {"type": "object"},
                "query": {"$ref": "#/definitions/rule_list"},
                "body": {"$ref": "#/definitions/rule_list"},
            },
            "additionalProperties": False,
        },
        "rule_list": {
            "type": "array",
            "items": {"$ref": "#/definitions/rule"},
        },
        "rule": {
            "type": "object",
            "required": ["property"],
            "properties": {
                "property": {"type": "string", "minLength": 1},
                "required": {"type": "boolean"},
                "type": {
                    "oneOf": [
                        {"type": "string"},
                        {"type": "array", "items": {"type": "string"}, "minItems": 1},
                    ]
                },
                "min": {"type": "integer"},
                "max": {"type": "integer"},
                "default": {},
                "enum": {
                    "type": "array",
                    "minItems": 1,
                    "items": {"type": ["string", "number", "boolean", "null"]},
                },
            },
            "additionalProperties": False,
        },
    },
}


class ConfigLoader:
    """Handles two-tier configuration: local config + ruleset definitions."""

    # Default cache directory for remote ruleset files
    CACHE_DIR = Path.home() / ".cache" / "request-rules"

    DEFAULT_TIMEOUT_SECONDS = 10

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize config loader.

        Args:
            config_path: Path to a local-config.yaml. Defaults to the file
                bundled in the request_rules package.

        Raises:
            ConfigError: If a config file is missing, unreadable or invalid
        """
        if config_path is None:
            config_path = str(files('request_rules').joinpath('local-config.yaml'))
        self.local_config_path = str(config_path)

        self.local_config = self._load_yaml(self.local_config_path) or {}
        if not isinstance(self.local_config, dict):
            raise ConfigError(f"Local config must be a mapping: {self.local_config_path}")

        cache_dir = self.local_config.get("cache_directory")
        self.cache_dir = Path(cache_dir).expanduser() if cache_dir else self.CACHE_DIR

        self.rulesets_config = self._load_rulesets()
        self.rulesets_config_loaded_at = time.time()

    def reload(self) -> None:
        """Reload ruleset definitions, bypassing the remote cache."""
        self.rulesets_config = self._load_rulesets(refresh=True)
        self.rulesets_config_loaded_at = time.time()

    def _load_rulesets(self, refresh: bool = False) -> Dict[str, Any]:
        uri = self.get_rulesets_uri()
        config = self._load_config_from_uri(uri, refresh=refresh)

        try:
            validate(instance=config, schema=RULESETS_SCHEMA)
        except SchemaValidationError as e:
            error_path = " -> ".join(str(p) for p in e.path) if e.path else "root"
            raise ConfigError(
                f"Ruleset config {uri} is invalid at {error_path}: {e.message}"
            ) from e

        logger.info(
            "Ruleset config loaded",
            extra={'uri': uri, 'rulesets': sorted(config["rulesets"])}
        )
        return config

    def _load_yaml(self, path: str) -> Any:
        """Load YAML file from disk."""
        try:
            with open(path) as f:
                return yaml.safe_load(f)
        except OSError as e:
            raise ConfigError(f"Failed to read config {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse config {path}: {e}") from e

    def _load_config_from_uri(self, uri: str, refresh: bool = False) -> Any:
        """
        Load config from URI (with caching for remote files).

        Supports:
        - Relative paths - resolved against the local config's directory
        - file:// - Local filesystem (absolute paths)
        - https:// / http:// - Remote, cached under cache_dir

        Args:
            uri: Config URI or relative path
            refresh: Refetch remote files even if cached

        Returns:
            Parsed YAML config
        """
        parsed = urllib.parse.urlparse(uri)

        if not parsed.scheme:
            config_dir = os.path.dirname(os.path.abspath(self.local_config_path))
            return self._load_yaml(os.path.join(config_dir, uri))

        if parsed.scheme == 'file':
            return self._load_yaml(urllib.parse.unquote(parsed.path))

        if parsed.scheme in ('http', 'https'):
            cache_key = hashlib.sha256(uri.encode()).hexdigest()
            cache_path = self.cache_dir / f"rulesets_{cache_key}.yaml"

            if cache_path.exists() and not refresh:
                return self._load_yaml(str(cache_path))

            content = self._fetch_uri(uri)
            try:
                parsed_content = yaml.safe_load(content)
            except yaml.YAMLError as e:
                raise ConfigError(f"Failed to parse config from {uri}: {e}") from e

            self.cache_dir.mkdir(parents=True, exist_ok=True)
            cache_path.write_text(content)
            return parsed_content

        raise ConfigError(f"Unsupported URI scheme: {parsed.scheme} in {uri}")

    def _fetch_uri(self, uri: str) -> str:
        """Fetch content from HTTP/HTTPS URI."""
        try:
            response = requests.get(uri, timeout=self.get_request_timeout())
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error("Ruleset config fetch failed", extra={'uri': uri, 'error': str(e)})
            raise ConfigError(f"Failed to fetch config from {uri}: {e}") from e
        return response.text

    def get_local_config(self) -> Dict[str, Any]:
        """Get local configuration (tier 1)."""
        return self.local_config

    def get_rulesets_config(self) -> Dict[str, Any]:
        """Get ruleset definitions (tier 2)."""
        return self.rulesets_config

    def get_rulesets_uri(self) -> str:
        """Location of the ruleset definitions, defaulting to rulesets.yaml beside the local config."""
        return self.local_config.get("rulesets_location", "rulesets.yaml")

    def get_string_encoded_scopes(self) -> List[str]:
        return list(self.local_config.get("string_encoded_scopes", ["query"]))

    def get_raise_on_errors(self) -> bool:
        return bool(self.local_config.get("raise_on_errors", False))

    def get_request_timeout(self) -> float:
        return float(self.local_config.get("request_timeout_seconds", self.DEFAULT_TIMEOUT_SECONDS))

    def get_config_age(self) -> Optional[float]:
        """
        Get age of the ruleset config in seconds since it was loaded.

        Returns:
            Age in seconds, or None if not loaded
        """
        if hasattr(self, 'rulesets_config_loaded_at'):
            return time.time() - self.rulesets_config_loaded_at
        return None
