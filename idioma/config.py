"""
Configuration management for Idioma.

Settings are layered: built-in defaults, then an optional YAML or JSON file
named by ``IDIOMA_CONFIG_PATH``, then ``IDIOMA_*`` environment variables.
"""
import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from dotenv import load_dotenv

# Pick up a local .env before anything reads os.environ
load_dotenv()

logger = logging.getLogger(__name__)

ENV_PREFIX = 'IDIOMA_'
ENV_SEPARATOR = '__'
CONFIG_PATH_ENV = 'IDIOMA_CONFIG_PATH'

# Plain environment variables that back the secrets below
SECRET_FALLBACKS = {
    ('openai', 'api_key'): 'OPENAI_API_KEY',
    ('news', 'api_key'): 'NEWS_API_KEY',
}

DEFAULT_CONFIG = {
    "fetcher": {
        "timeout_seconds": 30,
        "max_attempts": 3,
        "retry_delay_seconds": 2,
        "block_signatures": [
            "Access Denied",
            "403 Forbidden",
            "Attention Required! | Cloudflare",
            "cf-browser-verification",
            "Checking your browser before accessing",
        ],
    },
    "cache": {
        "extraction_days": 7,
        "simplification_hours": 24,
        "news_hours": 24,
    },
    "store": {
        "backend": "sqlite",
        "path": "cache/idioma.db",
    },
    "openai": {
        "api_key": None,
        "model": "gpt-5-nano",
        "max_completion_tokens": 3000,
    },
    "news": {
        "api_key": None,
        "base_url": "https://newsdata.io/api/1/news",
    },
    "auth": {
        "required": False,
        "tokens": {},
    },
    "server": {
        "host": "0.0.0.0",
        "port": 8080,
        "cors_origins": ["*"],
    },
    "logging": {
        "level": "INFO",
    },
}


def _read_file(path: Path) -> Dict[str, Any]:
    """Parse a YAML or JSON settings file."""
    suffix = path.suffix.lower()
    text = path.read_text()
    if suffix in ('.yaml', '.yml'):
        return yaml.safe_load(text) or {}
    if suffix == '.json':
        return json.loads(text)
    raise ValueError(f"Unsupported config file format: {suffix}")


def _merge(base: Dict[str, Any], overlay: Mapping[str, Any]) -> None:
    """Deep-merge ``overlay`` into ``base``; nested sections merge, leaves replace."""
    for key, value in overlay.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value


def _parse_env_value(raw: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def _set_path(settings: Dict[str, Any], path: List[str], value: Any) -> None:
    section = settings
    for name in path[:-1]:
        if not isinstance(section.get(name), dict):
            section[name] = {}
        section = section[name]
    section[path[-1]] = value


class Config:
    """
    Configuration manager for Idioma.
    """
    def __init__(self, config_path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None):
        """
        Args:
            config_path: Path to a YAML or JSON configuration file
            environ: Environment mapping to read overrides from (defaults to os.environ)
        """
        self.config_path = config_path
        self.environ = os.environ if environ is None else environ
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        settings = copy.deepcopy(DEFAULT_CONFIG)

        if self.config_path and Path(self.config_path).exists():
            try:
                _merge(settings, _read_file(Path(self.config_path)))
            except (OSError, ValueError, yaml.YAMLError) as e:
                logger.warning(f"Ignoring config file {self.config_path}: {e}")

        self._apply_environment(settings)
        return settings

    def _apply_environment(self, settings: Dict[str, Any]) -> None:
        """
        Apply environment overrides.

        ``IDIOMA_FETCHER__TIMEOUT_SECONDS=10`` sets ``fetcher.timeout_seconds``.
        Values are decoded as JSON when they parse, otherwise kept as strings.
        """
        for (section, key), env_name in SECRET_FALLBACKS.items():
            if self.environ.get(env_name) and not settings[section].get(key):
                settings[section][key] = self.environ[env_name]

        for name, raw in self.environ.items():
            if not name.startswith(ENV_PREFIX) or name == CONFIG_PATH_ENV:
                continue
            path = name[len(ENV_PREFIX):].lower().split(ENV_SEPARATOR)
            _set_path(settings, path, _parse_env_value(raw))

    def get(self, key: str, default: Any = None) -> Any:
        """
        Look up a dot-separated key such as ``'cache.extraction_days'``.

        Returns ``default`` when any segment is missing.
        """
        value: Any = self.config
        for part in key.split('.'):
            if not isinstance(value, dict) or part not in value:
                return default
            value = value[part]
        return value


# Global configuration instance
config = Config(os.getenv(CONFIG_PATH_ENV))


def get_config(key: str, default: Any = None) -> Any:
    """Shortcut for ``config.get`` on the global configuration."""
    return config.get(key, default)
