"""
Configuration Module for the webmention sender.

This module provides configuration loading and management for the service.
Configuration is loaded from config.yml and supports Docker secrets.

Usage:
    >>> from config import load_config, get_webmention_config
    >>> config = load_config()
    >>> if get_webmention_config(config)["enabled"]:
    ...     # Send webmentions for published posts
"""
import os
import yaml
import logging
from pathlib import Path
from typing import Dict, Any, Optional


logger = logging.getLogger(__name__)

DEFAULT_WEBMENTION_CONFIG: Dict[str, Any] = {
    "enabled": False,
    "timeout": 10.0,
    "discovery_timeout": 10.0,
    "max_workers": 4,
    "identity_field": "source_is_ghost",
    "identity_value": "true",
}

_TRUE_STRINGS = ("true", "yes", "on", "1")
_FALSE_STRINGS = ("false", "no", "off", "0")


def _parse_enabled(value: Any) -> bool:
    """Read webmention.enabled from a bool, 0 or 1, or a true/false style string."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    elif isinstance(value, int) and value in (0, 1):
        return bool(value)
    logger.warning(f"Invalid webmention.enabled {value!r}; falling back to False")
    return False


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from config.yml file.

    Args:
        config_path: Path to config.yml file. If None, uses the
                    WEBMENTION_CONFIG environment variable, then looks in the
                    current directory and parent directories.

    Returns:
        Dictionary containing configuration settings. Missing or invalid
        files fall back to get_default_config().

    Example:
        >>> config = load_config()
        >>> timeout = get_webmention_config(config)["timeout"]
    """
    if config_path is None:
        config_path = os.environ.get("WEBMENTION_CONFIG") or None

    if config_path is None:
        # Try to find config.yml in current directory or parent directories
        current = Path.cwd()
        for parent in [current] + list(current.parents):
            candidate = parent / "config.yml"
            if candidate.exists():
                config_path = str(candidate)
                break

        # If still not found, check the project root (where this file is located)
        if config_path is None:
            project_root = Path(__file__).parent.parent.parent
            candidate = project_root / "config.yml"
            if candidate.exists():
                config_path = str(candidate)

    if config_path is None:
        logger.warning("config.yml not found, using default configuration")
        return get_default_config()

    try:
        with open(config_path, "r") as f:
            config = yaml.safe_load(f)
    except FileNotFoundError:
        logger.warning(f"Configuration file not found: {config_path}")
        return get_default_config()
    except yaml.YAMLError as e:
        logger.error(f"Error parsing configuration file: {e}")
        return get_default_config()

    if not isinstance(config, dict):
        logger.warning("Configuration root must be a mapping, using default configuration")
        return get_default_config()

    logger.info(f"Loaded configuration from {config_path}")
    return config


def get_default_config() -> Dict[str, Any]:
    """Return default configuration when config.yml is not available.

    Returns:
        Dictionary with default configuration values
    """
    return {
        "webmention": dict(DEFAULT_WEBMENTION_CONFIG),
        "webhook": {
            "secret_file": "/run/secrets/ghost_webhook_secret",
        },
    }


def get_webmention_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Extract the webmention section of the configuration with defaults applied.

    Non-positive or non-numeric timeouts fall back to the defaults so a send
    can never run without a bound.

    Example:
        >>> get_webmention_config({"webmention": {"enabled": True}})["timeout"]
        10.0
    """
    section = config.get("webmention") or {}
    if not isinstance(section, dict):
        logger.warning("webmention configuration must be a mapping, using defaults")
        section = {}

    wm_config = dict(DEFAULT_WEBMENTION_CONFIG)
    wm_config.update(section)
    wm_config["enabled"] = _parse_enabled(wm_config["enabled"])

    for key in ("timeout", "discovery_timeout"):
        value = wm_config[key]
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            logger.warning(
                f"Invalid webmention.{key} {value!r}; falling back to {DEFAULT_WEBMENTION_CONFIG[key]}"
            )
            wm_config[key] = DEFAULT_WEBMENTION_CONFIG[key]
        else:
            wm_config[key] = float(value)

    max_workers = wm_config["max_workers"]
    if isinstance(max_workers, bool) or not isinstance(max_workers, int) or max_workers < 1:
        logger.warning(
            f"Invalid webmention.max_workers {max_workers!r}; "
            f"falling back to {DEFAULT_WEBMENTION_CONFIG['max_workers']}"
        )
        wm_config["max_workers"] = DEFAULT_WEBMENTION_CONFIG["max_workers"]

    wm_config["identity_field"] = str(wm_config["identity_field"])
    wm_config["identity_value"] = str(wm_config["identity_value"])
    return wm_config


def read_secret_file(filepath: str) -> Optional[str]:
    """Read a Docker secret from a file.

    Docker secrets are mounted as files in /run/secrets/ directory.
    This function reads the content of the secret file.

    Args:
        filepath: Path to the secret file

    Returns:
        Content of the secret file (stripped of whitespace), or None if file doesn't exist

    Example:
        >>> secret = read_secret_file("/run/secrets/ghost_webhook_secret")
    """
    try:
        with open(filepath, "r") as f:
            return f.read().strip()
    except FileNotFoundError:
        logger.debug(f"Secret file not found: {filepath}")
        return None
    except OSError as e:
        logger.error(f"Error reading secret file {filepath}: {e}")
        return None
