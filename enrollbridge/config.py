"""Connector configuration loading for EnrollBridge.

Configuration is a plain dict read from a JSON file. The shape mirrors what
the connector settings panel stores per form instance::

    {
        "api_endpoint": "https://ph.powerportal.com/phiIntelliSOURCE/api",
        "api_password": "",
        "password_env_var": "ENROLLBRIDGE_API_PASSWORD",
        "test_mode": false,
        "correlation_id": null,
        "resilience": {
            "max_retries": 3,
            "backoff_base": 2,
            "backoff_max": 300,
            "request_timeout": 30,
            "circuit_breaker": {"failure_threshold": 5, "recovery_timeout": 60}
        }
    }

Any key missing from the file falls back to ``DEFAULT_CONFIG``. The API
password is never required to live in the file: when ``api_password`` is
empty it is read from the environment variable named by
``password_env_var``.
"""

import copy
import json
import logging
import os
from pathlib import Path

from enrollbridge.paths import CONNECTOR_CONFIG_PATH
from enrollbridge.schemas import ConnectorConfig

logger = logging.getLogger(__name__)

DEFAULT_API_ENDPOINT = "https://ph.powerportal.com/phiIntelliSOURCE/api"
DEFAULT_PASSWORD_ENV_VAR = "ENROLLBRIDGE_API_PASSWORD"

DEFAULT_RESILIENCE: dict = {
    "max_retries": 3,
    "backoff_base": 2,
    "backoff_max": 300,
    "request_timeout": 30,
    "circuit_breaker": {
        "failure_threshold": 5,
        "recovery_timeout": 60,
    },
}

DEFAULT_CONFIG: dict = {
    "api_endpoint": DEFAULT_API_ENDPOINT,
    "api_password": "",
    "password_env_var": DEFAULT_PASSWORD_ENV_VAR,
    "test_mode": False,
    "correlation_id": None,
    "resilience": DEFAULT_RESILIENCE,
}


def _merge(base: dict, override: dict) -> dict:
    """Recursively merge ``override`` into a deep copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def resolve_password(config: dict) -> str:
    """Return the API password from config, falling back to the environment.

    Args:
        config: Connector configuration dict.

    Returns:
        The password, or an empty string when neither source provides one.
    """
    password = config.get("api_password") or ""
    if password:
        return password
    env_var = config.get("password_env_var") or DEFAULT_PASSWORD_ENV_VAR
    return os.environ.get(env_var, "")


def load_config(path: Path | None = None) -> dict:
    """Load connector configuration, merged over ``DEFAULT_CONFIG``.

    Args:
        path: JSON config file. Defaults to ``CONNECTOR_CONFIG_PATH``.

    Returns:
        Complete configuration dict with ``api_password`` resolved and
        values coerced by ``ConnectorConfig``.

    Raises:
        ValueError: If the file exists but is not a JSON object, or
            (as ``pydantic.ValidationError``) if a value is invalid.
    """
    config_path = path or CONNECTOR_CONFIG_PATH
    overrides: dict = {}
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            overrides = json.load(f)
        if not isinstance(overrides, dict):
            raise ValueError(f"Config file {config_path} must contain a JSON object")
        logger.debug("Loaded connector config from %s", config_path)
    else:
        logger.info("No config file at %s, using defaults", config_path)

    config = _merge(DEFAULT_CONFIG, overrides)
    config["api_password"] = resolve_password(config)
    return ConnectorConfig.model_validate(config).model_dump()
