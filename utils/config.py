#!/usr/bin/env python3

"""Configuration Management Module.

Provides schema definition and validation for the wantlist checker's configuration:
input/output paths, the year threshold, Discogs API identity, rate limits, retry
policy, progress reporting and logging.

Every setting has a default, so an empty YAML document is a valid configuration.
String values of the form ``${VAR}`` are resolved from the environment (after a
``.env`` file, if any, has been loaded).
"""

from __future__ import annotations

import logging
import os

from typing import Any

# trunk-ignore(mypy/import-untyped)
import yaml

from cerberus import Validator
from dotenv import load_dotenv

logger = logging.getLogger("config")

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL", "NOTSET"]
TOKEN_ENV_VAR = "DISCOGS_USER_TOKEN"

# Define the schema for the configuration file
CONFIG_SCHEMA: dict[str, Any] = {
    # 1. PATHS
    "wantlist_csv_path": {"type": "string", "default": "wantlist.csv"},
    "output_dir": {"type": "string", "default": "."},
    "logs_base_dir": {"type": "string", "default": "logs"},
    # 2. FILTERING
    "min_year": {"type": "integer", "min": 1000, "default": 2015},
    # 3. DISCOGS API
    "discogs": {
        "type": "dict",
        "default": {},
        "schema": {
            "user_token": {"type": "string", "nullable": True, "default": "${" + TOKEN_ENV_VAR + "}"},
            "user_agent": {"type": "string", "empty": False, "default": "wantlist-checker/1.0"},
            "api_base_url": {"type": "string", "empty": False, "default": "https://api.discogs.com"},
            "site_base_url": {"type": "string", "empty": False, "default": "https://www.discogs.com"},
            "request_timeout_seconds": {"type": "number", "min": 1, "default": 45},
            "versions_per_page": {"type": "integer", "min": 1, "max": 500, "default": 100},
        },
    },
    # 4. RATE LIMITING AND RETRIES
    "rate_limits": {
        "type": "dict",
        "default": {},
        "schema": {
            "authenticated_requests_per_minute": {"type": "integer", "min": 1, "default": 60},
            "unauthenticated_requests_per_minute": {"type": "integer", "min": 1, "default": 25},
            "window_seconds": {"type": "number", "min": 1, "default": 60},
            "buffer_seconds": {"type": "number", "min": 0, "default": 0.1},
            "conservative_delay_seconds": {"type": "number", "min": 0, "default": 1.0},
            "wait_threshold": {"type": "integer", "min": 0, "default": 2},
        },
    },
    "retry": {
        "type": "dict",
        "default": {},
        "schema": {
            "max_retries": {"type": "integer", "min": 0, "default": 5},
            "base_delay_seconds": {"type": "number", "min": 0, "default": 60},
        },
    },
    # 5. REPORTING
    "progress": {
        "type": "dict",
        "default": {},
        "schema": {
            "report_interval": {"type": "integer", "min": 1, "default": 10},
        },
    },
    "defaults": {
        "type": "dict",
        "default": {},
        "schema": {
            "artist": {"type": "string", "default": "Unknown"},
            "title": {"type": "string", "default": "Unknown"},
        },
    },
    "csv_output": {
        "type": "dict",
        "default": {},
        "schema": {
            "filename_prefix": {"type": "string", "default": "wantlist-results-"},
        },
    },
    # 6. LOGGING
    "logging": {
        "type": "dict",
        "default": {},
        "schema": {
            "max_runs": {"type": "integer", "min": 0, "default": 3},
            "main_log_file": {"type": "string", "empty": False, "default": "main/main.log"},
            "levels": {
                "type": "dict",
                "default": {},
                "schema": {
                    "console": {"type": "string", "allowed": LOG_LEVELS, "default": "INFO"},
                    "main_file": {"type": "string", "allowed": LOG_LEVELS, "default": "INFO"},
                },
            },
        },
    },
}


def resolve_env_vars(config: dict[str, Any] | list[Any] | Any) -> Any:
    """Recursively resolve ``${VAR}`` placeholders in config values."""
    if isinstance(config, dict):
        return {k: resolve_env_vars(v) for k, v in config.items()}
    if isinstance(config, list):
        return [resolve_env_vars(item) for item in config]
    if isinstance(config, str) and config.startswith("${") and config.endswith("}"):
        env_var = config[2:-1]
        return os.getenv(env_var, "")
    return config


def _format_cerberus_errors(errors: dict[str, Any], prefix: str = "") -> list[str]:
    lines = []
    for field, errs in errors.items():
        name = f"{prefix}{field}"
        for err in errs if isinstance(errs, list) else [errs]:
            if isinstance(err, dict):
                lines.extend(_format_cerberus_errors(err, prefix=f"{name}."))
            else:
                lines.append(f"  Field '{name}': {err}")
    return lines


def normalize_config(raw_config: dict[str, Any] | None) -> dict[str, Any]:
    """Validate a raw configuration mapping, fill defaults and resolve env vars.

    Raises:
        ValueError: If the configuration does not match the schema.

    """
    validator = Validator(schema=CONFIG_SCHEMA, allow_unknown=False)
    if not validator.validate(raw_config or {}):
        error_details = "\n".join(_format_cerberus_errors(validator.errors))
        logger.critical(f"Configuration validation failed:\n{error_details}")
        raise ValueError(f"Configuration validation failed:\n{error_details}")

    config_data = resolve_env_vars(validator.document)
    if config_data["discogs"]["user_token"] is None:
        config_data["discogs"]["user_token"] = ""
    return dict(config_data)


def load_config(config_path: str) -> dict[str, Any]:
    """Load the configuration from a YAML file, validate it and resolve environment variables.

    Args:
        config_path: Path to the configuration YAML file.

    Returns:
        dict: The normalized configuration.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the configuration is invalid according to the schema.
        yaml.YAMLError: If there is an error parsing the YAML file.

    """
    env_loaded = load_dotenv()
    logger.debug(f".env file {'found and loaded' if env_loaded else 'not found, using system environment variables'}")

    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Config file {config_path} does not exist.")

    try:
        with open(config_path, encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.critical(f"Failed to parse YAML config: {e}")
        raise

    if raw_config is not None and not isinstance(raw_config, dict):
        raise ValueError(f"Config file {config_path} must contain a mapping, got {type(raw_config).__name__}")

    config_data = normalize_config(raw_config)
    logger.debug(f"Configuration loaded from {config_path}")
    return config_data


def requests_per_minute(config: dict[str, Any], authenticated: bool) -> int:
    """Return the request budget for the authentication mode."""
    rate_limits = config.get("rate_limits", {})
    if authenticated:
        return int(rate_limits.get("authenticated_requests_per_minute", 60))
    return int(rate_limits.get("unauthenticated_requests_per_minute", 25))
