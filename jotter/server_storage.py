#!/usr/bin/env python3
"""Shared config helpers and constants for the Jotter server and bridge."""

import json
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

BASE_DIR = Path.home() / ".jotter"
CONFIG_PATH = Path(os.environ.get("JOTTER_CONFIG", BASE_DIR / "config.json"))

DEFAULT_PORT = 3000
DEFAULT_MCP_PORT = 7020
MAX_BODY_SIZE = 1024 * 1024

DEFAULT_CONFIG = {
    "host": "127.0.0.1",
    "port": DEFAULT_PORT,
    "db_path": str(BASE_DIR / "notes.db"),
    "api_url": f"http://localhost:{DEFAULT_PORT}/api",
    "mcp_host": "0.0.0.0",
    "mcp_port": DEFAULT_MCP_PORT,
    "llm_provider": {
        "endpoint": "https://api.openai.com/v1",
        "api_key": "",
        "model": "gpt-4o-mini",
    },
}

# environment variable -> (config key, type)
ENV_OVERRIDES = {
    "PORT": ("port", int),
    "DB_PATH": ("db_path", str),
    "API_URL": ("api_url", str),
    "MCP_HOST": ("mcp_host", str),
    "MCP_PORT": ("mcp_port", int),
}


def _deep_merge(defaults: dict, overrides: dict) -> dict:
    """Recursively merge *overrides* into *defaults*."""
    merged = dict(defaults)
    for key, value in overrides.items():
        if (
            key in merged
            and isinstance(merged[key], dict)
            and isinstance(value, dict)
        ):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _apply_env(config: dict, environ) -> dict:
    applied = dict(config)
    for var, (key, cast) in ENV_OVERRIDES.items():
        raw = environ.get(var)
        if raw is None or raw == "":
            continue
        try:
            applied[key] = cast(raw)
        except ValueError:
            logger.warning("Ignoring invalid %s=%r", var, raw)
    return applied


def load_config(path: Path | None = None, environ=None) -> dict:
    """Load config.json merged over defaults, then environment overrides.

    A missing or unreadable file yields the defaults.
    """
    path = Path(path) if path is not None else CONFIG_PATH
    environ = os.environ if environ is None else environ
    config = DEFAULT_CONFIG
    try:
        if path.exists():
            data = json.loads(path.read_text(encoding="utf-8"))
            if isinstance(data, dict):
                config = _deep_merge(DEFAULT_CONFIG, data)
            else:
                logger.warning("Config %s is not a JSON object, using defaults", path)
    except (OSError, ValueError) as exc:
        logger.warning("Could not read config %s: %s", path, exc)
    return _apply_env(config, environ)


def error_response(code: str, message: str, suggestion: str | None = None):
    """Build a structured API error payload."""
    payload = {"error": {"code": code, "message": message}}
    if suggestion:
        payload["error"]["suggestion"] = suggestion
    return payload
