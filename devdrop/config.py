"""Configuration management for devdrop."""

import os
import tomllib
from pathlib import Path

import tomli_w

# Override with DEVDROP_HOME environment variable
DATA_DIR = Path(os.environ.get("DEVDROP_HOME", Path.home() / ".devdrop"))
SETTINGS_FILE = DATA_DIR / "settings.toml"
CONFIG_FILE = DATA_DIR / "config.yaml"

DEFAULT_SETTINGS = {
    "registry": {
        "server": "https://index.docker.io/v1/",
        "hub_api": "https://hub.docker.com/v2",
        "page_size": 100,
        "timeout": 30,
    },
    "container": {
        "shell": "/bin/bash",
        "workspace": "/workspace",
    },
    "starters": {
        "ubuntu": "ubuntu:24.04",
        "go": "golang:latest",
        "node": "node:latest",
        "python": "python:latest",
    },
    "log": {
        "level": "WARNING",
    },
}


def ensure_dirs():
    """Create the data directory if it doesn't exist."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)


def load_settings() -> dict:
    """Load tool settings, creating the default file if it doesn't exist."""
    ensure_dirs()
    if SETTINGS_FILE.exists():
        with open(SETTINGS_FILE, "rb") as f:
            user_settings = tomllib.load(f)
        # Merge with defaults (user overrides)
        settings = _deep_merge(DEFAULT_SETTINGS, user_settings)
    else:
        settings = _deep_merge(DEFAULT_SETTINGS, {})
        save_settings(settings)
    return settings


def save_settings(settings: dict):
    """Save tool settings to disk."""
    ensure_dirs()
    with open(SETTINGS_FILE, "wb") as f:
        tomli_w.dump(settings, f)


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dicts, with override taking precedence."""
    result = {k: (v.copy() if isinstance(v, dict) else v) for k, v in base.items()}
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result
