"""
Configuration management for Noted.

Uses XDG base directories:
- Config: ~/.config/noted/config.toml
- Data: ~/noted/ (snapshots live here)
"""

import logging
import os
from pathlib import Path
from typing import Any

from noted.persist import DEFAULT_FORMAT, Format

# XDG defaults
DEFAULT_CONFIG_HOME = Path.home() / ".config"
DEFAULT_DATA_HOME = Path.home() / "noted"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def get_config_dir() -> Path:
    """Get the config directory (XDG_CONFIG_HOME/noted)."""
    base = Path(os.environ.get("XDG_CONFIG_HOME", DEFAULT_CONFIG_HOME))
    return base / "noted"


def get_noted_home() -> Path:
    """Get the noted data directory (~/noted or NOTED_HOME)."""
    if env_home := os.environ.get("NOTED_HOME"):
        return Path(env_home)
    return DEFAULT_DATA_HOME


def get_config_path() -> Path:
    """Get the path to config.toml."""
    return get_config_dir() / "config.toml"


def get_snapshot_path() -> Path:
    """Get the path to the notes snapshot."""
    return get_noted_home() / "notes.fdb"


def ensure_dirs() -> None:
    """Ensure all required directories exist."""
    get_config_dir().mkdir(parents=True, exist_ok=True)
    get_noted_home().mkdir(parents=True, exist_ok=True)


def load_config() -> dict[str, Any]:
    """
    Load configuration from config.toml.

    Returns default config if file doesn't exist. Sections missing from the
    file are filled in from the defaults.
    """
    config_path = get_config_path()
    config = get_default_config()

    if not config_path.exists():
        return config

    # Lazy import tomli only when needed
    import tomli

    with open(config_path, "rb") as f:
        user_config = tomli.load(f)

    for section, values in user_config.items():
        if isinstance(values, dict) and isinstance(config.get(section), dict):
            config[section].update(values)
        else:
            config[section] = values
    return config


def get_default_config() -> dict[str, Any]:
    """Return default configuration."""
    return {
        "noted": {
            "home": str(get_noted_home()),
        },
        "persist": {
            "format": DEFAULT_FORMAT.value,  # or "json" for hand-editable snapshots
        },
        "logging": {
            "level": "WARNING",
        },
    }


def get_default_format(config: dict[str, Any] | None = None) -> Format:
    """Snapshot format from [persist] format, or the built-in default."""
    config = config or load_config()
    name = str(config.get("persist", {}).get("format", DEFAULT_FORMAT.value)).lower()
    try:
        return Format(name)
    except ValueError:
        logging.getLogger(__name__).warning(
            f"Unknown persist format {name!r} in config, using {DEFAULT_FORMAT.value}"
        )
        return DEFAULT_FORMAT


def setup_logging(config: dict[str, Any] | None = None) -> None:
    """Configure root logging from [logging] level."""
    config = config or load_config()
    level_name = str(config.get("logging", {}).get("level", "WARNING")).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.WARNING
    logging.basicConfig(format=LOG_FORMAT, level=level)
