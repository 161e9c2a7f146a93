"""Stored CLI preferences for tls-secret-sync.

Preferences live in the XDG config directory:
~/.config/tls-secret-sync/preferences.json

Only the config file location is stored today.
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

PREFERENCES_DIR = Path.home() / ".config" / "tls-secret-sync"
PREFERENCES_FILE = PREFERENCES_DIR / "preferences.json"

CONFIG_PATH_KEY = "config_path"


def _load_preferences() -> Dict[str, Any]:
    """
    Load preferences from JSON file.

    Returns:
        Dictionary of preferences, or empty dict if the file is missing or unreadable
    """
    if not PREFERENCES_FILE.exists():
        return {}

    try:
        with open(PREFERENCES_FILE, 'r') as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Failed to read preferences file {PREFERENCES_FILE}: {e}")
        return {}


def _save_preferences(preferences: Dict[str, Any]) -> None:
    PREFERENCES_DIR.mkdir(parents=True, exist_ok=True)
    with open(PREFERENCES_FILE, 'w') as f:
        json.dump(preferences, f, indent=2)


def get_config_path() -> Optional[str]:
    """Return the stored config file path, if any."""
    return _load_preferences().get(CONFIG_PATH_KEY)


def set_config_path(path: str) -> None:
    """Store the config file path used when --config is not given."""
    preferences = _load_preferences()
    preferences[CONFIG_PATH_KEY] = path
    _save_preferences(preferences)
    logger.info(f"Config path preference set to: {path}")


def clear_config_path() -> None:
    preferences = _load_preferences()
    if CONFIG_PATH_KEY in preferences:
        del preferences[CONFIG_PATH_KEY]
        _save_preferences(preferences)
        logger.info("Config path preference cleared")
    else:
        logger.debug("Config path preference not set, nothing to clear")
