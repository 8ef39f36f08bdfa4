"""
Persistent application configuration for the yoga admin backend.

The configuration is a flat JSON document. Unknown keys are ignored and
missing keys fall back to DEFAULT_CONFIG, so an old file keeps working after
new settings are added.
"""

import json
import logging
import os
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = {
    "database_url": "",
    "credentials_file": "firebase-service-account.json",
    "local_db_path": "yoga_database.db",
    "preferences_path": "yoga_admin_prefs.json",
    "worker_threads": 4,
    "http_timeout_seconds": 30,
    "connectivity_check_interval": 30,
    "log_level": "INFO",
    "log_to_file": False,
}

CONFIG_FILENAME = "yoga_admin_config.json"
CONFIG_ENV_VAR = "YOGA_ADMIN_CONFIG"


def get_config_path() -> str:
    """Return the config file location, honouring the YOGA_ADMIN_CONFIG override"""
    return os.environ.get(CONFIG_ENV_VAR) or os.path.join(os.getcwd(), CONFIG_FILENAME)


def _ensure_all_keys(config: Dict[str, Any]) -> Dict[str, Any]:
    """Overlay known keys from a loaded file onto DEFAULT_CONFIG, dropping anything unrecognised"""
    normalized = DEFAULT_CONFIG.copy()
    normalized.update({k: v for k, v in config.items() if k in DEFAULT_CONFIG})
    return normalized


def load_app_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Read the backend settings (Firebase URL, store paths, worker count...).

    A missing, unreadable or non-object file yields a copy of DEFAULT_CONFIG,
    so the admin backend still starts in local-only mode.
    """
    path = path or get_config_path()
    if not os.path.exists(path):
        return DEFAULT_CONFIG.copy()

    try:
        with open(path, "r", encoding="utf-8") as config_file:
            data = json.load(config_file)
    except (OSError, ValueError) as err:
        logger.warning("Error loading config from %s: %s", path, err)
        return DEFAULT_CONFIG.copy()

    if isinstance(data, dict):
        return _ensure_all_keys(data)
    return DEFAULT_CONFIG.copy()


def save_app_config(config: Dict[str, Any], path: Optional[str] = None) -> None:
    """Write the settings as indented JSON, creating the parent directory if needed"""
    path = path or get_config_path()
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    normalized = _ensure_all_keys(config)

    with open(path, "w", encoding="utf-8") as config_file:
        json.dump(normalized, config_file, indent=2)
    logger.info("Saved configuration to %s", path)


def update_app_config(path: Optional[str] = None, **updates) -> Dict[str, Any]:
    """Change a few settings in place, e.g. update_app_config(database_url=...), and return the result"""
    config = load_app_config(path)
    for key, value in updates.items():
        if key in DEFAULT_CONFIG:
            config[key] = value
    save_app_config(config, path)
    return config
