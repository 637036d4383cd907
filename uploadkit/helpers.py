"""Helper functions for locating uploadkit files on disk."""

import os
from pathlib import Path

from uploadkit.const import CONFIG_DIR, CONFIG_FILE, DB_FILE


def get_db_path() -> Path:
    """Return the path to the SQLite database holding the local durable store.

    Overridable with UPK_DB_PATH, defaults to ~/.uploadkit/state.db.

    Returns:
        Path to the SQLite database file.
    """
    env_override = os.environ.get("UPK_DB_PATH")
    if env_override:
        return Path(env_override).expanduser()
    return CONFIG_DIR / DB_FILE


def get_config_path() -> Path:
    """Return the path to the YAML configuration file.

    Overridable with UPK_CONFIG_PATH, defaults to ~/.uploadkit/config.yaml.

    Returns:
        Path to the YAML configuration file.
    """
    return Path(
        os.environ.get("UPK_CONFIG_PATH", str(CONFIG_DIR / CONFIG_FILE))
    ).expanduser()
