"""File path resolution using platformdirs.

Paths use platform-appropriate directories:
  macOS: ~/Library/Application Support/shipbatch/
  Windows: %LOCALAPPDATA%/ShipBatch/shipbatch/
  Linux: ~/.local/share/shipbatch/
"""

from pathlib import Path

import platformdirs

APP_NAME = "shipbatch"
APP_AUTHOR = "ShipBatch"


def get_data_dir() -> Path:
    """Return the directory for persistent data (DB)."""
    return Path(platformdirs.user_data_dir(APP_NAME, appauthor=APP_AUTHOR))


def get_config_dir() -> Path:
    """Return the per-user config directory (~/.shipbatch)."""
    return Path.home() / ".shipbatch"


def get_default_db_path() -> Path:
    """Return the default SQLite database file path."""
    return get_data_dir() / "shipbatch.db"


def ensure_dirs_exist() -> None:
    """Create all required directories if they don't exist."""
    get_data_dir().mkdir(parents=True, exist_ok=True)
