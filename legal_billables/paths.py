from __future__ import annotations

import os
import sys
from pathlib import Path

APP_DIR_NAME = "LegalBillables"
HOME_ENV_VAR = "LEGAL_BILLABLES_HOME"


def data_directory() -> Path:
    override = os.environ.get(HOME_ENV_VAR)
    if override:
        return Path(override)
    if sys.platform == "win32":
        local_appdata = os.environ.get("LOCALAPPDATA")
        base = Path(local_appdata) if local_appdata else Path.home() / "AppData" / "Local"
        return base / APP_DIR_NAME
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / APP_DIR_NAME
    xdg = os.environ.get("XDG_DATA_HOME")
    base = Path(xdg) if xdg else Path.home() / ".local" / "share"
    return base / APP_DIR_NAME


def database_path() -> Path:
    return data_directory() / "billables.sqlite3"


def ensure_directories() -> None:
    data_directory().mkdir(parents=True, exist_ok=True)
