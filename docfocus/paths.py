from __future__ import annotations

import os
from pathlib import Path

APP_DIR_NAME = "DocFocus"
HOME_ENV_VAR = "DOCFOCUS_HOME"


def data_directory() -> Path:
    override = os.environ.get(HOME_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path.home() / "Documents" / APP_DIR_NAME


def database_path() -> Path:
    return data_directory() / "DocFocus.sqlite3"


def log_path() -> Path:
    return data_directory() / "docfocus.log"


def ensure_directories() -> None:
    data_directory().mkdir(parents=True, exist_ok=True)
