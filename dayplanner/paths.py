from __future__ import annotations

import os
from pathlib import Path

APP_ENV_HOME = "PLANNER_HOME"


def project_root() -> Path:
    """
    Repository/project root directory.
    Contains dayplanner/ and tests/.
    """
    return Path(__file__).parent.parent.resolve()


def app_home() -> Path:
    """
    User-writable home for the planner.
    Override with PLANNER_HOME.
    """
    if os.environ.get(APP_ENV_HOME):
        return Path(os.environ[APP_ENV_HOME]).expanduser().resolve()
    return (Path.home() / ".dayplanner").resolve()


def config_dir() -> Path:
    d = app_home() / "config"
    d.mkdir(parents=True, exist_ok=True)
    return d
