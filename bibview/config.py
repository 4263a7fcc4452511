from __future__ import annotations

import json
import os
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional

from .logutil import logger


DEFAULT_PAGE_SIZE = 100
DEFAULT_SESSION_DAYS = 30
DEFAULT_GROUP_THRESHOLD = 100

SESSION_FILE = "session.json"
DURABLE_FILE = "preferences.json"


@dataclass
class AppConfig:
    libraries_root: Optional[str] = None
    state_dir: str = ".bibview"
    page_size: int = DEFAULT_PAGE_SIZE
    session_days: int = DEFAULT_SESSION_DAYS
    group_threshold: int = DEFAULT_GROUP_THRESHOLD

    def normalized_root(self) -> Path:
        root = os.getenv("BIBVIEW_LIBRARIES") or self.libraries_root
        if root:
            return Path(root).expanduser().resolve()
        # default to current directory
        return Path.cwd().resolve()

    def normalized_state_dir(self) -> Path:
        return Path(os.getenv("BIBVIEW_STATE_DIR") or self.state_dir).expanduser().resolve()

    def session_path(self) -> Path:
        return self.normalized_state_dir() / SESSION_FILE

    def durable_path(self) -> Path:
        return self.normalized_state_dir() / DURABLE_FILE


def config_path() -> Path:
    return Path(os.getenv("BIBVIEW_CONFIG", "config.json")).resolve()


def _positive_int(value, default: int) -> int:
    try:
        value = int(value)
    except (TypeError, ValueError, OverflowError):
        return default
    return value if value > 0 else default


def load_config() -> AppConfig:
    p = config_path()
    if not p.exists():
        # create default
        cfg = AppConfig(libraries_root=str(Path.cwd()))
        save_config(cfg)
        return cfg
    try:
        data = json.loads(p.read_text())
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable config {}: {}", p, e)
        return AppConfig(libraries_root=str(Path.cwd()))
    if not isinstance(data, dict):
        logger.warning("Ignoring config {}: expected a JSON object", p)
        return AppConfig(libraries_root=str(Path.cwd()))
    return AppConfig(
        libraries_root=data.get("libraries_root") or str(Path.cwd()),
        state_dir=data.get("state_dir") or ".bibview",
        page_size=_positive_int(data.get("page_size"), DEFAULT_PAGE_SIZE),
        session_days=_positive_int(data.get("session_days"), DEFAULT_SESSION_DAYS),
        group_threshold=_positive_int(data.get("group_threshold"), DEFAULT_GROUP_THRESHOLD),
    )


def save_config(cfg: AppConfig) -> None:
    p = config_path()
    data = asdict(cfg)
    p.write_text(json.dumps(data, indent=2))
