from __future__ import annotations

import json
import os
import time
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from .logutil import logger
from .state import ViewPreferences, ViewState

DAY_SECONDS = 24 * 60 * 60
SESSION_MAX_AGE = 30 * DAY_SECONDS


class Scope(str, Enum):
    SESSION = "session"
    DURABLE = "durable"


class MemoryStore:
    """Keeps the last saved payload in memory; optional expiry like the file store."""

    def __init__(self, max_age: Optional[float] = None, clock: Callable[[], float] = time.time):
        self.max_age = max_age
        self.clock = clock
        self._data: Optional[str] = None
        self._saved_at: float = 0.0
        self.writes = 0

    def save(self, data: Any) -> bool:
        self._data = json.dumps(data)
        self._saved_at = self.clock()
        self.writes += 1
        return True

    def load(self) -> Optional[Any]:
        if self._data is None:
            return None
        if self.max_age is not None and self.clock() - self._saved_at > self.max_age:
            return None
        return json.loads(self._data)


class JsonFileStore:
    """A JSON document on disk wrapped as ``{"saved_at": ts, "data": ...}``.

    With ``max_age`` set, a payload older than that many seconds reads as
    absent, and every save pushes the expiry forward. Unreadable or malformed
    files also read as absent.
    """

    def __init__(self, path: Path | str, max_age: Optional[float] = None, clock: Callable[[], float] = time.time):
        self.path = Path(path)
        self.max_age = max_age
        self.clock = clock

    def save(self, data: Any) -> bool:
        """Write ``data``; returns False when the file could not be written."""
        payload = {"saved_at": self.clock(), "data": data}
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(payload, indent=2))
            os.replace(tmp, self.path)
        except OSError as e:
            # browsing goes on with the in-memory state
            logger.warning("Cannot write state file {}: {}", self.path, e)
            return False
        return True

    def load(self) -> Optional[Any]:
        if not self.path.exists():
            return None
        try:
            payload = json.loads(self.path.read_text())
            saved_at = float(payload["saved_at"])
            data = payload["data"]
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Ignoring unreadable state file {}: {}", self.path, e)
            return None
        if self.max_age is not None and self.clock() - saved_at > self.max_age:
            logger.info("State file {} expired", self.path)
            return None
        return data


class ViewStatePersistence:
    """Two independent stores: the session snapshot and the durable preferences."""

    def __init__(self, session, durable):
        self._stores: Dict[Scope, Any] = {Scope.SESSION: session, Scope.DURABLE: durable}

    @classmethod
    def in_memory(cls) -> "ViewStatePersistence":
        return cls(MemoryStore(max_age=SESSION_MAX_AGE), MemoryStore())

    @classmethod
    def on_disk(cls, session_path: Path | str, durable_path: Path | str, session_days: int = 30) -> "ViewStatePersistence":
        return cls(
            JsonFileStore(session_path, max_age=session_days * DAY_SECONDS),
            JsonFileStore(durable_path),
        )

    def store(self, scope: Scope):
        return self._stores[Scope(scope)]

    def save(self, scope: Scope, data: Any) -> None:
        self.store(scope).save(data)

    def load(self, scope: Scope) -> Optional[Any]:
        return self.store(scope).load()

    def save_view_state(self, state: ViewState) -> None:
        self.save(Scope.SESSION, state.to_snapshot())

    def load_view_state(self) -> Optional[ViewState]:
        data = self.load(Scope.SESSION)
        if data is None:
            return None
        try:
            return ViewState.from_snapshot(data)
        except (TypeError, ValueError, OverflowError) as e:
            logger.warning("Discarding malformed session snapshot: {}", e)
            return None

    def save_preferences(self, prefs: ViewPreferences) -> None:
        self.save(Scope.DURABLE, prefs.to_dict())

    def load_preferences(self) -> ViewPreferences:
        return ViewPreferences.from_dict(self.load(Scope.DURABLE))
