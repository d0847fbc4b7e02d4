"""Current operator session, observable by the capturer and the agent."""
from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, List, Optional

from mepcalls.device.models import DeviceSession

logger = logging.getLogger(__name__)

SessionListener = Callable[[Optional[DeviceSession]], None]


class SessionStore(ABC):
    def __init__(self) -> None:
        self._listeners: List[SessionListener] = []
        self._lock = threading.Lock()

    @abstractmethod
    def current(self) -> Optional[DeviceSession]:
        """Return the stored session, expired or not."""

    @abstractmethod
    def _write(self, session: Optional[DeviceSession]) -> None:
        """Persist ``session`` or forget it when None."""

    def subscribe(self, listener: SessionListener) -> None:
        self._listeners.append(listener)

    def save(self, session: DeviceSession) -> None:
        with self._lock:
            self._write(session)
        logger.info("Session stored for staff %s", session.staff_id)
        self._notify(session)

    def clear(self) -> None:
        with self._lock:
            self._write(None)
        logger.info("Session cleared")
        self._notify(None)

    def _notify(self, session: Optional[DeviceSession]) -> None:
        for listener in list(self._listeners):
            try:
                listener(session)
            except Exception:
                logger.exception("Session listener failed")


class InMemorySessionStore(SessionStore):
    def __init__(self, session: Optional[DeviceSession] = None) -> None:
        super().__init__()
        self._session = session

    def current(self) -> Optional[DeviceSession]:
        return self._session

    def _write(self, session: Optional[DeviceSession]) -> None:
        self._session = session


class FileSessionStore(SessionStore):
    """Keeps the session in a JSON file so it survives restarts."""

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self._path = Path(path)

    def current(self) -> Optional[DeviceSession]:
        if not self._path.exists():
            return None
        try:
            return DeviceSession.model_validate_json(self._path.read_text(encoding="utf-8"))
        except ValueError:
            logger.warning("Ignoring unreadable session file %s", self._path)
            return None

    def _write(self, session: Optional[DeviceSession]) -> None:
        if session is None:
            self._path.unlink(missing_ok=True)
            return
        self._path.write_text(json.dumps(session.model_dump(mode="json")), encoding="utf-8")
