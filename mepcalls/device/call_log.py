"""Read access to the device call log."""
from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Mapping

from mepcalls.device.models import CallLogEntry, ensure_utc, entry_from_row

logger = logging.getLogger(__name__)


class CallLogProvider(ABC):
    """Query surface over the OS call log."""

    @abstractmethod
    def recent_entries(self, since: datetime) -> List[CallLogEntry]:
        """Return entries whose call started at or after ``since``, newest first."""


def _newest_first(entries: Iterable[CallLogEntry], since: datetime) -> List[CallLogEntry]:
    bound = ensure_utc(since)
    return sorted((e for e in entries if e.date >= bound), key=lambda e: e.date, reverse=True)


class InMemoryCallLogProvider(CallLogProvider):
    def __init__(self, entries: Iterable[CallLogEntry] = ()) -> None:
        self._entries: List[CallLogEntry] = list(entries)

    def add(self, entry: CallLogEntry) -> None:
        self._entries.append(entry)

    def recent_entries(self, since: datetime) -> List[CallLogEntry]:
        return _newest_first(self._entries, since)


class JsonCallLogProvider(CallLogProvider):
    """Reads an exported call log: a JSON array of content-provider rows."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def recent_entries(self, since: datetime) -> List[CallLogEntry]:
        if not self._path.exists():
            logger.warning("Call log export %s not found", self._path)
            return []
        rows = json.loads(self._path.read_text(encoding="utf-8"))
        if not isinstance(rows, list):
            raise ValueError(f"Call log export {self._path} is not a JSON array")
        entries = []
        for row in rows:
            if not isinstance(row, Mapping):
                logger.warning("Skipping call log row that is not an object: %r", row)
                continue
            try:
                entries.append(entry_from_row(row))
            except (ValueError, TypeError):
                logger.warning("Skipping malformed call log row: %r", row)
        return _newest_first(entries, since)
