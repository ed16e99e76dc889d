from __future__ import annotations

import hashlib
import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Callable


@dataclass(frozen=True)
class CachedXml:
    xml: str
    etag: str
    last_modified: datetime


class XmlCache:
    """Holds the last rendered phonebook.xml until the store changes."""

    def __init__(self) -> None:
        self._entry: CachedXml | None = None
        self._lock = threading.Lock()

    def invalidate(self) -> None:
        with self._lock:
            self._entry = None

    def get(self) -> CachedXml | None:
        return self._entry

    def set(self, xml: str) -> CachedXml:
        entry = CachedXml(
            xml=xml,
            etag=hashlib.md5(xml.encode("utf-8")).hexdigest(),
            last_modified=datetime.now(UTC),
        )
        with self._lock:
            self._entry = entry
        return entry

    def get_or_render(self, render: Callable[[], str]) -> CachedXml:
        entry = self._entry
        if entry is not None:
            return entry
        return self.set(render())
