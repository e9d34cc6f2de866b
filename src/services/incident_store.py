"""
Owner of the merged incident snapshot shared between the poller and the API.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Iterable, Mapping, Optional

from src.services.models import Incident, Snapshot

LOGGER = logging.getLogger(__name__)


class IncidentStore:
    """Holds the current snapshot behind a single lock.

    Writers never mutate the published dict: ``apply`` builds the next
    snapshot and swaps the reference, so a reader sees either the whole
    previous cycle or the whole new one.
    """

    def __init__(self, running: bool = True) -> None:
        self._lock = threading.Lock()
        self._incidents: Snapshot = {}
        self._running = running
        self._cycles = 0
        self._last_updated: Optional[datetime] = None

    def read(self) -> Snapshot:
        with self._lock:
            return dict(self._incidents)

    def apply(self, new_records: Mapping[str, Incident], stale_keys: Iterable[str]) -> Snapshot:
        stale = set(stale_keys)
        with self._lock:
            merged = {key: incident for key, incident in self._incidents.items() if key not in stale}
            merged.update(new_records)
            self._incidents = merged
            self._cycles += 1
            self._last_updated = datetime.now(timezone.utc)
            size = len(merged)
        LOGGER.info(
            "Merged %s new incidents, removed %s stale; now holding %s", len(new_records), len(stale), size
        )
        return dict(merged)

    @property
    def has_data(self) -> bool:
        with self._lock:
            return self._cycles > 0

    @property
    def cycles(self) -> int:
        with self._lock:
            return self._cycles

    @property
    def last_updated(self) -> Optional[datetime]:
        with self._lock:
            return self._last_updated

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    def set_running(self, running: bool) -> None:
        with self._lock:
            self._running = running
        LOGGER.info("Scraper %s", "resumed" if running else "paused")

    def toggle_running(self) -> bool:
        with self._lock:
            self._running = not self._running
            running = self._running
        LOGGER.info("Scraper %s", "resumed" if running else "paused")
        return running

    def __len__(self) -> int:
        with self._lock:
            return len(self._incidents)
