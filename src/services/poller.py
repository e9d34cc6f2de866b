"""
Background loop that keeps the incident store in sync with the county feed.

Each cycle scrapes the active calls table, reconciles it with the stored
snapshot, geocodes the new incidents and merges the result. Cycles never
overlap: a tick that arrives while one is still running is dropped.
"""

from __future__ import annotations

import enum
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from src.services.config import MIN_POLL_INTERVAL_SECONDS
from src.services.enrichment import enrich_new_records
from src.services.geocoding import BaseGeocoder, GeocoderFatalError
from src.services.incident_store import IncidentStore
from src.services.models import Snapshot
from src.services.reconcile import reconcile

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_SUSPECT_EMPTY_SCRAPES = 3


class PollerState(str, enum.Enum):
    IDLE = "idle"
    SCRAPING = "scraping"
    GEOCODING = "geocoding"
    MERGING = "merging"
    HALTED = "halted"


@dataclass
class CycleOutcome:
    merged: bool
    scraped: int = 0
    new: int = 0
    stale: int = 0
    held_back: int = 0
    skipped_reason: str | None = None


class IncidentPoller:
    def __init__(
        self,
        store: IncidentStore,
        geocoder: BaseGeocoder,
        scrape: Callable[[], Snapshot],
        interval_seconds: int,
        max_suspect_empty_scrapes: int = DEFAULT_MAX_SUSPECT_EMPTY_SCRAPES,
    ) -> None:
        if interval_seconds < MIN_POLL_INTERVAL_SECONDS:
            raise ValueError(
                f"poll interval must be at least {MIN_POLL_INTERVAL_SECONDS} seconds, got {interval_seconds}"
            )
        self.store = store
        self.geocoder = geocoder
        self.interval_seconds = interval_seconds
        self.max_suspect_empty_scrapes = max(0, max_suspect_empty_scrapes)
        self._scrape = scrape
        self._cycle_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._empty_streak = 0
        self.state = PollerState.IDLE
        self.halted_reason: str | None = None
        self.dropped_ticks = 0

    @property
    def halted(self) -> bool:
        return self.state is PollerState.HALTED

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="incident-poller", daemon=True)
        self._thread.start()
        LOGGER.info("Incident poller started; polling every %s seconds.", self.interval_seconds)

    def stop(self, timeout: float | None = None) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None
        LOGGER.info("Incident poller stopped.")

    def _run(self) -> None:
        next_tick = time.monotonic()
        while not self._stop_event.is_set():
            self.tick()
            if self.halted:
                break
            next_tick += self.interval_seconds
            now = time.monotonic()
            if next_tick <= now:
                missed = int((now - next_tick) // self.interval_seconds) + 1
                self.dropped_ticks += missed
                LOGGER.warning("Cycle overran the poll interval; dropping %s tick(s).", missed)
                next_tick += missed * self.interval_seconds
            if self._stop_event.wait(next_tick - now):
                break

    def tick(self) -> bool:
        """Run one cycle unless paused, halted or another cycle is in flight."""
        if self.halted:
            return False
        if not self.store.running:
            LOGGER.debug("Scraper paused; skipping tick.")
            return False
        if not self._cycle_lock.acquire(blocking=False):
            self.dropped_ticks += 1
            LOGGER.warning("Previous cycle still running; dropping tick.")
            return False
        try:
            self.run_cycle()
        finally:
            if not self.halted:
                self.state = PollerState.IDLE
            self._cycle_lock.release()
        return True

    def run_cycle(self) -> CycleOutcome:
        self.state = PollerState.SCRAPING
        try:
            current = self._scrape()
        except Exception:  # noqa: BLE001
            LOGGER.exception("Scrape failed; keeping the previous incidents.")
            return CycleOutcome(merged=False, skipped_reason="scrape_failed")

        previous = self.store.read()
        if not current and previous:
            self._empty_streak += 1
            if self._empty_streak <= self.max_suspect_empty_scrapes:
                LOGGER.warning(
                    "Scrape returned no incidents while %s are held (%s/%s); keeping them this cycle.",
                    len(previous),
                    self._empty_streak,
                    self.max_suspect_empty_scrapes,
                )
                return CycleOutcome(merged=False, skipped_reason="suspect_empty_scrape")
            LOGGER.warning("Scrape empty %s times in a row; clearing incidents.", self._empty_streak)
        else:
            self._empty_streak = 0

        reconciliation = reconcile(previous, current)
        LOGGER.info(
            "Reconciled %s scraped incidents: %s new, %s stale.",
            len(current),
            len(reconciliation.new_records),
            len(reconciliation.stale_keys),
        )

        self.state = PollerState.GEOCODING
        try:
            report = enrich_new_records(self.geocoder, reconciliation.new_records)
        except GeocoderFatalError as exc:
            self._halt(str(exc))
            return CycleOutcome(
                merged=False,
                scraped=len(current),
                new=len(reconciliation.new_records),
                stale=len(reconciliation.stale_keys),
                skipped_reason="geocoder_fatal",
            )

        self.state = PollerState.MERGING
        self.store.apply(report.enriched, reconciliation.stale_keys)
        return CycleOutcome(
            merged=True,
            scraped=len(current),
            new=len(report.enriched),
            stale=len(reconciliation.stale_keys),
            held_back=len(report.held_back),
        )

    def _halt(self, reason: str) -> None:
        self.state = PollerState.HALTED
        self.halted_reason = reason
        self._stop_event.set()
        LOGGER.critical("Geocoding provider unusable, halting incident poller: %s", reason)
