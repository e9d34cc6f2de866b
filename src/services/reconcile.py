"""Diff a fresh scrape against the incidents already held."""

from __future__ import annotations

from typing import Mapping, NamedTuple

from src.services.models import Incident, Snapshot


class Reconciliation(NamedTuple):
    new_records: Snapshot
    stale_keys: frozenset[str]

    @property
    def is_empty(self) -> bool:
        return not self.new_records and not self.stale_keys


def reconcile(previous: Mapping[str, Incident], current: Mapping[str, Incident]) -> Reconciliation:
    """Split ``current`` against ``previous`` into new records and stale ids.

    Ids present in both snapshots show up in neither output; the caller keeps
    the previously enriched record for them. An empty ``current`` marks every
    previous id stale.
    """
    new_records = {key: incident for key, incident in current.items() if key not in previous}
    stale_keys = frozenset(key for key in previous if key not in current)
    return Reconciliation(new_records, stale_keys)
