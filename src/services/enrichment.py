"""
Geocode newly observed incidents ahead of the merge.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Mapping

from src.services.geocoding import BaseGeocoder, GeocodeStatus, GeocoderFatalError
from src.services.models import Incident, Snapshot

LOGGER = logging.getLogger(__name__)


@dataclass
class EnrichmentReport:
    enriched: Snapshot = field(default_factory=dict)
    held_back: Snapshot = field(default_factory=dict)
    unresolved: int = 0

    @property
    def resolved(self) -> int:
        return len(self.enriched) - self.unresolved


def enrich_new_records(geocoder: BaseGeocoder, new_records: Mapping[str, Incident]) -> EnrichmentReport:
    """Look up every new incident once.

    Records without a match are kept with ``location=None``. Records whose
    lookup failed temporarily are held back so they come up as new again on
    the next cycle. A fatal provider response raises ``GeocoderFatalError``.
    """
    report = EnrichmentReport()
    if not new_records:
        return report
    start = time.time()
    LOGGER.info("Geocoding %s new incidents via %s...", len(new_records), geocoder.name)
    for key, incident in new_records.items():
        try:
            result = geocoder.geocode(incident.block)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Geocoder raised for incident %s ('%s'); holding it back", key, incident.block)
            report.held_back[key] = incident
            continue
        if result.status is GeocodeStatus.FATAL_ERROR:
            raise GeocoderFatalError(
                f"{geocoder.name} geocoding failed for incident {key} ('{incident.block}'): {result.detail}"
            )
        if result.status is GeocodeStatus.TRANSIENT_ERROR:
            LOGGER.warning(
                "Geocode for incident %s ('%s') failed temporarily (%s); retrying next cycle",
                key,
                incident.block,
                result.detail,
            )
            report.held_back[key] = incident
            continue
        if result.status is GeocodeStatus.NO_RESULT:
            LOGGER.info("No coordinates for incident %s ('%s')", key, incident.block)
            report.unresolved += 1
        else:
            LOGGER.debug("Incident %s resolved to %s via '%s'", key, result.coordinate, result.query)
        report.enriched[key] = incident.with_location(result.coordinate, result.intersection)
    LOGGER.info(
        "Geocoding complete: %s resolved, %s without match, %s held back in %.1fs.",
        report.resolved,
        report.unresolved,
        len(report.held_back),
        time.time() - start,
    )
    return report
