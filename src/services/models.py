"""
Incident records scraped from the county active-calls table.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional


@dataclass(frozen=True)
class Coordinate:
    lat: float
    lng: float

    def to_dict(self) -> dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}


@dataclass(frozen=True)
class Incident:
    """A single active call; ``location`` stays ``None`` until geocoded."""

    id: str
    block: str
    received: str = ""
    call_type: str = ""
    status: str = ""
    district: str = ""
    location: Optional[Coordinate] = None
    intersection: bool = False

    def with_location(self, location: Optional[Coordinate], intersection: bool) -> "Incident":
        return replace(self, location=location, intersection=intersection)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "block": self.block,
            "location": self.location.to_dict() if self.location else None,
            "intersection": self.intersection,
            "received": self.received,
            "type": self.call_type,
            "status": self.status,
            "district": self.district,
        }


# Point-in-time view of the active calls, keyed by incident id.
Snapshot = dict[str, Incident]
