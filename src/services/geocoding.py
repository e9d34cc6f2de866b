"""
Geocoding providers for incident block descriptions.

Both providers answer ``geocode(location_text)`` with a ``GeocodeResult`` whose
``status`` tells the caller whether the record got a coordinate, legitimately
has none, hit a temporary problem, or ran into a condition an operator has to
fix (bad credentials, blocked client).
"""

from __future__ import annotations

import enum
import logging
import re
import threading
import time
from dataclasses import dataclass
from typing import Any, NamedTuple, Optional

import requests

from src.services.config import GeocoderProvider, Settings
from src.services.models import Coordinate

LOGGER = logging.getLogger(__name__)

# "<number> Block" prefix used by the dispatch table, e.g. "2100 Block Main St".
_BLOCK_QUALIFIER = re.compile(r"(?:\b\d+\s+)?\bBlock\b\s*", re.IGNORECASE)
INTERSECTION_SEPARATOR = "/"


class GeocoderConfigError(RuntimeError):
    """Raised when a provider cannot be constructed with the given settings."""


class GeocoderFatalError(RuntimeError):
    """Raised when a lookup failure means the provider is unusable until an operator steps in."""


class GeocodeStatus(str, enum.Enum):
    SUCCESS = "success"
    NO_RESULT = "no_result"
    TRANSIENT_ERROR = "transient_error"
    FATAL_ERROR = "fatal_error"


@dataclass
class GeocodeResult:
    query: str
    status: GeocodeStatus
    coordinate: Optional[Coordinate] = None
    intersection: bool = False
    source: str = "unknown"
    detail: str | None = None


class NormalizedBlock(NamedTuple):
    query: str
    intersection: bool


def normalize_block(text: str) -> NormalizedBlock:
    """Strip the block qualifier and reduce an intersection to its first road.

    Free-text lookups cannot resolve two crossing roads, so
    ``"100 Block Main St / Oak Ave"`` becomes ``("Main St", True)``.
    """
    cleaned = _BLOCK_QUALIFIER.sub("", text or "").strip()
    if INTERSECTION_SEPARATOR in cleaned:
        first = cleaned.split(INTERSECTION_SEPARATOR, 1)[0].strip()
        return NormalizedBlock(first, True)
    return NormalizedBlock(cleaned, False)


class BaseGeocoder:
    """Capability shared by every provider."""

    name: str = "unknown"

    def __init__(self) -> None:
        self.stats: dict[str, int] = {
            "requests": 0,
            "successes": 0,
            "no_results": 0,
            "transient_errors": 0,
            "fatal_errors": 0,
        }

    def geocode(self, location_text: str) -> GeocodeResult:
        raise NotImplementedError

    def _record(self, result: GeocodeResult) -> GeocodeResult:
        key = {
            GeocodeStatus.SUCCESS: "successes",
            GeocodeStatus.NO_RESULT: "no_results",
            GeocodeStatus.TRANSIENT_ERROR: "transient_errors",
            GeocodeStatus.FATAL_ERROR: "fatal_errors",
        }[result.status]
        self.stats[key] += 1
        return result


class NominatimGeocoder(BaseGeocoder):
    """Look up street names on the public Nominatim endpoint, one request per second at most."""

    name = "nominatim"
    endpoint = "https://nominatim.openstreetmap.org/search"
    # Nominatim usage policy: absolute maximum of one request per second.
    MIN_INTERVAL_FLOOR = 1.0
    BLOCKED_STATUSES = {401, 403}

    def __init__(
        self,
        county: str = "Henrico County",
        min_interval: float = 1.0,
        user_agent: str = "HPD-Alerts/1.0",
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__()
        if min_interval < self.MIN_INTERVAL_FLOOR:
            raise ValueError(
                f"min_interval must be at least {self.MIN_INTERVAL_FLOOR}s for Nominatim, got {min_interval}"
            )
        self.county = county
        self.min_interval = min_interval
        self.user_agent = user_agent
        self.timeout = timeout
        self.session = session or requests.Session()
        self._last_request: float | None = None
        self._throttle_lock = threading.Lock()
        self._clock = time.monotonic
        self._sleep = time.sleep

    def geocode(self, location_text: str) -> GeocodeResult:
        query, intersection = normalize_block(location_text)
        if not query:
            return self._record(
                GeocodeResult(query=query, status=GeocodeStatus.NO_RESULT, intersection=intersection, source=self.name)
            )
        payload, status, detail = self._fetch(query)
        if status is not GeocodeStatus.SUCCESS:
            return self._record(
                GeocodeResult(
                    query=query,
                    status=status,
                    intersection=intersection,
                    source=self.name,
                    detail=detail,
                )
            )
        try:
            coordinate = Coordinate(lat=float(payload["lat"]), lng=float(payload["lon"]))
        except (KeyError, TypeError, ValueError):
            LOGGER.warning("Malformed Nominatim candidate for '%s': %s", query, payload)
            return self._record(
                GeocodeResult(
                    query=query,
                    status=GeocodeStatus.TRANSIENT_ERROR,
                    intersection=intersection,
                    source=self.name,
                    detail="malformed candidate",
                )
            )
        return self._record(
            GeocodeResult(
                query=query,
                status=GeocodeStatus.SUCCESS,
                coordinate=coordinate,
                intersection=intersection,
                source=self.name,
            )
        )

    def _wait_for_slot(self) -> None:
        if self._last_request is not None:
            elapsed = self._clock() - self._last_request
            if elapsed < self.min_interval:
                self._sleep(self.min_interval - elapsed)
        self._last_request = self._clock()

    def _fetch(self, query: str) -> tuple[dict[str, Any] | None, GeocodeStatus, str | None]:
        params = {
            "street": query,
            "county": self.county,
            "format": "json",
            "limit": 1,
        }
        headers = {
            "User-Agent": self.user_agent,
        }
        with self._throttle_lock:
            self._wait_for_slot()
            self.stats["requests"] += 1
            try:
                response = self.session.get(self.endpoint, params=params, headers=headers, timeout=self.timeout)
            except requests.RequestException as exc:
                LOGGER.warning("Nominatim request failed for '%s': %s", query, exc)
                return None, GeocodeStatus.TRANSIENT_ERROR, str(exc)
        if response.status_code in self.BLOCKED_STATUSES:
            LOGGER.error("Nominatim refused requests (HTTP %s); check the usage policy.", response.status_code)
            return None, GeocodeStatus.FATAL_ERROR, f"HTTP {response.status_code}"
        if response.status_code != 200:
            LOGGER.warning("Nominatim returned HTTP %s for '%s'", response.status_code, query)
            return None, GeocodeStatus.TRANSIENT_ERROR, f"HTTP {response.status_code}"
        try:
            results = response.json()
        except ValueError:
            LOGGER.warning("Nominatim returned a non-JSON body for '%s'", query)
            return None, GeocodeStatus.TRANSIENT_ERROR, "invalid JSON"
        if not results:
            # Usually an intersection Nominatim cannot place.
            LOGGER.info("No Nominatim results for '%s'", query)
            return None, GeocodeStatus.NO_RESULT, None
        if not isinstance(results, list) or not isinstance(results[0], dict):
            LOGGER.warning("Unexpected Nominatim payload for '%s': %s", query, results)
            return None, GeocodeStatus.TRANSIENT_ERROR, "unexpected payload"
        return results[0], GeocodeStatus.SUCCESS, None


class GoogleGeocoder(BaseGeocoder):
    """Geocode raw block text with the Google Maps Geocoding API."""

    name = "google"
    endpoint = "https://maps.googleapis.com/maps/api/geocode/json"
    TRANSIENT_API_STATUSES = {"UNKNOWN_ERROR"}

    def __init__(
        self,
        api_key: str | None,
        region_suffix: str = ", Henrico County, VA",
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__()
        if not api_key:
            raise GeocoderConfigError("missing Google Maps API key")
        self.api_key = api_key
        self.region_suffix = region_suffix
        self.timeout = timeout
        self.session = session or requests.Session()

    def geocode(self, location_text: str) -> GeocodeResult:
        # Google's own matching copes with the county's block format and intersections.
        address = (location_text or "").strip() + self.region_suffix
        intersection = INTERSECTION_SEPARATOR in (location_text or "")
        self.stats["requests"] += 1
        try:
            response = self.session.get(
                self.endpoint,
                params={"address": address, "key": self.api_key},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            LOGGER.warning("Google geocoding request failed for '%s': %s", address, exc)
            return self._failure(address, GeocodeStatus.TRANSIENT_ERROR, intersection, str(exc))
        if response.status_code >= 500:
            return self._failure(
                address, GeocodeStatus.TRANSIENT_ERROR, intersection, f"HTTP {response.status_code}"
            )
        if response.status_code != 200:
            return self._failure(address, GeocodeStatus.FATAL_ERROR, intersection, f"HTTP {response.status_code}")
        try:
            payload = response.json()
        except ValueError:
            return self._failure(address, GeocodeStatus.TRANSIENT_ERROR, intersection, "invalid JSON")

        api_status = payload.get("status")
        if api_status == "ZERO_RESULTS":
            LOGGER.info("No Google results for '%s'", address)
            return self._failure(address, GeocodeStatus.NO_RESULT, intersection, None)
        if api_status in self.TRANSIENT_API_STATUSES:
            return self._failure(address, GeocodeStatus.TRANSIENT_ERROR, intersection, api_status)
        if api_status != "OK" or not payload.get("results"):
            message = payload.get("error_message") or api_status or "empty response"
            LOGGER.error("Google geocoding rejected '%s': %s", address, message)
            return self._failure(address, GeocodeStatus.FATAL_ERROR, intersection, str(message))
        try:
            location = payload["results"][0]["geometry"]["location"]
            coordinate = Coordinate(lat=float(location["lat"]), lng=float(location["lng"]))
        except (KeyError, IndexError, TypeError, ValueError):
            return self._failure(address, GeocodeStatus.TRANSIENT_ERROR, intersection, "malformed result")
        LOGGER.debug("Google request made for '%s'", address)
        return self._record(
            GeocodeResult(
                query=address,
                status=GeocodeStatus.SUCCESS,
                coordinate=coordinate,
                intersection=intersection,
                source=self.name,
            )
        )

    def _failure(
        self, address: str, status: GeocodeStatus, intersection: bool, detail: str | None
    ) -> GeocodeResult:
        return self._record(
            GeocodeResult(query=address, status=status, intersection=intersection, source=self.name, detail=detail)
        )


def build_geocoder(settings: Settings) -> BaseGeocoder:
    """Instantiate the provider chosen at startup."""
    if settings.provider is GeocoderProvider.NOMINATIM:
        return NominatimGeocoder(
            county=settings.county,
            user_agent=settings.user_agent,
            timeout=settings.geocode_timeout,
        )
    if settings.provider is GeocoderProvider.GOOGLE:
        return GoogleGeocoder(
            api_key=settings.maps_api_key,
            region_suffix=settings.region_suffix,
            timeout=settings.geocode_timeout,
        )
    raise GeocoderConfigError(f"unsupported geocoding provider: {settings.provider}")
