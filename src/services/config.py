"""
Runtime settings for the alert server: geocoding provider, poll interval and
HTTP binding. Values come from the CLI with the Google key read from the
environment (``MAPS_TOKEN``).
"""

from __future__ import annotations

import enum
import os
from dataclasses import dataclass

MIN_POLL_INTERVAL_SECONDS = 10
DEFAULT_POLL_INTERVAL_SECONDS = 60
MAPS_TOKEN_ENV = "MAPS_TOKEN"


class ConfigError(ValueError):
    """Invalid startup configuration."""


class GeocoderProvider(str, enum.Enum):
    NOMINATIM = "nominatim"
    GOOGLE = "google"


@dataclass(frozen=True)
class Settings:
    provider: GeocoderProvider
    poll_interval_seconds: int = DEFAULT_POLL_INTERVAL_SECONDS
    maps_api_key: str | None = None
    county: str = "Henrico County"
    region_suffix: str = ", Henrico County, VA"
    user_agent: str = "HPD-Alerts/1.0"
    geocode_timeout: float = 10.0
    source_url: str = "https://activecalls.henrico.us/"
    host: str = "0.0.0.0"
    port: int = 8080


def parse_provider(value: str) -> GeocoderProvider:
    try:
        return GeocoderProvider((value or "").strip().lower())
    except ValueError as exc:
        choices = ", ".join(p.value for p in GeocoderProvider)
        raise ConfigError(f"invalid provider '{value}' (expected one of: {choices})") from exc


def validate_interval(seconds: int | str) -> int:
    try:
        interval = int(seconds)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"invalid interval '{seconds}'") from exc
    # Anything faster hammers the county site.
    if interval < MIN_POLL_INTERVAL_SECONDS:
        raise ConfigError(f"interval must be at least {MIN_POLL_INTERVAL_SECONDS} seconds, got {interval}")
    return interval


def load_settings(
    provider: str,
    interval: int | str = DEFAULT_POLL_INTERVAL_SECONDS,
    host: str = "0.0.0.0",
    port: int = 8080,
    maps_api_key: str | None = None,
) -> Settings:
    """Validate raw CLI values; the Google key falls back to ``MAPS_TOKEN``."""
    selected = parse_provider(provider)
    poll_interval = validate_interval(interval)
    api_key = None
    if selected is GeocoderProvider.GOOGLE:
        api_key = maps_api_key or os.getenv(MAPS_TOKEN_ENV)
        if not api_key:
            raise ConfigError(f"missing Google Maps API token (set {MAPS_TOKEN_ENV})")
    return Settings(
        provider=selected,
        poll_interval_seconds=poll_interval,
        maps_api_key=api_key,
        host=host,
        port=port,
    )
