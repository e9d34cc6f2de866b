"""
Command-line entry point: validate settings, wire the poller and serve the API.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

import uvicorn
from dotenv import load_dotenv

from src.api.main import create_app
from src.services.config import DEFAULT_POLL_INTERVAL_SECONDS, ConfigError, GeocoderProvider, load_settings
from src.services.geocoding import GeocoderConfigError, build_geocoder
from src.services.incident_store import IncidentStore
from src.services.poller import IncidentPoller
from src.services.scraper import ActiveCallsScraper

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Serve geocoded Henrico County active calls.")
    parser.add_argument(
        "--provider",
        required=True,
        choices=[p.value for p in GeocoderProvider],
        help="Geocoding provider to use (google reads its key from MAPS_TOKEN).",
    )
    parser.add_argument(
        "--interval",
        default=str(DEFAULT_POLL_INTERVAL_SECONDS),
        help=f"Seconds between scrapes of the county feed (default: {DEFAULT_POLL_INTERVAL_SECONDS}, minimum 10).",
    )
    parser.add_argument("--host", default="0.0.0.0", help="Interface to bind (default: 0.0.0.0).")
    parser.add_argument("--port", type=int, default=8080, help="Port to listen on (default: 8080).")
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Python logging level (default: INFO).",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stdout,
        force=True,
    )

    dotenv_loaded = load_dotenv(dotenv_path=Path(__file__).resolve().parents[2] / ".env")
    if dotenv_loaded:
        LOGGER.debug("Loaded environment variables from .env file.")

    try:
        settings = load_settings(args.provider, args.interval, host=args.host, port=args.port)
        geocoder = build_geocoder(settings)
    except (ConfigError, GeocoderConfigError) as exc:
        LOGGER.error("Invalid configuration, quitting: %s", exc)
        return 2

    LOGGER.info(
        "Starting server using %s. Polling county every %s seconds.",
        settings.provider.value,
        settings.poll_interval_seconds,
    )
    store = IncidentStore()
    scraper = ActiveCallsScraper(url=settings.source_url, user_agent=settings.user_agent)
    poller = IncidentPoller(store, geocoder, scraper.scrape, settings.poll_interval_seconds)

    app = create_app(store, settings.provider, poller=poller)
    try:
        uvicorn.run(app, host=settings.host, port=settings.port)
    except Exception:  # noqa: BLE001
        LOGGER.exception("Server failed.")
        return 1
    if poller.halted:
        LOGGER.error("Poller halted: %s", poller.halted_reason)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
