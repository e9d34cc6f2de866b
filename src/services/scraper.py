"""
Scrape the county's active calls table into an incident snapshot.
"""

from __future__ import annotations

import logging

import requests
from bs4 import BeautifulSoup

from src.services.models import Incident, Snapshot

LOGGER = logging.getLogger(__name__)

ACTIVE_CALLS_URL = "https://activecalls.henrico.us/"
CALLS_TABLE_ID = "dgCalls"


class ScrapeError(RuntimeError):
    """The active calls page could not be fetched or parsed."""


def parse_active_calls(html: str) -> Snapshot:
    soup = BeautifulSoup(html, "html.parser")
    table = soup.find("table", id=CALLS_TABLE_ID)
    if table is None:
        raise ScrapeError(f"table#{CALLS_TABLE_ID} not found on active calls page")
    incidents: Snapshot = {}
    for row in table.find_all("tr"):
        cells = [cell.get_text(" ", strip=True) for cell in row.find_all("td")]
        # Header row carries <th> cells or an empty first column.
        if not cells or not cells[0]:
            continue
        cells += [""] * (6 - len(cells))
        incident_id = cells[0]
        incidents[incident_id] = Incident(
            id=incident_id,
            block=cells[1],
            received=cells[2],
            call_type=cells[3],
            status=cells[4],
            district=cells[5],
        )
    return incidents


class ActiveCallsScraper:
    def __init__(
        self,
        url: str = ACTIVE_CALLS_URL,
        timeout: float = 15.0,
        user_agent: str = "HPD-Alerts/1.0",
        session: requests.Session | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()
        self._headers = {"User-Agent": user_agent}

    def scrape(self) -> Snapshot:
        try:
            resp = self.session.get(self.url, headers=self._headers, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise ScrapeError(f"request to {self.url} failed: {exc}") from exc
        incidents = parse_active_calls(resp.text)
        LOGGER.info("Scraped %s active calls from %s", len(incidents), self.url)
        return incidents
