from __future__ import annotations

from typing import Any

import pytest
import requests

from src.services.scraper import ActiveCallsScraper, ScrapeError, parse_active_calls

SAMPLE_HTML = """
<html><body>
<table id="dgCalls">
  <tr><th>Call #</th><th>Block</th><th>Received</th><th>Type</th><th>Status</th><th>District</th></tr>
  <tr>
    <td>24-0101</td><td>2400 Block Hungary Rd</td><td>10:15</td>
    <td>ALARM - BUSINESS</td><td>DISPATCHED</td><td>Brookland</td>
  </tr>
  <tr>
    <td>24-0102</td><td>Broad St / Parham Rd</td><td>10:21</td>
    <td>TRAFFIC ACCIDENT</td><td>ENROUTE</td><td>Three Chopt</td>
  </tr>
  <tr><td></td><td></td></tr>
</table>
</body></html>
"""


class FakeResponse:
    def __init__(self, text: str, status_code: int = 200) -> None:
        self.text = text
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")


class FakeSession:
    def __init__(self, response: FakeResponse | Exception) -> None:
        self.response = response
        self.calls: list[dict[str, Any]] = []

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"url": url, **kwargs})
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


def test_parse_active_calls_reads_rows_and_skips_header() -> None:
    incidents = parse_active_calls(SAMPLE_HTML)

    assert set(incidents) == {"24-0101", "24-0102"}
    first = incidents["24-0101"]
    assert first.block == "2400 Block Hungary Rd"
    assert first.received == "10:15"
    assert first.call_type == "ALARM - BUSINESS"
    assert first.status == "DISPATCHED"
    assert first.district == "Brookland"
    assert first.location is None


def test_parse_active_calls_without_table_raises() -> None:
    with pytest.raises(ScrapeError):
        parse_active_calls("<html><body>maintenance</body></html>")


def test_scraper_wraps_request_failures() -> None:
    scraper = ActiveCallsScraper(session=FakeSession(requests.ConnectionError("down")))  # type: ignore[arg-type]

    with pytest.raises(ScrapeError):
        scraper.scrape()


def test_scraper_rejects_error_status() -> None:
    scraper = ActiveCallsScraper(session=FakeSession(FakeResponse("", status_code=502)))  # type: ignore[arg-type]

    with pytest.raises(ScrapeError):
        scraper.scrape()


def test_scraper_returns_snapshot() -> None:
    session = FakeSession(FakeResponse(SAMPLE_HTML))
    scraper = ActiveCallsScraper(url="https://calls.example", session=session)  # type: ignore[arg-type]

    incidents = scraper.scrape()

    assert len(incidents) == 2
    assert session.calls[0]["url"] == "https://calls.example"
    assert session.calls[0]["headers"]["User-Agent"] == "HPD-Alerts/1.0"
