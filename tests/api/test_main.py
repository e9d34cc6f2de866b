from __future__ import annotations

from fastapi.testclient import TestClient

from src.api.main import create_app
from src.services.config import GeocoderProvider
from src.services.geocoding import BaseGeocoder, GeocodeResult, GeocodeStatus
from src.services.incident_store import IncidentStore
from src.services.models import Coordinate, Incident
from src.services.poller import IncidentPoller


class FatalGeocoder(BaseGeocoder):
    name = "fatal"

    def geocode(self, location_text: str) -> GeocodeResult:
        return GeocodeResult(query=location_text, status=GeocodeStatus.FATAL_ERROR, detail="REQUEST_DENIED")


def populated_store() -> IncidentStore:
    store = IncidentStore()
    store.apply(
        {
            "A": Incident(
                id="A",
                block="1 Main St",
                received="10:15",
                call_type="ALARM",
                status="DISPATCHED",
                district="Brookland",
                location=Coordinate(37.6, -77.5),
            ),
            "B": Incident(id="B", block="Broad St / Parham Rd", intersection=True),
        },
        (),
    )
    return store


def test_get_alerts_serializes_snapshot() -> None:
    client = TestClient(create_app(populated_store(), GeocoderProvider.NOMINATIM))

    response = client.get("/getAlerts")

    assert response.status_code == 200
    body = response.json()
    assert body["A"] == {
        "id": "A",
        "block": "1 Main St",
        "location": {"lat": 37.6, "lng": -77.5},
        "intersection": False,
        "received": "10:15",
        "type": "ALARM",
        "status": "DISPATCHED",
        "district": "Brookland",
    }
    assert body["B"]["location"] is None
    assert body["B"]["intersection"] is True


def test_get_alerts_before_first_cycle_is_unavailable() -> None:
    client = TestClient(create_app(IncidentStore(), GeocoderProvider.NOMINATIM))

    response = client.get("/getAlerts")

    assert response.status_code == 503


def test_get_alerts_while_paused_is_forbidden() -> None:
    store = populated_store()
    client = TestClient(create_app(store, GeocoderProvider.GOOGLE))

    toggled = client.post("/toggleScraper")
    assert toggled.json() == {"running": False}

    response = client.get("/getAlerts")
    assert response.status_code == 403
    assert response.json()["detail"] == "scraper is not running"

    assert client.post("/toggleScraper").json() == {"running": True}
    assert client.get("/getAlerts").status_code == 200


def test_get_provider_reports_selection() -> None:
    client = TestClient(create_app(IncidentStore(), GeocoderProvider.NOMINATIM))

    assert client.get("/getProvider").json() == {"provider": "nominatim", "nominatim": True}


def test_halted_poller_surfaces_in_alerts_and_status() -> None:
    store = populated_store()
    poller = IncidentPoller(store, FatalGeocoder(), lambda: {"C": Incident(id="C", block="3 Elm St")}, 10)
    poller.run_cycle()
    client = TestClient(create_app(store, GeocoderProvider.GOOGLE, poller=poller))

    alerts = client.get("/getAlerts")
    status = client.get("/status").json()

    assert alerts.status_code == 503
    assert "halted" in alerts.json()["detail"]
    assert status["state"] == "halted"
    assert status["halted_reason"]
    assert status["incidents"] == 2


def test_health() -> None:
    client = TestClient(create_app(IncidentStore(), GeocoderProvider.NOMINATIM))

    assert client.get("/health").json() == {"status": "ok"}
