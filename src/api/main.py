"""
FastAPI app exposing the reconciled incident snapshot held by the poller.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
import logging
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from src.services.config import GeocoderProvider
from src.services.incident_store import IncidentStore
from src.services.models import Incident
from src.services.poller import IncidentPoller

LOGGER = logging.getLogger("hpd_alerts_api")


class CoordinateOut(BaseModel):
    lat: float = Field(..., description="Latitude in decimal degrees")
    lng: float = Field(..., description="Longitude in decimal degrees")


class IncidentOut(BaseModel):
    id: str
    block: str
    location: Optional[CoordinateOut] = None
    intersection: bool = False
    received: str
    type: str
    status: str
    district: str

    @classmethod
    def from_incident(cls, incident: Incident) -> "IncidentOut":
        return cls(**incident.to_dict())


class ProviderOut(BaseModel):
    provider: str
    nominatim: bool


class ToggleOut(BaseModel):
    running: bool


class StatusOut(BaseModel):
    running: bool
    state: str
    incidents: int
    cycles: int
    last_updated: Optional[datetime] = None
    halted_reason: Optional[str] = None


def create_app(
    store: IncidentStore,
    provider: GeocoderProvider,
    poller: IncidentPoller | None = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if poller is not None:
            poller.start()
        yield
        if poller is not None:
            poller.stop(timeout=5)

    app = FastAPI(title="HPD Alerts API", version="0.1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/getAlerts", response_model=dict[str, IncidentOut])
    def get_alerts() -> dict[str, IncidentOut]:
        if not store.running:
            LOGGER.info("getAlerts refused: scraper paused")
            raise HTTPException(status_code=403, detail="scraper is not running")
        if poller is not None and poller.halted:
            raise HTTPException(status_code=503, detail=f"incident updates halted: {poller.halted_reason}")
        if not store.has_data:
            raise HTTPException(status_code=503, detail="incident data not available yet")
        snapshot = store.read()
        LOGGER.info("Serving %s incidents", len(snapshot))
        return {key: IncidentOut.from_incident(incident) for key, incident in snapshot.items()}

    @app.get("/getProvider", response_model=ProviderOut)
    def get_provider() -> ProviderOut:
        return ProviderOut(provider=provider.value, nominatim=provider is GeocoderProvider.NOMINATIM)

    @app.post("/toggleScraper", response_model=ToggleOut)
    def toggle_scraper() -> ToggleOut:
        return ToggleOut(running=store.toggle_running())

    @app.get("/status", response_model=StatusOut)
    def status() -> StatusOut:
        return StatusOut(
            running=store.running,
            state=poller.state.value if poller is not None else "detached",
            incidents=len(store),
            cycles=store.cycles,
            last_updated=store.last_updated,
            halted_reason=poller.halted_reason if poller is not None else None,
        )

    return app
