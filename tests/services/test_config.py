from __future__ import annotations

import pytest

from src.services.config import ConfigError, GeocoderProvider, load_settings


def test_load_settings_accepts_nominatim_without_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MAPS_TOKEN", raising=False)

    settings = load_settings("nominatim", "30")

    assert settings.provider is GeocoderProvider.NOMINATIM
    assert settings.poll_interval_seconds == 30
    assert settings.maps_api_key is None


def test_google_key_read_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MAPS_TOKEN", "secret")

    settings = load_settings("Google", 60)

    assert settings.provider is GeocoderProvider.GOOGLE
    assert settings.maps_api_key == "secret"


def test_google_without_key_fails(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MAPS_TOKEN", raising=False)

    with pytest.raises(ConfigError):
        load_settings("google", 60)


@pytest.mark.parametrize("interval", ["9", 0, "-5", "soon"])
def test_interval_below_floor_or_invalid_fails(interval: object) -> None:
    with pytest.raises(ConfigError):
        load_settings("nominatim", interval)  # type: ignore[arg-type]


def test_unknown_provider_fails() -> None:
    with pytest.raises(ConfigError):
        load_settings("bing", 60)
