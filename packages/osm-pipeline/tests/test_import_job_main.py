from __future__ import annotations

import json

import pytest

from facility_core.postgis_store import PostgisFacilityStore
from facility_core.store import InMemoryFacilityStore

from osm_pipeline.core.models import ImportState, ImportSummary
from osm_pipeline.jobs import __main__ as job_main
from osm_pipeline.jobs.__main__ import _build_store, _fallback_type, _parse_float, _required_env, build_orchestrator


def test_required_env_raises_when_missing(monkeypatch) -> None:
    monkeypatch.delenv("IMPORT_LAT", raising=False)
    with pytest.raises(RuntimeError):
        _required_env("IMPORT_LAT")


def test_parse_float_rejects_non_numeric(monkeypatch) -> None:
    monkeypatch.setenv("IMPORT_LAT", "north")
    with pytest.raises(RuntimeError):
        _parse_float("IMPORT_LAT")


def test_build_store_defaults_to_in_memory(monkeypatch) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)
    assert isinstance(_build_store(), InMemoryFacilityStore)


def test_build_store_uses_postgis_when_configured(monkeypatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "postgresql://example")
    assert isinstance(_build_store(), PostgisFacilityStore)


def test_fallback_type_empty_string_disables_fallback(monkeypatch) -> None:
    monkeypatch.setenv("NORMALIZER_FALLBACK_TYPE", "")
    assert _fallback_type() is None
    monkeypatch.delenv("NORMALIZER_FALLBACK_TYPE")
    assert _fallback_type() == "entrance"


def test_build_orchestrator_rejects_non_positive_timeout(monkeypatch) -> None:
    monkeypatch.setenv("OVERPASS_TIMEOUT_SECONDS", "0")
    with pytest.raises(RuntimeError):
        build_orchestrator(InMemoryFacilityStore())


@pytest.mark.parametrize(("state", "exit_code"), [(ImportState.DONE, 0), (ImportState.FAILED, 1)])
def test_main_prints_summary_and_sets_exit_code(monkeypatch, capsys, state: ImportState, exit_code: int) -> None:
    monkeypatch.setenv("IMPORT_LAT", "52.52")
    monkeypatch.setenv("IMPORT_LNG", "13.405")
    monkeypatch.setenv("IMPORT_RADIUS_METERS", "750")
    seen: dict[str, float] = {}

    async def fake_run_import(lat: float, lng: float, radius_meters: float) -> ImportSummary:
        seen.update(lat=lat, lng=lng, radius_meters=radius_meters)
        return ImportSummary(total_fetched=2, imported=2, state=state)

    monkeypatch.setattr(job_main, "run_import", fake_run_import)

    assert job_main.main() == exit_code
    printed = json.loads(capsys.readouterr().out)
    assert printed["state"] == state.value
    assert printed["imported"] == 2
    assert seen == {"lat": 52.52, "lng": 13.405, "radius_meters": 750.0}
