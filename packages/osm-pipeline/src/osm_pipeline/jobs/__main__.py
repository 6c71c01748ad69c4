from __future__ import annotations

import asyncio
import json
import logging
import os
import sys

from facility_core.postgis_store import PostgisFacilityStore
from facility_core.store import FacilityStore, InMemoryFacilityStore

from osm_pipeline.core.models import ImportSummary
from osm_pipeline.jobs.importer import ImportOrchestrator
from osm_pipeline.monitoring.state import import_metrics
from osm_pipeline.normalize.tags import TagNormalizer
from osm_pipeline.providers.overpass import OVERPASS_URL, OverpassClient
from osm_pipeline.providers.rate_gate import RateGate


def _required_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise RuntimeError(f"missing required environment variable: {name}")
    return value


def _parse_float(name: str) -> float:
    raw = _required_env(name)
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number: {raw!r}") from exc


def _parse_positive_int(name: str, default: str) -> int:
    value = int(os.getenv(name, default))
    if value <= 0:
        raise RuntimeError(f"{name} must be > 0")
    return value


def _parse_positive_float(name: str, default: str) -> float:
    value = float(os.getenv(name, default))
    if value <= 0:
        raise RuntimeError(f"{name} must be > 0")
    return value


def _parse_non_negative_float(name: str, default: str) -> float:
    value = float(os.getenv(name, default))
    if value < 0:
        raise RuntimeError(f"{name} must be >= 0")
    return value


def _build_store() -> FacilityStore:
    dsn = os.getenv("DATABASE_URL")
    if dsn:
        return PostgisFacilityStore(dsn=dsn)
    # without a database the run is a dry run: fetched, normalized, counted, then discarded
    return InMemoryFacilityStore()


def _fallback_type() -> str | None:
    value = os.getenv("NORMALIZER_FALLBACK_TYPE", "entrance").strip()
    return value or None


def build_orchestrator(store: FacilityStore) -> ImportOrchestrator:
    client = OverpassClient(
        rate_gate=RateGate(_parse_non_negative_float("OVERPASS_MIN_INTERVAL_SECONDS", "0.5")),
        base_url=os.getenv("OVERPASS_URL", OVERPASS_URL),
        timeout_seconds=_parse_positive_float("OVERPASS_TIMEOUT_SECONDS", "30"),
        max_retries=_parse_positive_int("OVERPASS_MAX_RETRIES", "3"),
        retry_base_delay_seconds=_parse_non_negative_float("OVERPASS_RETRY_BASE_DELAY_SECONDS", "1.0"),
        metrics=import_metrics,
    )
    return ImportOrchestrator(
        client=client,
        store=store,
        normalizer=TagNormalizer(fallback_type=_fallback_type()),
        metrics=import_metrics,
        max_radius_meters=_parse_positive_float("IMPORT_MAX_RADIUS_METERS", "10000"),
        run_timeout_seconds=_parse_positive_float("IMPORT_RUN_TIMEOUT_SECONDS", "300"),
    )


async def run_import(lat: float, lng: float, radius_meters: float) -> ImportSummary:
    store = _build_store()
    try:
        return await build_orchestrator(store).import_area(lat, lng, radius_meters)
    finally:
        if isinstance(store, PostgisFacilityStore):
            await store.close()


def main() -> int:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
    lat = _parse_float("IMPORT_LAT")
    lng = _parse_float("IMPORT_LNG")
    radius_meters = _parse_positive_float("IMPORT_RADIUS_METERS", "1000")
    summary = asyncio.run(run_import(lat, lng, radius_meters))
    print(json.dumps(summary.to_dict(), ensure_ascii=True))
    return 0 if summary.succeeded else 1


if __name__ == "__main__":
    sys.exit(main())
