from __future__ import annotations

from facility_core.postgis_store import PostgisFacilityStore
from facility_core.search import ProximitySearchEngine
from facility_core.store import FacilityStore, InMemoryFacilityStore
from osm_pipeline.jobs.importer import ImportOrchestrator
from osm_pipeline.monitoring.state import import_metrics
from osm_pipeline.normalize.tags import TagNormalizer
from osm_pipeline.providers.overpass import OverpassClient
from osm_pipeline.providers.rate_gate import RateGate

from facility_service.config import ServiceSettings, load_settings


def build_store(settings: ServiceSettings) -> FacilityStore:
    if settings.DATABASE_URL:
        return PostgisFacilityStore(dsn=settings.DATABASE_URL)
    return InMemoryFacilityStore()


def build_import_orchestrator(
    settings: ServiceSettings,
    store: FacilityStore,
    rate_gate: RateGate,
) -> ImportOrchestrator:
    client = OverpassClient(
        rate_gate=rate_gate,
        base_url=settings.OVERPASS_URL,
        timeout_seconds=settings.OVERPASS_TIMEOUT_SECONDS,
        max_retries=settings.OVERPASS_MAX_RETRIES,
        retry_base_delay_seconds=settings.OVERPASS_RETRY_BASE_DELAY_SECONDS,
        metrics=import_metrics,
    )
    return ImportOrchestrator(
        client=client,
        store=store,
        normalizer=TagNormalizer(fallback_type=settings.fallback_type),
        metrics=import_metrics,
        max_radius_meters=settings.IMPORT_MAX_RADIUS_METERS,
        run_timeout_seconds=settings.IMPORT_RUN_TIMEOUT_SECONDS,
    )


_settings = load_settings()
_store = build_store(_settings)
# one gate per process: every Overpass client shares the same request budget
_rate_gate = RateGate(_settings.OVERPASS_MIN_INTERVAL_SECONDS)
_search_engine = ProximitySearchEngine(_store, max_radius_meters=_settings.SEARCH_MAX_RADIUS_METERS)
_import_orchestrator = build_import_orchestrator(_settings, _store, _rate_gate)


def get_settings() -> ServiceSettings:
    return _settings


def get_store() -> FacilityStore:
    return _store


def get_search_engine() -> ProximitySearchEngine:
    return _search_engine


def get_import_orchestrator() -> ImportOrchestrator:
    return _import_orchestrator
