from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse

from facility_core.exceptions import ValidationError
from facility_core.postgis_store import PostgisFacilityStore
from facility_core.search import ProximitySearchEngine, SearchQuery
from facility_core.store import FacilityStore
from osm_pipeline.core.models import ImportSummary
from osm_pipeline.jobs.importer import ImportOrchestrator
from osm_pipeline.monitoring.state import import_exporter, import_metrics

from facility_service.dependencies import get_import_orchestrator, get_search_engine, get_settings, get_store
from facility_service.errors import ApiError, validation_error_code
from facility_service.response import error_response, success_response
from facility_service.schemas import FacilityItem, FacilityTypeItem, NearbyFacilityItem
from facility_service.telemetry import configure_logging, configure_tracing

logger = logging.getLogger(__name__)

SERVICE_VERSION = "0.1.0"

_FAILED_IMPORT_STATUS = {
    "SOURCE_UNAVAILABLE": 502,
    "SOURCE_RATE_LIMITED": 502,
    "RUN_TIMEOUT": 504,
}


def _parse_types(raw: str | None) -> list[str] | None:
    if raw is None:
        return None
    return [item.strip() for item in raw.split(",") if item.strip()]


def _raise_for_failed_import(summary: ImportSummary) -> None:
    if summary.succeeded:
        return
    code = summary.error_code or "SOURCE_UNAVAILABLE"
    logger.warning("import_request_failed", extra={"error_code": code, "imported": summary.imported})
    raise ApiError(
        code=code,
        message=summary.error or "import failed",
        status_code=_FAILED_IMPORT_STATUS.get(code, 502),
        meta={"summary": summary.to_dict()},
    )


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    configure_tracing(settings.SERVICE_NAME, SERVICE_VERSION)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        store = app.dependency_overrides.get(get_store, get_store)()
        if isinstance(store, PostgisFacilityStore):
            await store.close()

    app = FastAPI(title="Facility Service", version=SERVICE_VERSION, lifespan=lifespan)

    @app.get("/healthz")
    async def healthz() -> dict[str, object]:
        return success_response({"status": "ok"}, meta={})

    @app.get("/readyz")
    async def readyz() -> dict[str, object]:
        return success_response({"status": "ready"}, meta={})

    @app.get("/metrics")
    async def metrics() -> PlainTextResponse:
        return PlainTextResponse(import_exporter.render(import_metrics), media_type="text/plain; version=0.0.4")

    # static paths are declared before /{facility_id} so they are not captured as ids
    @app.get("/v1/facilities/nearby")
    async def nearby_facilities(
        lat: float,
        lng: float,
        radius: float = 1_000.0,
        types: str | None = None,
        wheelchair_accessible: bool | None = None,
        limit: int = 20,
        offset: int = 0,
        engine: ProximitySearchEngine = Depends(get_search_engine),
    ) -> dict[str, object]:
        result = await engine.search(
            SearchQuery(
                lat=lat,
                lng=lng,
                radius_meters=radius,
                facility_types=_parse_types(types),
                wheelchair_accessible=wheelchair_accessible,
                limit=limit,
                offset=offset,
            )
        )
        return success_response(
            [NearbyFacilityItem.from_nearby(item).model_dump(mode="json") for item in result.items],
            meta={
                "total": result.total,
                "limit": result.limit,
                "offset": result.offset,
                "radius_meters": result.radius_meters,
                "has_more": result.has_more,
            },
        )

    @app.get("/v1/facilities/types")
    async def facility_types(store: FacilityStore = Depends(get_store)) -> dict[str, object]:
        items = await store.list_types()
        return success_response(
            [FacilityTypeItem.from_domain(item).model_dump() for item in items],
            meta={"count": len(items)},
        )

    @app.get("/v1/facilities/{facility_id}")
    async def get_facility(facility_id: str, store: FacilityStore = Depends(get_store)) -> dict[str, object]:
        facility = await store.get_by_id(facility_id)
        if facility is None:
            raise ApiError("NOT_FOUND", "facility not found", 404)
        return success_response(FacilityItem.from_domain(facility).model_dump(mode="json"), meta={})

    @app.post("/v1/osm/import")
    async def import_area(
        lat: float = Query(...),
        lng: float = Query(...),
        radius: float = Query(default=1_000.0),
        orchestrator: ImportOrchestrator = Depends(get_import_orchestrator),
    ) -> dict[str, object]:
        summary = await orchestrator.import_area(lat, lng, radius)
        _raise_for_failed_import(summary)
        return success_response(summary.to_dict(), meta={})

    @app.exception_handler(ApiError)
    async def handle_api_error(_: Request, exc: ApiError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=error_response(exc.code, exc.message, exc.meta))

    @app.exception_handler(ValidationError)
    async def handle_domain_validation_error(_: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content=error_response(validation_error_code(exc), str(exc)))

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
        message = "; ".join(err["msg"] for err in exc.errors())
        return JSONResponse(status_code=422, content=error_response("VALIDATION_ERROR", message))

    return app


app = create_app()
