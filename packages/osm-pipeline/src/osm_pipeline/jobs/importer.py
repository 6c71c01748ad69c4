from __future__ import annotations

import asyncio
import logging
import math
from time import perf_counter
from typing import Protocol

from opentelemetry import trace

from facility_core.exceptions import InvalidArea, InvalidRadius, ValidationError
from facility_core.models import FacilityCandidate
from facility_core.store import FacilityStore
from geo_engine.models import GeoPoint, is_valid_coordinate

from osm_pipeline.core.exceptions import SourceError, SourceRateLimited
from osm_pipeline.core.metrics import InMemoryImportMetricsCollector
from osm_pipeline.core.models import OSM_SOURCE, ImportState, ImportSummary, RawSourceElement
from osm_pipeline.normalize.tags import Skip, TagNormalizer

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_MAX_IMPORT_RADIUS_METERS = 10_000.0
DEFAULT_RUN_TIMEOUT_SECONDS = 300.0


class SourceClient(Protocol):
    async def fetch_area(self, center: GeoPoint, radius_meters: float) -> list[RawSourceElement]:
        ...


class ImportOrchestrator:
    """Fetch one area from the provider, normalize each element and store the new ones.

    Elements are processed one at a time. A failing element is counted and
    skipped; only provider errors and the run timeout end a run early, and
    such a run is reported ``FAILED`` with the counts reached so far.
    """

    def __init__(
        self,
        client: SourceClient,
        store: FacilityStore,
        normalizer: TagNormalizer | None = None,
        metrics: InMemoryImportMetricsCollector | None = None,
        max_radius_meters: float = DEFAULT_MAX_IMPORT_RADIUS_METERS,
        run_timeout_seconds: float = DEFAULT_RUN_TIMEOUT_SECONDS,
        source: str = OSM_SOURCE,
    ) -> None:
        if max_radius_meters <= 0:
            raise ValueError("max_radius_meters must be > 0")
        if run_timeout_seconds <= 0:
            raise ValueError("run_timeout_seconds must be > 0")
        self._client = client
        self._store = store
        self._normalizer = normalizer or TagNormalizer(source=source)
        self._metrics = metrics
        self._max_radius_meters = max_radius_meters
        self._run_timeout_seconds = run_timeout_seconds
        self._source = source

    async def import_area(self, lat: float, lng: float, radius_meters: float) -> ImportSummary:
        center, radius = self._validated_area(lat, lng, radius_meters)
        summary = ImportSummary()
        started = perf_counter()
        logger.info(
            "import_run_started",
            extra={"source": self._source, "lat": center.lat, "lng": center.lng, "radius_meters": radius},
        )
        with tracer.start_as_current_span("osm.import_area") as span:
            span.set_attribute("import.radius_meters", radius)
            try:
                await asyncio.wait_for(self._run(center, radius, summary), timeout=self._run_timeout_seconds)
            except SourceError as exc:
                code = "SOURCE_RATE_LIMITED" if isinstance(exc, SourceRateLimited) else "SOURCE_UNAVAILABLE"
                summary.fail(code, f"source error: {exc}")
                logger.error(
                    "import_run_failed",
                    extra={"source": self._source, "error_code": code, "error": str(exc)},
                )
            except TimeoutError:
                summary.fail("RUN_TIMEOUT", f"run exceeded {self._run_timeout_seconds:g}s")
                logger.error(
                    "import_run_failed",
                    extra={"source": self._source, "error_code": "RUN_TIMEOUT", "imported": summary.imported},
                )
            else:
                summary.state = ImportState.DONE
            span.set_attribute("import.state", summary.state.value)
            span.set_attribute("import.imported", summary.imported)

        duration_seconds = perf_counter() - started
        self._record_run(summary, duration_seconds)
        logger.info(
            "import_run_completed",
            extra={"source": self._source, "duration_seconds": round(duration_seconds, 3), **summary.to_dict()},
        )
        return summary

    def _validated_area(self, lat: float, lng: float, radius_meters: float) -> tuple[GeoPoint, float]:
        if not is_valid_coordinate(lat, lng):
            raise InvalidArea(f"invalid coordinates: lat={lat}, lng={lng}")
        try:
            radius = float(radius_meters)
        except (TypeError, ValueError) as exc:
            raise InvalidRadius(f"radius_meters must be a number: {radius_meters!r}") from exc
        if not math.isfinite(radius) or radius <= 0 or radius > self._max_radius_meters:
            raise InvalidRadius(f"radius_meters must be in (0, {self._max_radius_meters:g}]: {radius_meters!r}")
        return GeoPoint(lat=float(lat), lng=float(lng)), radius

    async def _run(self, center: GeoPoint, radius_meters: float, summary: ImportSummary) -> None:
        summary.state = ImportState.FETCHING
        fetch_started = perf_counter()
        elements = await self._client.fetch_area(center, radius_meters)
        self._observe("fetch", fetch_started)
        summary.total_fetched = len(elements)
        process_started = perf_counter()
        for element in elements:
            await self._process(element, summary)
        self._observe("process", process_started)

    async def _process(self, element: RawSourceElement, summary: ImportSummary) -> None:
        summary.state = ImportState.NORMALIZING
        try:
            result = self._normalizer.normalize(element)
        except ValidationError as exc:
            summary.failed += 1
            logger.warning(
                "import_element_failed",
                extra={"stage": "normalize", "external_id": element.external_id, "error": str(exc)},
            )
            return
        if isinstance(result, Skip):
            summary.skipped += 1
            logger.debug("import_element_skipped", extra={"external_id": element.external_id, "reason": result.reason})
            return

        summary.state = ImportState.DEDUPLICATING
        try:
            known = await self._is_known(result)
        except Exception:
            summary.failed += 1
            logger.exception("import_element_failed", extra={"stage": "dedup", "external_id": element.external_id})
            return
        if known:
            summary.duplicates += 1
            summary.skipped += 1
            return

        summary.state = ImportState.WRITING
        try:
            facility_id = await self._store.create(result)
        except ValidationError as exc:
            summary.failed += 1
            logger.warning(
                "import_element_failed",
                extra={"stage": "write", "external_id": element.external_id, "error": str(exc)},
            )
            return
        except Exception:
            summary.failed += 1
            logger.exception("import_element_failed", extra={"stage": "write", "external_id": element.external_id})
            return
        summary.imported += 1
        summary.imported_ids.append(facility_id)

    async def _is_known(self, candidate: FacilityCandidate) -> bool:
        for source, external_id in candidate.dedup_keys():
            if await self._store.find_by_external_id(source, external_id) is not None:
                return True
        return False

    def _observe(self, stage: str, started: float) -> None:
        if self._metrics:
            self._metrics.observe_stage_duration(stage, (perf_counter() - started) * 1000.0)

    def _record_run(self, summary: ImportSummary, duration_seconds: float) -> None:
        if not self._metrics:
            return
        status = "success" if summary.succeeded else "failed"
        self._metrics.increment_run(source=self._source, status=status)
        self._metrics.observe_import_duration(source=self._source, duration_seconds=duration_seconds)
        self._metrics.add_elements(self._source, "imported", summary.imported)
        self._metrics.add_elements(self._source, "duplicate", summary.duplicates)
        self._metrics.add_elements(self._source, "skipped", summary.skipped - summary.duplicates)
        self._metrics.add_elements(self._source, "failed", summary.failed)
