from __future__ import annotations

from collections.abc import Awaitable, Callable
import asyncio
import logging
from typing import Any

import httpx

from geo_engine.models import GeoPoint

from osm_pipeline.core.exceptions import SourceRateLimited, SourceRequestRejected, SourceUnavailable
from osm_pipeline.core.metrics import InMemoryImportMetricsCollector
from osm_pipeline.core.models import OSM_SOURCE, RawSourceElement
from osm_pipeline.core.retry import with_exponential_backoff
from osm_pipeline.providers.rate_gate import RateGate

logger = logging.getLogger(__name__)

OVERPASS_URL = "https://overpass-api.de/api/interpreter"
QUERY_TIMEOUT_SECONDS = 25

_ACCESSIBILITY_SELECTORS = (
    'node["amenity"="toilets"]["toilets:wheelchair"="yes"]',
    'way["amenity"="toilets"]["toilets:wheelchair"="yes"]',
    'node["amenity"="parking"]["parking:disabled"="yes"]',
    'way["amenity"="parking"]["parking:disabled"="yes"]',
    'node["wheelchair"="yes"]',
    'way["wheelchair"="yes"]',
    'node["highway"="elevator"]',
    'node["entrance"]["wheelchair"="yes"]',
)

# coordinates that fail to parse are pushed out of range so the store
# rejects that one element instead of the whole fetch failing
_INVALID_COORDINATE = 999.0


def build_overpass_query(
    center: GeoPoint,
    radius_meters: float,
    timeout_seconds: int = QUERY_TIMEOUT_SECONDS,
) -> str:
    around = f"(around:{radius_meters:g},{center.lat},{center.lng})"
    body = "\n".join(f"  {selector}{around};" for selector in _ACCESSIBILITY_SELECTORS)
    return f"[out:json][timeout:{timeout_seconds}];\n(\n{body}\n);\nout body;\n"


def _to_str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return str(value).strip()


def _to_float_or_reject(value: Any, invalid_value: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return invalid_value


class OverpassClient:
    def __init__(
        self,
        rate_gate: RateGate,
        base_url: str = OVERPASS_URL,
        timeout_seconds: float = 30.0,
        max_retries: int = 3,
        retry_base_delay_seconds: float = 1.0,
        metrics: InMemoryImportMetricsCollector | None = None,
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        if max_retries <= 0:
            raise ValueError("max_retries must be > 0")
        self._rate_gate = rate_gate
        self._base_url = base_url
        self._timeout = httpx.Timeout(timeout_seconds)
        self._max_retries = max_retries
        self._retry_base_delay_seconds = retry_base_delay_seconds
        self._metrics = metrics
        self._client_factory = client_factory
        self._sleep_fn = sleep_fn

    async def fetch_area(self, center: GeoPoint, radius_meters: float) -> list[RawSourceElement]:
        query = build_overpass_query(center, radius_meters)
        logger.info(
            "osm_fetch_started",
            extra={"source": OSM_SOURCE, "lat": center.lat, "lng": center.lng, "radius_meters": radius_meters},
        )
        factory = self._client_factory or (lambda: httpx.AsyncClient(timeout=self._timeout))
        async with factory() as client:
            elements = await with_exponential_backoff(
                lambda: self._request_once(client, query),
                retries=self._max_retries,
                base_delay_seconds=self._retry_base_delay_seconds,
                should_retry=self._is_retryable_error,
                on_retry=self._on_retry,
                sleep_fn=self._sleep_fn,
            )
        logger.info("osm_fetch_completed", extra={"source": OSM_SOURCE, "element_count": len(elements)})
        return elements

    async def _request_once(self, client: httpx.AsyncClient, query: str) -> list[RawSourceElement]:
        await self._rate_gate.wait()
        try:
            response = await client.post(self._base_url, data={"data": query})
        except httpx.TimeoutException as exc:
            self._record_error("timeout")
            raise SourceUnavailable("overpass request timed out") from exc
        except httpx.HTTPError as exc:
            self._record_error("transport")
            raise SourceUnavailable(f"overpass request error: {exc.__class__.__name__}") from exc

        status = response.status_code
        if status == 429:
            self._record_error(status)
            raise SourceRateLimited("overpass rate limit exceeded", status_code=status)
        if status >= 500:
            self._record_error(status)
            raise SourceUnavailable(f"overpass server error: status={status}", status_code=status)
        if status >= 400:
            self._record_error(status)
            raise SourceRequestRejected(f"overpass rejected query: status={status}", status_code=status)

        try:
            payload = response.json()
        except ValueError as exc:
            raise SourceRequestRejected("overpass payload is not valid json") from exc
        if not isinstance(payload, dict):
            raise SourceRequestRejected("overpass payload is not a json object")
        remark = payload.get("remark")
        # Overpass reports query timeouts and memory exhaustion as 200 + remark
        if isinstance(remark, str) and "runtime error" in remark.lower():
            self._record_error("runtime_error")
            raise SourceUnavailable(f"overpass runtime error: {remark}")
        items = payload.get("elements")
        if not isinstance(items, list):
            raise SourceRequestRejected("overpass payload missing list field 'elements'")
        elements: list[RawSourceElement] = []
        for item in items:
            if not isinstance(item, dict):
                raise SourceRequestRejected("overpass element is not an object")
            elements.append(self._to_element(item))
        return elements

    def _is_retryable_error(self, exc: Exception) -> bool:
        if isinstance(exc, SourceRequestRejected):
            return False
        return isinstance(exc, (SourceUnavailable, SourceRateLimited))

    def _on_retry(self, attempt: int, delay: float, exc: Exception) -> None:
        logger.warning(
            "osm_fetch_retry",
            extra={"source": OSM_SOURCE, "attempt": attempt, "delay_seconds": delay, "error": str(exc)},
        )
        self._record_error("retry")

    def _record_error(self, code: int | str) -> None:
        if self._metrics:
            self._metrics.increment_source_error(source=OSM_SOURCE, code=code)

    def _to_element(self, item: dict) -> RawSourceElement:
        tags = item.get("tags") or {}
        if not isinstance(tags, dict):
            raise SourceRequestRejected("overpass element tags is not an object")
        lat = item.get("lat")
        lng = item.get("lon")
        return RawSourceElement(
            element_type=_to_str(item.get("type")),
            element_id=_to_str(item.get("id")),
            lat=None if lat is None else _to_float_or_reject(lat, invalid_value=_INVALID_COORDINATE),
            lng=None if lng is None else _to_float_or_reject(lng, invalid_value=_INVALID_COORDINATE),
            tags={str(key): _to_str(value) for key, value in tags.items()},
        )
