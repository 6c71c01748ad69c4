from __future__ import annotations

from collections.abc import Collection
from dataclasses import dataclass
import logging
import math

from opentelemetry import trace

from geo_engine.models import GeoPoint, is_valid_coordinate

from facility_core.catalog import FACILITY_TYPE_IDS
from facility_core.exceptions import InvalidArea, InvalidPagination, InvalidRadius, ValidationError
from facility_core.models import NearbyFacility, SearchFilters
from facility_core.store import FacilityStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_RADIUS_METERS = 1_000.0
DEFAULT_LIMIT = 20
MAX_RADIUS_METERS = 50_000.0
MAX_LIMIT = 100
MAX_OFFSET = 10_000


@dataclass(frozen=True)
class SearchQuery:
    lat: float
    lng: float
    radius_meters: float = DEFAULT_RADIUS_METERS
    facility_types: Collection[str] | None = None
    wheelchair_accessible: bool | None = None
    limit: int = DEFAULT_LIMIT
    offset: int = 0


@dataclass(frozen=True)
class SearchResult:
    items: list[NearbyFacility]
    total: int
    center: GeoPoint
    radius_meters: float
    limit: int
    offset: int

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.items) < self.total


class ProximitySearchEngine:
    """Validate a proximity query and page through the store's matches."""

    def __init__(
        self,
        store: FacilityStore,
        max_radius_meters: float = MAX_RADIUS_METERS,
        max_limit: int = MAX_LIMIT,
        max_offset: int = MAX_OFFSET,
    ) -> None:
        if max_radius_meters <= 0:
            raise ValueError("max_radius_meters must be > 0")
        if max_limit <= 0:
            raise ValueError("max_limit must be > 0")
        if max_offset < 0:
            raise ValueError("max_offset must be >= 0")
        self._store = store
        self._max_radius_meters = max_radius_meters
        self._max_limit = max_limit
        self._max_offset = max_offset

    async def search(self, query: SearchQuery) -> SearchResult:
        if not is_valid_coordinate(query.lat, query.lng):
            raise InvalidArea(f"invalid coordinates: lat={query.lat}, lng={query.lng}")
        center = GeoPoint(lat=float(query.lat), lng=float(query.lng))
        radius = self._validated_radius(query.radius_meters)
        self._validate_pagination(query.limit, query.offset)
        filters = self._build_filters(query)

        with tracer.start_as_current_span("facility.proximity_search") as span:
            span.set_attribute("search.radius_meters", radius)
            span.set_attribute("search.limit", query.limit)
            span.set_attribute("search.offset", query.offset)
            items = await self._store.query_near(center, radius, filters, limit=query.limit, offset=query.offset)
            total = await self._store.count_near(center, radius, filters)
            span.set_attribute("search.total", total)

        logger.info(
            "proximity_search_completed",
            extra={
                "radius_meters": radius,
                "returned": len(items),
                "total": total,
                "offset": query.offset,
            },
        )
        return SearchResult(
            items=items,
            total=total,
            center=center,
            radius_meters=radius,
            limit=query.limit,
            offset=query.offset,
        )

    def _validated_radius(self, value: float) -> float:
        try:
            radius = float(value)
        except (TypeError, ValueError) as exc:
            raise InvalidRadius(f"radius_meters must be a number: {value!r}") from exc
        if not math.isfinite(radius) or radius <= 0:
            raise InvalidRadius(f"radius_meters must be > 0: {value!r}")
        if radius > self._max_radius_meters:
            raise InvalidRadius(f"radius_meters must be <= {self._max_radius_meters:g}: {value!r}")
        return radius

    def _validate_pagination(self, limit: int, offset: int) -> None:
        if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= self._max_limit:
            raise InvalidPagination(f"limit must be between 1 and {self._max_limit}: {limit!r}")
        if isinstance(offset, bool) or not isinstance(offset, int) or not 0 <= offset <= self._max_offset:
            raise InvalidPagination(f"offset must be between 0 and {self._max_offset}: {offset!r}")

    def _build_filters(self, query: SearchQuery) -> SearchFilters:
        types = {item.strip() for item in query.facility_types or () if item.strip()}
        unknown = sorted(types - FACILITY_TYPE_IDS)
        if unknown:
            raise ValidationError(f"unknown facility types: {', '.join(unknown)}")
        return SearchFilters.build(facility_types=types, wheelchair_accessible=query.wheelchair_accessible)
