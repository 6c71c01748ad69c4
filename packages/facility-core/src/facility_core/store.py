from __future__ import annotations

from abc import ABC, abstractmethod
import asyncio
from collections.abc import Callable
from datetime import datetime, timezone
import logging
import math
from uuid import uuid4

from geo_engine.geofence import distance_if_inside_radius
from geo_engine.models import GeoPoint
from geo_engine.spatial_index import H3SpatialIndex

from facility_core.catalog import get_facility_type, list_facility_types
from facility_core.exceptions import InvalidArea, InvalidRadius, ValidationError
from facility_core.models import Facility, FacilityCandidate, FacilityType, NearbyFacility, SearchFilters

logger = logging.getLogger(__name__)


def validate_candidate(candidate: FacilityCandidate) -> None:
    if not candidate.location.is_valid():
        raise ValidationError(
            f"invalid coordinates: lat={candidate.location.lat}, lng={candidate.location.lng}"
        )
    if get_facility_type(candidate.facility_type) is None:
        raise ValidationError(f"unknown facility type: {candidate.facility_type}")
    if not candidate.name.strip():
        raise ValidationError("facility name must not be empty")
    score = candidate.data_quality_score
    if score is not None and not (math.isfinite(score) and 0 <= score <= 1):
        raise ValidationError(f"data_quality_score must be between 0 and 1: {score}")


def validate_area(center: GeoPoint, radius_meters: float) -> None:
    if not center.is_valid():
        raise InvalidArea(f"invalid coordinates: lat={center.lat}, lng={center.lng}")
    if not math.isfinite(radius_meters) or radius_meters < 0:
        raise InvalidRadius(f"radius_meters must be a finite value >= 0: {radius_meters}")


class FacilityStore(ABC):
    @abstractmethod
    async def create(self, candidate: FacilityCandidate) -> str:
        """Persist a candidate and return its id.

        When an active facility already owns one of the candidate's
        ``(source, external_id)`` pairs, nothing is written and that
        facility's id is returned.
        """
        raise NotImplementedError

    @abstractmethod
    async def get_by_id(self, facility_id: str) -> Facility | None:
        raise NotImplementedError

    @abstractmethod
    async def find_by_external_id(self, source: str, external_id: str) -> Facility | None:
        raise NotImplementedError

    @abstractmethod
    async def query_near(
        self,
        center: GeoPoint,
        radius_meters: float,
        filters: SearchFilters | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[NearbyFacility]:
        raise NotImplementedError

    @abstractmethod
    async def count_near(
        self,
        center: GeoPoint,
        radius_meters: float,
        filters: SearchFilters | None = None,
    ) -> int:
        raise NotImplementedError

    @abstractmethod
    async def tombstone(self, facility_id: str) -> bool:
        raise NotImplementedError

    async def list_types(self) -> list[FacilityType]:
        return list_facility_types()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


class InMemoryFacilityStore(FacilityStore):
    """Dict-backed store with an H3 cell index for radius queries."""

    def __init__(
        self,
        index: H3SpatialIndex | None = None,
        id_factory: Callable[[], str] = _new_id,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._facilities: dict[str, Facility] = {}
        self._owners: dict[tuple[str, str], str] = {}
        self._index = index or H3SpatialIndex()
        self._id_factory = id_factory
        self._clock = clock
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return sum(1 for item in self._facilities.values() if item.is_active)

    async def create(self, candidate: FacilityCandidate) -> str:
        validate_candidate(candidate)
        async with self._lock:
            existing_id = self._active_owner(candidate)
            if existing_id is not None:
                logger.info(
                    "facility_create_conflict",
                    extra={"facility_id": existing_id, "external_ids": dict(candidate.external_ids)},
                )
                return existing_id
            facility_id = self._id_factory()
            if facility_id in self._facilities:
                raise RuntimeError(f"facility id collision: {facility_id}")
            facility = Facility.from_candidate(facility_id, candidate, self._clock())
            self._facilities[facility_id] = facility
            self._index.insert(facility_id, facility.location)
            for key in candidate.dedup_keys():
                self._owners[key] = facility_id
        return facility_id

    async def get_by_id(self, facility_id: str) -> Facility | None:
        facility = self._facilities.get(facility_id)
        if facility is None or not facility.is_active:
            return None
        return facility

    async def find_by_external_id(self, source: str, external_id: str) -> Facility | None:
        facility_id = self._owners.get((source, external_id))
        if facility_id is None:
            return None
        return await self.get_by_id(facility_id)

    async def query_near(
        self,
        center: GeoPoint,
        radius_meters: float,
        filters: SearchFilters | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[NearbyFacility]:
        if limit <= 0:
            raise ValueError("limit must be > 0")
        if offset < 0:
            raise ValueError("offset must be >= 0")
        matches = self._matches(center, radius_meters, filters)
        return matches[offset : offset + limit]

    async def count_near(
        self,
        center: GeoPoint,
        radius_meters: float,
        filters: SearchFilters | None = None,
    ) -> int:
        return len(self._matches(center, radius_meters, filters))

    async def tombstone(self, facility_id: str) -> bool:
        async with self._lock:
            facility = self._facilities.get(facility_id)
            if facility is None or not facility.is_active:
                return False
            self._facilities[facility_id] = facility.tombstoned(self._clock())
            self._index.remove(facility_id)
            for key in facility.external_ids.items():
                if self._owners.get(key) == facility_id:
                    del self._owners[key]
        logger.info("facility_tombstoned", extra={"facility_id": facility_id})
        return True

    def _active_owner(self, candidate: FacilityCandidate) -> str | None:
        for key in candidate.dedup_keys():
            owner = self._owners.get(key)
            if owner is not None and self._facilities[owner].is_active:
                return owner
        return None

    def _matches(
        self,
        center: GeoPoint,
        radius_meters: float,
        filters: SearchFilters | None,
    ) -> list[NearbyFacility]:
        validate_area(center, radius_meters)
        active_filters = filters or SearchFilters()
        found: list[NearbyFacility] = []
        for facility_id in self._index.candidates(center, radius_meters):
            facility = self._facilities.get(facility_id)
            if facility is None or not facility.is_active or not active_filters.matches(facility):
                continue
            distance = distance_if_inside_radius(center, facility.location, radius_meters)
            if distance is None:
                continue
            found.append(NearbyFacility(facility=facility, distance_meters=distance))
        found.sort(key=lambda item: (item.distance_meters, item.facility.id))
        return found
