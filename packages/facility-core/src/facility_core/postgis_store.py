from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable
from uuid import UUID

from geo_engine.models import GeoPoint

from facility_core.exceptions import ValidationError
from facility_core.models import AccessibilityFlags, Facility, FacilityCandidate, NearbyFacility, SearchFilters
from facility_core.store import FacilityStore, validate_area, validate_candidate

logger = logging.getLogger(__name__)

_COLUMNS = """
    f.id,
    f.name,
    f.description,
    f.facility_type_id,
    f.lat,
    f.lng,
    f.address,
    f.wheelchair_accessible,
    f.has_ramp,
    f.has_elevator,
    f.has_accessible_toilet,
    f.has_accessible_parking,
    f.has_automatic_door,
    f.opening_hours,
    f.phone,
    f.website,
    f.verified,
    f.last_verified_at,
    f.data_quality_score,
    f.data_sources,
    f.external_ids,
    f.created_at,
    f.updated_at,
    f.deleted_at
"""

# Point order is (lng, lat); distances use the sphere so they agree with haversine.
_CENTER = "ST_SetSRID(ST_MakePoint($1, $2), 4326)::geography"

_NEARBY_WHERE = f"""
WHERE f.deleted_at IS NULL
  AND ST_DWithin(f.location, {_CENTER}, $3, false)
  AND ($4::text[] IS NULL OR f.facility_type_id = ANY($4::text[]))
  AND ($5::boolean IS NULL OR f.wheelchair_accessible = $5)
"""

INSERT_FACILITY_SQL = """
INSERT INTO facilities (
    name, description, facility_type_id, location, lat, lng, address,
    wheelchair_accessible, has_ramp, has_elevator, has_accessible_toilet,
    has_accessible_parking, has_automatic_door, opening_hours, phone, website,
    verified, last_verified_at, data_quality_score, data_sources, external_ids
) VALUES (
    $1, $2, $3,
    ST_SetSRID(ST_MakePoint($5::double precision, $4::double precision), 4326)::geography,
    $4::double precision, $5::double precision, $6,
    $7, $8, $9, $10, $11, $12, $13::jsonb, $14, $15, $16, $17, $18, $19::jsonb, $20::jsonb
)
RETURNING id
"""

INSERT_EXTERNAL_ID_SQL = """
INSERT INTO facility_external_ids (source, external_id, facility_id)
VALUES ($1, $2, $3)
ON CONFLICT DO NOTHING
"""

LOCK_DEDUP_KEY_SQL = "SELECT pg_advisory_xact_lock(hashtextextended($1, 0))"

FIND_ACTIVE_OWNER_SQL = """
SELECT f.id
FROM facility_external_ids AS x
JOIN facilities AS f ON f.id = x.facility_id
WHERE x.source = $1 AND x.external_id = $2 AND f.deleted_at IS NULL
ORDER BY f.created_at, f.id
LIMIT 1
"""

FIND_BY_EXTERNAL_ID_SQL = f"""
SELECT {_COLUMNS}
FROM facility_external_ids AS x
JOIN facilities AS f ON f.id = x.facility_id
WHERE x.source = $1 AND x.external_id = $2 AND f.deleted_at IS NULL
ORDER BY f.created_at, f.id
LIMIT 1
"""

GET_BY_ID_SQL = f"""
SELECT {_COLUMNS}
FROM facilities AS f
WHERE f.id = $1 AND f.deleted_at IS NULL
"""

QUERY_NEAR_SQL = f"""
SELECT {_COLUMNS},
    ST_Distance(f.location, {_CENTER}, false) AS distance_meters
FROM facilities AS f
{_NEARBY_WHERE}
ORDER BY distance_meters ASC, f.id ASC
LIMIT $6 OFFSET $7
"""

COUNT_NEAR_SQL = f"""
SELECT COUNT(*)
FROM facilities AS f
{_NEARBY_WHERE}
"""

TOMBSTONE_SQL = """
UPDATE facilities
SET deleted_at = NOW(), updated_at = NOW()
WHERE id = $1 AND deleted_at IS NULL
RETURNING id
"""


class PostgisFacilityStore(FacilityStore):
    def __init__(
        self,
        dsn: str,
        pool_factory: Callable[[str], Awaitable[Any]] | None = None,
        min_pool_size: int = 1,
        max_pool_size: int = 5,
    ) -> None:
        if min_pool_size <= 0 or max_pool_size < min_pool_size:
            raise ValueError("pool sizes must satisfy 0 < min_pool_size <= max_pool_size")
        self._dsn = dsn
        self._pool = None
        self._pool_lock = asyncio.Lock()
        self._pool_factory = pool_factory
        self._min_pool_size = min_pool_size
        self._max_pool_size = max_pool_size

    async def create(self, candidate: FacilityCandidate) -> str:
        validate_candidate(candidate)
        keys = candidate.dedup_keys()
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    for source, external_id in keys:
                        await conn.execute(LOCK_DEDUP_KEY_SQL, f"{source}:{external_id}")
                    for source, external_id in keys:
                        owner = await conn.fetchval(FIND_ACTIVE_OWNER_SQL, source, external_id)
                        if owner is not None:
                            logger.info(
                                "facility_create_conflict",
                                extra={"facility_id": str(owner), "source": source, "external_id": external_id},
                            )
                            return str(owner)
                    facility_id = await conn.fetchval(INSERT_FACILITY_SQL, *self._to_row(candidate))
                    for source, external_id in keys:
                        await conn.execute(INSERT_EXTERNAL_ID_SQL, source, external_id, facility_id)
        except Exception as exc:
            if self._is_non_retryable_error(exc):
                raise ValidationError(f"facility rejected by database constraint: {exc}") from exc
            raise RuntimeError("postgis facility write failed due to transient error") from exc
        return str(facility_id)

    async def get_by_id(self, facility_id: str) -> Facility | None:
        parsed = _parse_uuid(facility_id)
        if parsed is None:
            return None
        pool = await self._get_pool()
        row = await pool.fetchrow(GET_BY_ID_SQL, parsed)
        return self._to_facility(row) if row else None

    async def find_by_external_id(self, source: str, external_id: str) -> Facility | None:
        pool = await self._get_pool()
        row = await pool.fetchrow(FIND_BY_EXTERNAL_ID_SQL, source, external_id)
        return self._to_facility(row) if row else None

    async def query_near(
        self,
        center: GeoPoint,
        radius_meters: float,
        filters: SearchFilters | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[NearbyFacility]:
        validate_area(center, radius_meters)
        if limit <= 0:
            raise ValueError("limit must be > 0")
        if offset < 0:
            raise ValueError("offset must be >= 0")
        pool = await self._get_pool()
        rows = await pool.fetch(QUERY_NEAR_SQL, *self._near_args(center, radius_meters, filters), limit, offset)
        return [
            NearbyFacility(facility=self._to_facility(row), distance_meters=float(row["distance_meters"]))
            for row in rows
        ]

    async def count_near(
        self,
        center: GeoPoint,
        radius_meters: float,
        filters: SearchFilters | None = None,
    ) -> int:
        validate_area(center, radius_meters)
        pool = await self._get_pool()
        total = await pool.fetchval(COUNT_NEAR_SQL, *self._near_args(center, radius_meters, filters))
        return int(total or 0)

    async def tombstone(self, facility_id: str) -> bool:
        parsed = _parse_uuid(facility_id)
        if parsed is None:
            return False
        pool = await self._get_pool()
        updated = await pool.fetchval(TOMBSTONE_SQL, parsed)
        if updated is None:
            return False
        logger.info("facility_tombstoned", extra={"facility_id": facility_id})
        return True

    async def close(self) -> None:
        async with self._pool_lock:
            if self._pool is None:
                return
            pool, self._pool = self._pool, None
        await pool.close()
        logger.info("facility_store_closed")

    async def _get_pool(self) -> Any:
        if self._pool is not None:
            return self._pool
        async with self._pool_lock:
            # another caller may have finished creating it while this one waited
            if self._pool is None:
                self._pool = await self._create_pool()
        return self._pool

    async def _create_pool(self) -> Any:
        if self._pool_factory:
            return await self._pool_factory(self._dsn)
        import asyncpg

        return await asyncpg.create_pool(dsn=self._dsn, min_size=self._min_pool_size, max_size=self._max_pool_size)

    def _near_args(self, center: GeoPoint, radius_meters: float, filters: SearchFilters | None) -> tuple:
        active = filters or SearchFilters()
        types = sorted(active.facility_types) if active.facility_types is not None else None
        return (center.lng, center.lat, radius_meters, types, active.wheelchair_accessible)

    def _to_row(self, candidate: FacilityCandidate) -> tuple:
        flags = candidate.accessibility
        return (
            candidate.name,
            candidate.description,
            candidate.facility_type,
            candidate.location.lat,
            candidate.location.lng,
            candidate.address,
            flags.wheelchair_accessible,
            flags.has_ramp,
            flags.has_elevator,
            flags.has_accessible_toilet,
            flags.has_accessible_parking,
            flags.has_automatic_door,
            json.dumps(candidate.opening_hours) if candidate.opening_hours is not None else None,
            candidate.phone,
            candidate.website,
            candidate.verified,
            candidate.last_verified_at,
            candidate.data_quality_score,
            json.dumps(list(candidate.data_sources)),
            json.dumps(candidate.external_ids),
        )

    def _to_facility(self, row: Any) -> Facility:
        score = row["data_quality_score"]
        return Facility(
            id=str(row["id"]),
            name=str(row["name"]),
            facility_type=str(row["facility_type_id"]),
            location=GeoPoint(lat=float(row["lat"]), lng=float(row["lng"])),
            accessibility=AccessibilityFlags(
                wheelchair_accessible=row["wheelchair_accessible"],
                has_ramp=row["has_ramp"],
                has_elevator=row["has_elevator"],
                has_accessible_toilet=row["has_accessible_toilet"],
                has_accessible_parking=row["has_accessible_parking"],
                has_automatic_door=row["has_automatic_door"],
            ),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            description=row["description"],
            address=row["address"],
            opening_hours=_load_json(row["opening_hours"]),
            phone=row["phone"],
            website=row["website"],
            verified=bool(row["verified"]),
            last_verified_at=row["last_verified_at"],
            data_quality_score=float(score) if score is not None else None,
            data_sources=tuple(_load_json(row["data_sources"]) or ()),
            external_ids=dict(_load_json(row["external_ids"]) or {}),
            deleted_at=row["deleted_at"],
        )

    def _is_non_retryable_error(self, exc: Exception) -> bool:
        message = str(exc).lower()
        return "violates" in message or "constraint" in message or "invalid input" in message


def _parse_uuid(value: str) -> UUID | None:
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _load_json(value: Any) -> Any:
    # asyncpg hands jsonb back as text unless a codec is registered
    if isinstance(value, str):
        return json.loads(value)
    return value
