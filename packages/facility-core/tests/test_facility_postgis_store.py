from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
import json
from uuid import UUID

import pytest

from geo_engine.models import GeoPoint

from facility_core.exceptions import InvalidArea, ValidationError
from facility_core.models import AccessibilityFlags, FacilityCandidate, SearchFilters
from facility_core.postgis_store import (
    COUNT_NEAR_SQL,
    FIND_ACTIVE_OWNER_SQL,
    GET_BY_ID_SQL,
    INSERT_EXTERNAL_ID_SQL,
    INSERT_FACILITY_SQL,
    LOCK_DEDUP_KEY_SQL,
    QUERY_NEAR_SQL,
    TOMBSTONE_SQL,
    PostgisFacilityStore,
)

NEW_ID = UUID("7b1f8c8e-3f3a-4f39-9a53-0b5c1c2f9a10")
EXISTING_ID = UUID("0c2f6a51-55c5-4c8e-b1b4-6d5f1c9e2b77")
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _row(facility_id: UUID = NEW_ID, distance: float | None = None) -> dict:
    row = {
        "id": facility_id,
        "name": "Alexanderplatz WC",
        "description": None,
        "facility_type_id": "toilet",
        "lat": Decimal("52.52000000"),
        "lng": Decimal("13.40500000"),
        "address": "Alexanderplatz 1, Berlin",
        "wheelchair_accessible": True,
        "has_ramp": None,
        "has_elevator": None,
        "has_accessible_toilet": True,
        "has_accessible_parking": None,
        "has_automatic_door": False,
        "opening_hours": json.dumps({"raw": "24/7"}),
        "phone": None,
        "website": None,
        "verified": True,
        "last_verified_at": NOW,
        "data_quality_score": Decimal("0.70"),
        "data_sources": json.dumps(["openstreetmap"]),
        "external_ids": {"openstreetmap": "node/1"},
        "created_at": NOW,
        "updated_at": NOW,
        "deleted_at": None,
    }
    if distance is not None:
        row["distance_meters"] = distance
    return row


class FakeTransaction:
    def __init__(self, conn: "FakeConnection") -> None:
        self._conn = conn

    async def __aenter__(self) -> "FakeTransaction":
        self._conn.events.append("begin")
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        self._conn.events.append("rollback" if exc_type else "commit")
        return False


class FakeConnection:
    def __init__(self, owners: dict[tuple[str, str], UUID] | None = None, insert_error: Exception | None = None) -> None:
        self.owners = owners or {}
        self.insert_error = insert_error
        self.events: list[str] = []
        self.calls: list[tuple[str, tuple]] = []

    def transaction(self) -> FakeTransaction:
        return FakeTransaction(self)

    async def execute(self, sql: str, *args):
        self.calls.append((sql, args))
        return "OK"

    async def fetchval(self, sql: str, *args):
        self.calls.append((sql, args))
        if sql == FIND_ACTIVE_OWNER_SQL:
            return self.owners.get((args[0], args[1]))
        if sql == INSERT_FACILITY_SQL:
            if self.insert_error is not None:
                raise self.insert_error
            return NEW_ID
        raise AssertionError(f"unexpected sql: {sql}")


class FakeAcquire:
    def __init__(self, conn: FakeConnection) -> None:
        self._conn = conn

    async def __aenter__(self) -> FakeConnection:
        return self._conn

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


class FakePool:
    def __init__(self, conn: FakeConnection | None = None, rows: list[dict] | None = None, scalar=None) -> None:
        self.conn = conn or FakeConnection()
        self.rows = rows or []
        self.scalar = scalar
        self.calls: list[tuple[str, tuple]] = []
        self.closed = False

    def acquire(self) -> FakeAcquire:
        return FakeAcquire(self.conn)

    async def fetch(self, sql: str, *args):
        self.calls.append((sql, args))
        return self.rows

    async def fetchrow(self, sql: str, *args):
        self.calls.append((sql, args))
        return self.rows[0] if self.rows else None

    async def fetchval(self, sql: str, *args):
        self.calls.append((sql, args))
        return self.scalar

    async def close(self) -> None:
        self.closed = True


def _store(pool: FakePool) -> PostgisFacilityStore:
    async def pool_factory(_: str):
        return pool

    return PostgisFacilityStore("postgresql://example", pool_factory=pool_factory)


def _candidate(external_ids: dict[str, str] | None = None) -> FacilityCandidate:
    return FacilityCandidate(
        name="Alexanderplatz WC",
        facility_type="toilet",
        location=GeoPoint(lat=52.52, lng=13.405),
        accessibility=AccessibilityFlags(wheelchair_accessible=True, has_accessible_toilet=True),
        opening_hours={"raw": "24/7"},
        data_quality_score=0.7,
        data_sources=("openstreetmap",),
        external_ids=external_ids if external_ids is not None else {"openstreetmap": "node/1"},
    )


@pytest.mark.asyncio
async def test_create_locks_key_inserts_facility_and_external_id() -> None:
    pool = FakePool()

    facility_id = await _store(pool).create(_candidate())

    assert facility_id == str(NEW_ID)
    sqls = [sql for sql, _ in pool.conn.calls]
    assert sqls == [LOCK_DEDUP_KEY_SQL, FIND_ACTIVE_OWNER_SQL, INSERT_FACILITY_SQL, INSERT_EXTERNAL_ID_SQL]
    assert pool.conn.calls[0][1] == ("openstreetmap:node/1",)
    insert_args = pool.conn.calls[2][1]
    assert insert_args[2] == "toilet"
    assert insert_args[3:5] == (52.52, 13.405)
    assert json.loads(insert_args[12]) == {"raw": "24/7"}
    assert insert_args[15:17] == (False, None)
    assert json.loads(insert_args[19]) == {"openstreetmap": "node/1"}
    assert pool.conn.calls[3][1] == ("openstreetmap", "node/1", NEW_ID)
    assert pool.conn.events == ["begin", "commit"]


@pytest.mark.asyncio
async def test_create_returns_existing_owner_without_insert() -> None:
    conn = FakeConnection(owners={("openstreetmap", "node/1"): EXISTING_ID})
    pool = FakePool(conn=conn)

    facility_id = await _store(pool).create(_candidate())

    assert facility_id == str(EXISTING_ID)
    assert INSERT_FACILITY_SQL not in [sql for sql, _ in conn.calls]


@pytest.mark.asyncio
async def test_create_takes_locks_in_sorted_key_order() -> None:
    pool = FakePool()

    await _store(pool).create(_candidate({"wheelmap": "42", "openstreetmap": "node/1"}))

    locks = [args[0] for sql, args in pool.conn.calls if sql == LOCK_DEDUP_KEY_SQL]
    assert locks == ["openstreetmap:node/1", "wheelmap:42"]


@pytest.mark.asyncio
async def test_create_maps_constraint_violation_to_validation_error() -> None:
    conn = FakeConnection(insert_error=RuntimeError('insert violates foreign key constraint "fk_type"'))
    pool = FakePool(conn=conn)

    with pytest.raises(ValidationError):
        await _store(pool).create(_candidate())
    assert conn.events == ["begin", "rollback"]


@pytest.mark.asyncio
async def test_create_wraps_transient_error() -> None:
    conn = FakeConnection(insert_error=ConnectionResetError("connection reset"))

    with pytest.raises(RuntimeError, match="transient"):
        await _store(FakePool(conn=conn)).create(_candidate())


@pytest.mark.asyncio
async def test_create_validates_before_touching_database() -> None:
    pool = FakePool()
    candidate = FacilityCandidate(name="x", facility_type="toilet", location=GeoPoint(lat=999.0, lng=13.4))

    with pytest.raises(ValidationError):
        await _store(pool).create(candidate)
    assert pool.conn.calls == []


@pytest.mark.asyncio
async def test_get_by_id_maps_row_and_decodes_json() -> None:
    pool = FakePool(rows=[_row()])

    facility = await _store(pool).get_by_id(str(NEW_ID))

    assert facility is not None
    assert facility.id == str(NEW_ID)
    assert facility.location == GeoPoint(lat=52.52, lng=13.405)
    assert facility.opening_hours == {"raw": "24/7"}
    assert facility.data_sources == ("openstreetmap",)
    assert facility.data_quality_score == 0.7
    assert facility.accessibility.has_automatic_door is False
    assert (facility.verified, facility.last_verified_at) == (True, NOW)
    assert facility.to_dict()["last_verified_at"] == NOW.isoformat()
    assert pool.calls[0] == (GET_BY_ID_SQL, (NEW_ID,))


@pytest.mark.asyncio
async def test_get_by_id_returns_none_for_malformed_id() -> None:
    pool = FakePool(rows=[_row()])

    assert await _store(pool).get_by_id("not-a-uuid") is None
    assert pool.calls == []


@pytest.mark.asyncio
async def test_query_near_passes_lng_lat_order_and_filters() -> None:
    pool = FakePool(rows=[_row(distance=12.5)])
    filters = SearchFilters.build(facility_types=["toilet", "elevator"], wheelchair_accessible=True)

    items = await _store(pool).query_near(GeoPoint(lat=52.52, lng=13.405), 1_000, filters, limit=10, offset=5)

    assert len(items) == 1
    assert items[0].distance_meters == 12.5
    sql, args = pool.calls[0]
    assert sql == QUERY_NEAR_SQL
    assert args == (13.405, 52.52, 1_000, ["elevator", "toilet"], True, 10, 5)
    assert "ST_DWithin" in QUERY_NEAR_SQL
    assert "ORDER BY distance_meters ASC, f.id ASC" in QUERY_NEAR_SQL


@pytest.mark.asyncio
async def test_count_near_without_filters_passes_nulls() -> None:
    pool = FakePool(scalar=3)

    total = await _store(pool).count_near(GeoPoint(lat=52.52, lng=13.405), 500)

    assert total == 3
    assert pool.calls[0] == (COUNT_NEAR_SQL, (13.405, 52.52, 500, None, None))


@pytest.mark.asyncio
async def test_query_near_rejects_invalid_center() -> None:
    pool = FakePool()
    with pytest.raises(InvalidArea):
        await _store(pool).query_near(GeoPoint(lat=-90.5, lng=0.0), 100)
    assert pool.calls == []


@pytest.mark.asyncio
async def test_tombstone_reports_whether_a_row_changed() -> None:
    changed = FakePool(scalar=NEW_ID)
    unchanged = FakePool(scalar=None)

    assert await _store(changed).tombstone(str(NEW_ID)) is True
    assert changed.calls[0] == (TOMBSTONE_SQL, (NEW_ID,))
    assert await _store(unchanged).tombstone(str(NEW_ID)) is False
    assert await _store(unchanged).tombstone("bogus") is False


def test_store_rejects_invalid_pool_sizes() -> None:
    with pytest.raises(ValueError):
        PostgisFacilityStore("postgresql://example", min_pool_size=3, max_pool_size=2)


@pytest.mark.asyncio
async def test_concurrent_first_calls_share_one_pool() -> None:
    created: list[FakePool] = []

    async def slow_pool_factory(_: str) -> FakePool:
        await asyncio.sleep(0.01)
        pool = FakePool(scalar=3)
        created.append(pool)
        return pool

    store = PostgisFacilityStore("postgresql://example", pool_factory=slow_pool_factory)

    totals = await asyncio.gather(*(store.count_near(GeoPoint(lat=52.52, lng=13.405), 500.0) for _ in range(5)))

    assert totals == [3, 3, 3, 3, 3]
    assert len(created) == 1
    assert len(created[0].calls) == 5


@pytest.mark.asyncio
async def test_close_releases_pool_once() -> None:
    pool = FakePool(scalar=0)
    store = _store(pool)
    await store.count_near(GeoPoint(lat=52.52, lng=13.405), 500.0)

    await store.close()
    await store.close()

    assert pool.closed is True
