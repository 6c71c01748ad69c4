from __future__ import annotations

import math
from collections import defaultdict
from collections.abc import Iterable

import h3

from geo_engine.models import GeoPoint

DEFAULT_RESOLUTIONS: tuple[int, ...] = (9, 7, 5, 3)
MAX_DISK_RINGS = 16

# H3 hexagons are not uniform across the globe; bound the real edge length
# by these multiples of the published average when sizing a search disk.
_EDGE_MIN_FACTOR = 0.5
_EDGE_MAX_FACTOR = 2.0


class H3SpatialIndex:
    """Bucket keys by H3 cell at several resolutions.

    ``candidates`` returns a superset of the keys within ``radius_meters`` of a
    center; callers apply the exact great-circle test on that superset. The
    finest resolution whose covering disk needs at most ``max_rings`` rings is
    used, and a radius too large for every resolution falls back to all keys.
    """

    def __init__(
        self,
        resolutions: Iterable[int] = DEFAULT_RESOLUTIONS,
        max_rings: int = MAX_DISK_RINGS,
    ) -> None:
        ordered = tuple(sorted(set(resolutions), reverse=True))
        if not ordered:
            raise ValueError("at least one resolution is required")
        if any(res < 0 or res > 15 for res in ordered):
            raise ValueError("resolutions must be between 0 and 15")
        if max_rings <= 0:
            raise ValueError("max_rings must be > 0")
        self._resolutions = ordered
        self._max_rings = max_rings
        self._edge_meters = {res: h3.average_hexagon_edge_length(res, unit="m") for res in ordered}
        self._buckets: dict[int, dict[str, set[str]]] = {res: defaultdict(set) for res in ordered}
        self._cells_by_key: dict[str, tuple[str, ...]] = {}

    def __len__(self) -> int:
        return len(self._cells_by_key)

    def __contains__(self, key: object) -> bool:
        return key in self._cells_by_key

    def insert(self, key: str, point: GeoPoint) -> None:
        self.remove(key)
        cells = tuple(h3.latlng_to_cell(point.lat, point.lng, res) for res in self._resolutions)
        for res, cell in zip(self._resolutions, cells):
            self._buckets[res][cell].add(key)
        self._cells_by_key[key] = cells

    def remove(self, key: str) -> bool:
        cells = self._cells_by_key.pop(key, None)
        if cells is None:
            return False
        for res, cell in zip(self._resolutions, cells):
            bucket = self._buckets[res].get(cell)
            if bucket is None:
                continue
            bucket.discard(key)
            if not bucket:
                del self._buckets[res][cell]
        return True

    def candidates(self, center: GeoPoint, radius_meters: float) -> set[str]:
        if radius_meters < 0:
            raise ValueError("radius_meters must be >= 0")
        plan = self.plan(radius_meters)
        if plan is None:
            return set(self._cells_by_key)
        res, rings = plan
        origin = h3.latlng_to_cell(center.lat, center.lng, res)
        buckets = self._buckets[res]
        found: set[str] = set()
        for cell in h3.grid_disk(origin, rings):
            bucket = buckets.get(cell)
            if bucket:
                found.update(bucket)
        return found

    def plan(self, radius_meters: float) -> tuple[int, int] | None:
        for res in self._resolutions:
            rings = self._rings_for(res, radius_meters)
            if rings <= self._max_rings:
                return res, rings
        return None

    def _rings_for(self, res: int, radius_meters: float) -> int:
        edge = self._edge_meters[res]
        # a match may sit anywhere in its cell, and so may the center
        reach = radius_meters + 2 * edge * _EDGE_MAX_FACTOR
        # a k-ring disk covers every cell center within k * 1.5 edges of the origin
        ring_step = 1.5 * edge * _EDGE_MIN_FACTOR
        return max(1, math.ceil(reach / ring_step))
