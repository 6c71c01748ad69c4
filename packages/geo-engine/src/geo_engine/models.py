from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float

    def is_valid(self) -> bool:
        return is_valid_coordinate(self.lat, self.lng)


def is_valid_coordinate(lat: float, lng: float) -> bool:
    try:
        lat_value = float(lat)
        lng_value = float(lng)
    except (TypeError, ValueError):
        return False
    if not (math.isfinite(lat_value) and math.isfinite(lng_value)):
        return False
    return -90 <= lat_value <= 90 and -180 <= lng_value <= 180
