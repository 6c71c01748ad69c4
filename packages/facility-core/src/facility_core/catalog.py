from __future__ import annotations

from facility_core.models import FacilityType

FACILITY_TYPES: tuple[FacilityType, ...] = (
    FacilityType(
        id="toilet",
        name="Accessible Toilet",
        category="amenity",
        sort_order=1,
        description="Public toilets with accessibility features",
        icon="toilet",
    ),
    FacilityType(
        id="parking",
        name="Accessible Parking",
        category="transport",
        sort_order=2,
        description="Designated accessible parking spaces",
        icon="parking",
    ),
    FacilityType(
        id="ramp",
        name="Wheelchair Ramp",
        category="access",
        sort_order=3,
        description="Ramps for wheelchair access",
        icon="ramp",
    ),
    FacilityType(
        id="elevator",
        name="Elevator",
        category="access",
        sort_order=4,
        description="Elevators for multi-level access",
        icon="elevator",
    ),
    FacilityType(
        id="entrance",
        name="Accessible Entrance",
        category="access",
        sort_order=5,
        description="Step-free building entrances",
        icon="entrance",
    ),
    FacilityType(
        id="station",
        name="Transit Station",
        category="transport",
        sort_order=6,
        description="Accessible public transit stations",
        icon="station",
    ),
)

_BY_ID: dict[str, FacilityType] = {item.id: item for item in FACILITY_TYPES}

FACILITY_TYPE_IDS: frozenset[str] = frozenset(_BY_ID)


def get_facility_type(type_id: str) -> FacilityType | None:
    return _BY_ID.get(type_id)


def list_facility_types() -> list[FacilityType]:
    return sorted(FACILITY_TYPES, key=lambda item: (item.sort_order, item.id))
