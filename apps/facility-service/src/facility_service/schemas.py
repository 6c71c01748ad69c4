from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from facility_core.models import Facility, FacilityType, NearbyFacility


class AccessibilityItem(BaseModel):
    wheelchair_accessible: bool | None
    has_ramp: bool | None
    has_elevator: bool | None
    has_accessible_toilet: bool | None
    has_accessible_parking: bool | None
    has_automatic_door: bool | None


class FacilityItem(BaseModel):
    id: str
    name: str
    facility_type: str
    lat: float
    lng: float
    description: str | None = None
    address: str | None = None
    accessibility: AccessibilityItem
    opening_hours: dict[str, str] | None = None
    phone: str | None = None
    website: str | None = None
    verified: bool
    last_verified_at: datetime | None = None
    data_quality_score: float | None = None
    data_sources: list[str]
    external_ids: dict[str, str]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, facility: Facility) -> FacilityItem:
        return cls(
            id=facility.id,
            name=facility.name,
            facility_type=facility.facility_type,
            lat=facility.location.lat,
            lng=facility.location.lng,
            description=facility.description,
            address=facility.address,
            accessibility=AccessibilityItem(**facility.accessibility.to_dict()),
            opening_hours=facility.opening_hours,
            phone=facility.phone,
            website=facility.website,
            verified=facility.verified,
            last_verified_at=facility.last_verified_at,
            data_quality_score=facility.data_quality_score,
            data_sources=list(facility.data_sources),
            external_ids=dict(facility.external_ids),
            created_at=facility.created_at,
            updated_at=facility.updated_at,
        )


class NearbyFacilityItem(FacilityItem):
    distance_meters: float

    @classmethod
    def from_nearby(cls, item: NearbyFacility) -> NearbyFacilityItem:
        base = FacilityItem.from_domain(item.facility)
        return cls(**base.model_dump(), distance_meters=round(item.distance_meters, 2))


class FacilityTypeItem(BaseModel):
    id: str
    name: str
    category: str
    sort_order: int
    description: str
    icon: str

    @classmethod
    def from_domain(cls, facility_type: FacilityType) -> FacilityTypeItem:
        return cls(
            id=facility_type.id,
            name=facility_type.name,
            category=facility_type.category,
            sort_order=facility_type.sort_order,
            description=facility_type.description,
            icon=facility_type.icon,
        )
