from __future__ import annotations

from collections.abc import Collection
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from typing import Any

from geo_engine.models import GeoPoint


@dataclass(frozen=True)
class FacilityType:
    id: str
    name: str
    category: str
    sort_order: int
    description: str = ""
    icon: str = ""


@dataclass(frozen=True)
class AccessibilityFlags:
    """Tri-state accessibility attributes; ``None`` means the source said nothing."""

    wheelchair_accessible: bool | None = None
    has_ramp: bool | None = None
    has_elevator: bool | None = None
    has_accessible_toilet: bool | None = None
    has_accessible_parking: bool | None = None
    has_automatic_door: bool | None = None

    def to_dict(self) -> dict[str, bool | None]:
        return asdict(self)


@dataclass(frozen=True)
class FacilityCandidate:
    name: str
    facility_type: str
    location: GeoPoint
    accessibility: AccessibilityFlags = field(default_factory=AccessibilityFlags)
    description: str | None = None
    address: str | None = None
    opening_hours: dict[str, str] | None = None
    phone: str | None = None
    website: str | None = None
    verified: bool = False
    last_verified_at: datetime | None = None
    data_quality_score: float | None = None
    data_sources: tuple[str, ...] = ()
    external_ids: dict[str, str] = field(default_factory=dict)

    def dedup_keys(self) -> list[tuple[str, str]]:
        # sorted so concurrent writers take per-key locks in the same order
        return sorted(self.external_ids.items())


@dataclass(frozen=True)
class Facility:
    id: str
    name: str
    facility_type: str
    location: GeoPoint
    accessibility: AccessibilityFlags
    created_at: datetime
    updated_at: datetime
    description: str | None = None
    address: str | None = None
    opening_hours: dict[str, str] | None = None
    phone: str | None = None
    website: str | None = None
    verified: bool = False
    last_verified_at: datetime | None = None
    data_quality_score: float | None = None
    data_sources: tuple[str, ...] = ()
    external_ids: dict[str, str] = field(default_factory=dict)
    deleted_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None

    @classmethod
    def from_candidate(cls, facility_id: str, candidate: FacilityCandidate, now: datetime) -> Facility:
        return cls(
            id=facility_id,
            name=candidate.name,
            facility_type=candidate.facility_type,
            location=candidate.location,
            accessibility=candidate.accessibility,
            created_at=now,
            updated_at=now,
            description=candidate.description,
            address=candidate.address,
            opening_hours=dict(candidate.opening_hours) if candidate.opening_hours is not None else None,
            phone=candidate.phone,
            website=candidate.website,
            verified=candidate.verified,
            last_verified_at=candidate.last_verified_at,
            data_quality_score=candidate.data_quality_score,
            data_sources=tuple(candidate.data_sources),
            external_ids=dict(candidate.external_ids),
        )

    def tombstoned(self, now: datetime) -> Facility:
        return replace(self, deleted_at=now, updated_at=now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "facility_type": self.facility_type,
            "lat": self.location.lat,
            "lng": self.location.lng,
            "description": self.description,
            "address": self.address,
            "accessibility": self.accessibility.to_dict(),
            "opening_hours": self.opening_hours,
            "phone": self.phone,
            "website": self.website,
            "verified": self.verified,
            "last_verified_at": self.last_verified_at.isoformat() if self.last_verified_at else None,
            "data_quality_score": self.data_quality_score,
            "data_sources": list(self.data_sources),
            "external_ids": dict(self.external_ids),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class SearchFilters:
    facility_types: frozenset[str] | None = None
    wheelchair_accessible: bool | None = None

    @classmethod
    def build(
        cls,
        facility_types: Collection[str] | None = None,
        wheelchair_accessible: bool | None = None,
    ) -> SearchFilters:
        types = frozenset(facility_types) if facility_types else None
        return cls(facility_types=types, wheelchair_accessible=wheelchair_accessible)

    def matches(self, facility: Facility) -> bool:
        if self.facility_types is not None and facility.facility_type not in self.facility_types:
            return False
        if (
            self.wheelchair_accessible is not None
            and facility.accessibility.wheelchair_accessible is not self.wheelchair_accessible
        ):
            return False
        return True


@dataclass(frozen=True)
class NearbyFacility:
    facility: Facility
    distance_meters: float
