"""Accessible facility catalog: domain models, stores and proximity search."""

from facility_core.catalog import FACILITY_TYPE_IDS, FACILITY_TYPES, get_facility_type, list_facility_types
from facility_core.exceptions import AccessError, InvalidArea, InvalidPagination, InvalidRadius, ValidationError
from facility_core.models import (
    AccessibilityFlags,
    Facility,
    FacilityCandidate,
    FacilityType,
    NearbyFacility,
    SearchFilters,
)
from facility_core.search import ProximitySearchEngine, SearchQuery, SearchResult
from facility_core.store import FacilityStore, InMemoryFacilityStore

__all__ = [
    "FACILITY_TYPES",
    "FACILITY_TYPE_IDS",
    "AccessError",
    "AccessibilityFlags",
    "Facility",
    "FacilityCandidate",
    "FacilityStore",
    "FacilityType",
    "InMemoryFacilityStore",
    "InvalidArea",
    "InvalidPagination",
    "InvalidRadius",
    "NearbyFacility",
    "ProximitySearchEngine",
    "SearchFilters",
    "SearchQuery",
    "SearchResult",
    "ValidationError",
    "get_facility_type",
    "list_facility_types",
]
