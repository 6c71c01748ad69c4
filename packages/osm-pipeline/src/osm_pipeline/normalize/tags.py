from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
import re

from facility_core.catalog import get_facility_type
from facility_core.models import AccessibilityFlags, FacilityCandidate
from geo_engine.models import GeoPoint

from osm_pipeline.core.exceptions import NormalizationError
from osm_pipeline.core.models import OSM_SOURCE, RawSourceElement
from osm_pipeline.normalize.rules import CLASSIFICATION_RULES, ClassificationRule, classify, tag_value

# Fixed per-source confidence; OSM is crowd-sourced and unverified.
SOURCE_QUALITY_SCORES: dict[str, float] = {OSM_SOURCE: 0.7}

_NEGATIVE = frozenset({"no"})
_WHEELCHAIR_YES = frozenset({"yes", "designated", "limited"})
_DESIGNATED_YES = frozenset({"yes", "designated"})
_AUTOMATIC_DOOR_YES = frozenset({"yes", "button", "motion", "continuous"})
_CAPACITY = re.compile(r"^\d+$")


@dataclass(frozen=True)
class Skip:
    reason: str


def _tri_state(
    tags: Mapping[str, str],
    key: str,
    affirmative: frozenset[str] = frozenset({"yes"}),
    negative: frozenset[str] = _NEGATIVE,
) -> bool | None:
    value = tag_value(tags, key)
    if value in affirmative:
        return True
    if value in negative:
        return False
    return None


def _first_known(*values: bool | None) -> bool | None:
    for value in values:
        if value is not None:
            return value
    return None


def _pick(tags: Mapping[str, str], *keys: str) -> str | None:
    for key in keys:
        value = tags.get(key, "").strip()
        if value:
            return value
    return None


def _disabled_capacity(tags: Mapping[str, str]) -> bool | None:
    value = tag_value(tags, "capacity:disabled")
    if value is None:
        return None
    if value == "yes":
        return True
    if value == "no":
        return False
    if _CAPACITY.match(value):
        return int(value) > 0
    return None


def accessibility_flags(tags: Mapping[str, str]) -> AccessibilityFlags:
    is_elevator_node = tag_value(tags, "highway") == "elevator"
    is_automatic_door = tag_value(tags, "door") == "automatic"
    return AccessibilityFlags(
        wheelchair_accessible=_tri_state(tags, "wheelchair", affirmative=_WHEELCHAIR_YES),
        has_ramp=_first_known(_tri_state(tags, "ramp:wheelchair"), _tri_state(tags, "ramp")),
        has_elevator=True if is_elevator_node else _tri_state(tags, "elevator"),
        has_accessible_toilet=_tri_state(tags, "toilets:wheelchair", affirmative=_DESIGNATED_YES),
        has_accessible_parking=_first_known(
            _tri_state(tags, "parking:disabled", affirmative=_DESIGNATED_YES),
            _disabled_capacity(tags),
        ),
        has_automatic_door=True
        if is_automatic_door
        else _tri_state(tags, "automatic_door", affirmative=_AUTOMATIC_DOOR_YES),
    )


def _street_line(tags: Mapping[str, str]) -> str:
    return " ".join(part for part in (_pick(tags, "addr:housenumber"), _pick(tags, "addr:street")) if part)


def format_address(tags: Mapping[str, str]) -> str | None:
    parts = [_street_line(tags), _pick(tags, "addr:city"), _pick(tags, "addr:postcode")]
    address = ", ".join(part for part in parts if part)
    return address or None


class TagNormalizer:
    """Turn one raw provider element into a facility candidate, or say why not."""

    def __init__(
        self,
        source: str = OSM_SOURCE,
        rules: Sequence[ClassificationRule] = CLASSIFICATION_RULES,
        fallback_type: str | None = "entrance",
    ) -> None:
        if source not in SOURCE_QUALITY_SCORES:
            raise ValueError(f"no quality score configured for source: {source}")
        if fallback_type is not None and get_facility_type(fallback_type) is None:
            raise ValueError(f"unknown fallback facility type: {fallback_type}")
        self._source = source
        self._rules = tuple(rules)
        self._fallback_type = fallback_type

    def normalize(self, element: RawSourceElement) -> FacilityCandidate | Skip:
        if element.element_type != "node":
            return Skip("unsupported_geometry")
        tags = element.tags
        if not tags:
            return Skip("untagged")
        if element.lat is None or element.lng is None:
            raise NormalizationError(f"element {element.external_id} has no coordinates")

        facility_type = classify(tags, self._rules, self._fallback_type)
        if facility_type is None:
            return Skip("unclassified")

        return FacilityCandidate(
            name=self._name(tags, facility_type),
            facility_type=facility_type,
            location=GeoPoint(lat=element.lat, lng=element.lng),
            accessibility=accessibility_flags(tags),
            description=_pick(tags, "wheelchair:description", "description"),
            address=format_address(tags),
            opening_hours=self._opening_hours(tags),
            phone=_pick(tags, "phone", "contact:phone"),
            website=_pick(tags, "website", "contact:website"),
            data_quality_score=SOURCE_QUALITY_SCORES[self._source],
            data_sources=(self._source,),
            external_ids={self._source: element.external_id},
        )

    def _name(self, tags: Mapping[str, str], facility_type: str) -> str:
        explicit = _pick(tags, "name", "description")
        if explicit:
            return explicit
        facility = get_facility_type(facility_type)
        display_name = facility.name if facility else facility_type
        street_line = _street_line(tags)
        if street_line:
            return f"{display_name} at {street_line}"
        return display_name

    def _opening_hours(self, tags: Mapping[str, str]) -> dict[str, str] | None:
        raw = _pick(tags, "opening_hours")
        return {"raw": raw} if raw else None
