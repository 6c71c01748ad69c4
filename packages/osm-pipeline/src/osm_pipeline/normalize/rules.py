from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass

TagPredicate = Callable[[Mapping[str, str]], bool]


def tag_value(tags: Mapping[str, str], key: str) -> str | None:
    value = tags.get(key)
    if value is None:
        return None
    normalized = value.strip().lower()
    return normalized or None


def tag_is(key: str, *values: str) -> TagPredicate:
    accepted = frozenset(values)

    def _predicate(tags: Mapping[str, str]) -> bool:
        return tag_value(tags, key) in accepted

    return _predicate


def tag_present(key: str) -> TagPredicate:
    def _predicate(tags: Mapping[str, str]) -> bool:
        return tag_value(tags, key) is not None

    return _predicate


def any_of(*predicates: TagPredicate) -> TagPredicate:
    def _predicate(tags: Mapping[str, str]) -> bool:
        return any(predicate(tags) for predicate in predicates)

    return _predicate


@dataclass(frozen=True)
class ClassificationRule:
    name: str
    facility_type: str
    predicate: TagPredicate

    def matches(self, tags: Mapping[str, str]) -> bool:
        return self.predicate(tags)


# Order matters: an element tagged both amenity=toilets and entrance=main is a toilet.
CLASSIFICATION_RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule(
        name="toilets",
        facility_type="toilet",
        predicate=any_of(tag_is("amenity", "toilets"), tag_is("toilets:wheelchair", "yes")),
    ),
    ClassificationRule(
        name="disabled_parking",
        facility_type="parking",
        predicate=any_of(tag_is("amenity", "parking"), tag_is("parking:disabled", "yes")),
    ),
    ClassificationRule(
        name="elevator",
        facility_type="elevator",
        predicate=any_of(tag_is("highway", "elevator"), tag_is("elevator", "yes")),
    ),
    ClassificationRule(name="ramp", facility_type="ramp", predicate=tag_is("ramp", "yes")),
    ClassificationRule(name="entrance", facility_type="entrance", predicate=tag_present("entrance")),
    ClassificationRule(
        name="station",
        facility_type="station",
        predicate=any_of(tag_is("railway", "station"), tag_is("public_transport", "station")),
    ),
)


def classify(
    tags: Mapping[str, str],
    rules: Sequence[ClassificationRule] = CLASSIFICATION_RULES,
    fallback_type: str | None = "entrance",
) -> str | None:
    """Return the type of the first matching rule, else ``fallback_type``."""
    for rule in rules:
        if rule.matches(tags):
            return rule.facility_type
    return fallback_type
