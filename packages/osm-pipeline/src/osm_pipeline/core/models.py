from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

OSM_SOURCE = "openstreetmap"


@dataclass(frozen=True)
class RawSourceElement:
    element_type: str
    element_id: str
    lat: float | None = None
    lng: float | None = None
    tags: dict[str, str] = field(default_factory=dict)

    @property
    def external_id(self) -> str:
        return f"{self.element_type}/{self.element_id}"


class ImportState(str, Enum):
    FETCHING = "fetching"
    NORMALIZING = "normalizing"
    DEDUPLICATING = "deduplicating"
    WRITING = "writing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class ImportSummary:
    total_fetched: int = 0
    imported: int = 0
    skipped: int = 0
    duplicates: int = 0
    failed: int = 0
    state: ImportState = ImportState.FETCHING
    error: str | None = None
    error_code: str | None = None
    imported_ids: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state is ImportState.DONE

    def fail(self, error_code: str, error: str) -> None:
        self.state = ImportState.FAILED
        self.error_code = error_code
        self.error = error

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "total_fetched": self.total_fetched,
            "imported": self.imported,
            "skipped": self.skipped,
            "duplicates": self.duplicates,
            "failed": self.failed,
            "error": self.error,
            "error_code": self.error_code,
            "imported_ids": list(self.imported_ids),
        }
