from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass


@dataclass(frozen=True)
class StageDuration:
    stage: str
    duration_ms: float


class InMemoryImportMetricsCollector:
    def __init__(self) -> None:
        self.stage_durations: list[StageDuration] = []
        self.import_run_total: dict[tuple[str, str], int] = defaultdict(int)
        self.import_elements_total: dict[tuple[str, str], int] = defaultdict(int)
        self.source_errors_total: dict[tuple[str, str], int] = defaultdict(int)
        self.import_duration_seconds: dict[str, float] = {}

    def observe_stage_duration(self, stage: str, duration_ms: float) -> None:
        self.stage_durations.append(StageDuration(stage=stage, duration_ms=duration_ms))

    def increment_run(self, source: str, status: str) -> None:
        self.import_run_total[(source, status)] += 1

    def add_elements(self, source: str, result: str, count: int = 1) -> None:
        if count <= 0:
            return
        self.import_elements_total[(source, result)] += count

    def increment_source_error(self, source: str, code: int | str) -> None:
        self.source_errors_total[(source, str(code))] += 1

    def observe_import_duration(self, source: str, duration_seconds: float) -> None:
        self.import_duration_seconds[source] = duration_seconds
