from __future__ import annotations

from prometheus_client import CollectorRegistry, Gauge, generate_latest

from osm_pipeline.core.metrics import InMemoryImportMetricsCollector


class ImportPrometheusExporter:
    def __init__(self) -> None:
        self._registry = CollectorRegistry()
        self._stage_duration = Gauge(
            "osm_import_stage_duration_ms",
            "Latest import stage duration in milliseconds",
            labelnames=("stage",),
            registry=self._registry,
        )
        self._run_total = Gauge(
            "osm_import_run_total",
            "Import runs grouped by source and status",
            labelnames=("source", "status"),
            registry=self._registry,
        )
        self._elements_total = Gauge(
            "osm_import_elements_total",
            "Imported elements grouped by source and result",
            labelnames=("source", "result"),
            registry=self._registry,
        )
        self._source_errors_total = Gauge(
            "osm_source_errors_total",
            "Provider errors grouped by source and code",
            labelnames=("source", "code"),
            registry=self._registry,
        )
        self._duration_seconds = Gauge(
            "osm_import_duration_seconds",
            "Latest import run duration by source",
            labelnames=("source",),
            registry=self._registry,
        )

    def render(self, metrics: InMemoryImportMetricsCollector) -> str:
        latest_by_stage: dict[str, float] = {}
        for item in metrics.stage_durations:
            latest_by_stage[item.stage] = item.duration_ms
        for stage, duration in latest_by_stage.items():
            self._stage_duration.labels(stage=stage).set(duration)
        for (source, status), count in metrics.import_run_total.items():
            self._run_total.labels(source=source, status=status).set(count)
        for (source, result), count in metrics.import_elements_total.items():
            self._elements_total.labels(source=source, result=result).set(count)
        for (source, code), count in metrics.source_errors_total.items():
            self._source_errors_total.labels(source=source, code=code).set(count)
        for source, duration in metrics.import_duration_seconds.items():
            self._duration_seconds.labels(source=source).set(duration)
        return generate_latest(self._registry).decode("utf-8")
