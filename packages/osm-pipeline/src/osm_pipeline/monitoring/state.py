from __future__ import annotations

from osm_pipeline.core.metrics import InMemoryImportMetricsCollector
from osm_pipeline.core.prometheus_exporter import ImportPrometheusExporter

import_metrics = InMemoryImportMetricsCollector()
import_exporter = ImportPrometheusExporter()
