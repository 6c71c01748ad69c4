from __future__ import annotations

import logging

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
# per-request INFO lines from the HTTP client would drown the import events
QUIET_LOGGERS = ("httpx", "httpcore")

_provider: TracerProvider | None = None


def configure_tracing(service_name: str, version: str) -> TracerProvider:
    """Install the process-wide tracer provider; repeated calls return the first one."""
    global _provider
    if _provider is None:
        _provider = TracerProvider(
            resource=Resource.create({"service.name": service_name, "service.version": version})
        )
        trace.set_tracer_provider(_provider)
    return _provider


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
