"""Geodata provider clients."""

from osm_pipeline.providers.overpass import OVERPASS_URL, OverpassClient, build_overpass_query
from osm_pipeline.providers.rate_gate import RateGate

__all__ = ["OVERPASS_URL", "OverpassClient", "RateGate", "build_overpass_query"]
