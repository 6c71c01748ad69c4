"""OpenStreetMap ingestion: Overpass client, tag normalization and area imports."""
