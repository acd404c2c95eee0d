"""
Target store access: vehicle upserts (import) and filtered projections (export).
"""

from pipeline.loaders.vehicle_loader import UpsertOutcome, VehicleUpsertEngine
from pipeline.loaders.export_query import build_export_query, compile_filters, fetch_export_rows

__all__ = [
    "UpsertOutcome",
    "VehicleUpsertEngine",
    "build_export_query",
    "compile_filters",
    "fetch_export_rows",
]
