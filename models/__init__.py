"""
SQLAlchemy ORM models for database tables.

Models:
    base: Declarative base, portable column types and shared enums
    pipeline_config: PipelineConfig aggregate and its settings sections
    execution: Execution history (ExecutionRecord, ExecutionError)
    vehicle: Dealer inventory table targeted by imports and read by exports

Database Schema:
    Column types are portable between PostgreSQL (JSONB, BIGINT keys) and
    SQLite, which the test suite runs against.

Usage:
    from models import PipelineConfig, ExecutionRecord, Vehicle
    from models.base import Direction, ExecutionStatus

Relationships:
    - PipelineConfig → settings sections (one-to-one, cascade delete)
    - PipelineConfig → FieldMapping / ExportFilter (one-to-many, ordered)
    - ExecutionRecord → ExecutionError (one-to-many, append-only)
"""

from models.base import Base
from models.pipeline_config import (
    PipelineConfig,
    ConnectionSettings,
    ScheduleSettings,
    FileFormatSettings,
    ProcessingPolicy,
    FileNamingSettings,
    FieldMapping,
    ExportFilter,
)
from models.execution import ExecutionRecord, ExecutionError
from models.vehicle import Vehicle

__all__ = [
    "Base",
    "PipelineConfig",
    "ConnectionSettings",
    "ScheduleSettings",
    "FileFormatSettings",
    "ProcessingPolicy",
    "FileNamingSettings",
    "FieldMapping",
    "ExportFilter",
    "ExecutionRecord",
    "ExecutionError",
    "Vehicle",
]
