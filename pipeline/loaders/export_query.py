"""
Export projection: selected vehicle columns plus compiled filters.

Each filter is a tagged {field, operator, value, value2} entry compiled to a
SQLAlchemy expression with bound parameters; values are never written
into the query text.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Tuple
import logging

from sqlalchemy import Column, String, cast, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement, Select

from core.exceptions import ConfigurationError
from models.base import FilterOperator
from models.vehicle import Vehicle
from pipeline.transformers.coercion import TRUE_TOKENS, parse_date
from schemas.pipeline import FieldMappingSpec, FilterSpec

logger = logging.getLogger(__name__)


def _vehicle_column(field: str) -> Column:
    column = Vehicle.__table__.columns.get(field)
    if column is None:
        raise ConfigurationError(
            f"Unknown vehicle field '{field}'",
            context={"field": field, "table_name": "vehicles"}
        )
    return column


def _bind_value(column: Column, value: Any) -> Any:
    """Convert a filter string to the column's Python type."""
    if value is None:
        return None
    python_type = column.type.python_type
    try:
        if python_type is int:
            return int(Decimal(str(value).replace(",", "")))
        if python_type is Decimal:
            return Decimal(str(value).replace(",", "").replace("$", ""))
        if python_type is bool:
            return str(value).strip().lower() in TRUE_TOKENS
        if python_type.__name__ == "datetime":
            parsed = parse_date(value)
            if parsed is None:
                raise ValueError(value)
            return parsed
    except (ValueError, InvalidOperation) as e:
        raise ConfigurationError(
            f"Filter value '{value}' is not valid for field '{column.name}'",
            context={"field": column.name},
            original_exception=e
        )
    return str(value)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def compile_filter(spec: FilterSpec) -> ColumnElement:
    column = _vehicle_column(spec.field)
    operator = spec.operator

    if operator == FilterOperator.CONTAINS:
        target = column if isinstance(column.type, String) else cast(column, String)
        return target.ilike(f"%{_escape_like(spec.value or '')}%", escape="\\")

    value = _bind_value(column, spec.value)
    if operator == FilterOperator.EQUALS:
        return column == value
    if operator == FilterOperator.NOT_EQUALS:
        return column != value
    if operator == FilterOperator.GREATER_THAN:
        return column > value
    if operator == FilterOperator.LESS_THAN:
        return column < value
    if operator == FilterOperator.BETWEEN:
        if spec.value2 is None:
            raise ConfigurationError(
                f"Filter on '{spec.field}' uses between without a second value",
                context={"field": spec.field}
            )
        return column.between(value, _bind_value(column, spec.value2))

    raise ConfigurationError(f"Unsupported filter operator '{operator}'", context={"field": spec.field})


def compile_filters(filters: List[FilterSpec]) -> List[ColumnElement]:
    return [compile_filter(spec) for spec in filters]


def build_export_query(dealer_id: str, mappings: List[FieldMappingSpec], filters: List[FilterSpec]) -> Select:
    """SELECT <source> AS <target>, ... FROM vehicles WHERE dealer_id = :d AND <filters>"""
    ordered = sorted(mappings, key=lambda m: m.order if m.order is not None else 0)
    columns = [
        _vehicle_column(m.source_field).label(m.target_field or m.source_field)
        for m in ordered
    ]
    if not columns:
        raise ConfigurationError("Export needs at least one field mapping", context={"section": "field_mappings"})

    return (
        select(*columns)
        .where(Vehicle.dealer_id == dealer_id, *compile_filters(filters))
        .order_by(Vehicle.id)
    )


async def fetch_export_rows(
    session: AsyncSession,
    dealer_id: str,
    mappings: List[FieldMappingSpec],
    filters: List[FilterSpec]
) -> Tuple[List[str], List[Dict[str, Any]]]:
    """Run the export projection. Returns (column names, rows)."""
    result = await session.execute(build_export_query(dealer_id, mappings, filters))
    columns = list(result.keys())
    rows = [dict(row._mapping) for row in result]
    logger.info(f"Export query returned {len(rows)} rows for dealer {dealer_id}")
    return columns, rows
