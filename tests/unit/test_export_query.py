"""
Unit tests for export filters and the export projection
"""

from decimal import Decimal

import pytest

from core.exceptions import ConfigurationError
from models.vehicle import Vehicle
from pipeline.loaders import build_export_query, fetch_export_rows
from pipeline.loaders.export_query import compile_filter
from schemas.pipeline import FieldMappingSpec, FilterSpec


def export_mappings(*pairs):
    return [
        FieldMappingSpec(source_field=source, target_field=target, order=i)
        for i, (source, target) in enumerate(pairs)
    ]


class TestCompileFilter:
    """Filters compile to expressions with bound parameters"""

    def test_values_are_bound_not_inlined(self):
        expression = compile_filter(FilterSpec(field="make", operator="equals", value="Honda'; DROP TABLE vehicles"))
        compiled = expression.compile()

        assert "DROP TABLE" not in str(compiled)
        assert "Honda'; DROP TABLE vehicles" in compiled.params.values()

    def test_numeric_value_is_converted(self):
        compiled = compile_filter(FilterSpec(field="price", operator="greater_than", value="$20,000")).compile()
        assert list(compiled.params.values()) == [Decimal("20000")]

    def test_contains_escapes_wildcards(self):
        compiled = compile_filter(FilterSpec(field="model", operator="contains", value="50%_off")).compile()
        assert list(compiled.params.values()) == ["%50\\%\\_off%"]

    def test_between_needs_second_value(self):
        with pytest.raises(ConfigurationError, match="between"):
            compile_filter(FilterSpec(field="year", operator="between", value="2018"))

    def test_unknown_field(self):
        with pytest.raises(ConfigurationError, match="Unknown vehicle field"):
            compile_filter(FilterSpec(field="password", operator="equals", value="x"))

    def test_invalid_number(self):
        with pytest.raises(ConfigurationError, match="not valid"):
            compile_filter(FilterSpec(field="year", operator="equals", value="recent"))

    def test_export_needs_mappings(self):
        with pytest.raises(ConfigurationError):
            build_export_query("dealer-1", [], [])


@pytest.mark.asyncio
class TestFetchExportRows:
    """Projection against a real session"""

    async def seed(self, db_session):
        db_session.add_all([
            Vehicle(dealer_id="dealer-1", vin="V1", make="Honda", model="Civic", year=2019, price=Decimal("15995")),
            Vehicle(dealer_id="dealer-1", vin="V2", make="Toyota", model="Camry", year=2021, price=Decimal("24500")),
            Vehicle(dealer_id="dealer-1", vin="V3", make="Ford", model="F-150", year=2017, price=Decimal("27999")),
            Vehicle(dealer_id="dealer-2", vin="V4", make="Honda", model="Accord", year=2022, price=Decimal("30000")),
        ])
        await db_session.commit()

    async def test_columns_are_labelled_with_target_names(self, db_session):
        await self.seed(db_session)

        columns, rows = await fetch_export_rows(
            db_session, "dealer-1", export_mappings(("vin", "VIN"), ("make", "Make")), []
        )

        assert columns == ["VIN", "Make"]
        assert rows == [
            {"VIN": "V1", "Make": "Honda"},
            {"VIN": "V2", "Make": "Toyota"},
            {"VIN": "V3", "Make": "Ford"},
        ]

    async def test_filters_are_combined(self, db_session):
        await self.seed(db_session)
        filters = [
            FilterSpec(field="year", operator="between", value="2018", value2="2022"),
            FilterSpec(field="make", operator="not_equals", value="Toyota"),
        ]

        _, rows = await fetch_export_rows(db_session, "dealer-1", export_mappings(("vin", "vin")), filters)

        assert rows == [{"vin": "V1"}]

    async def test_contains_is_case_insensitive(self, db_session):
        await self.seed(db_session)
        filters = [FilterSpec(field="model", operator="contains", value="cam")]

        _, rows = await fetch_export_rows(db_session, "dealer-1", export_mappings(("vin", "vin")), filters)

        assert rows == [{"vin": "V2"}]
