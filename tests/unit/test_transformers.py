"""
Unit tests for field mapping, heuristics, rules and validation
"""

from decimal import Decimal

import pytest

from core.exceptions import TransformError
from models.base import FieldType
from pipeline.transformers import (
    DefaultHeuristics, FieldMapper, UNRESOLVED, ValidationEngine, format_multi_value
)
from pipeline.transformers.coercion import coerce_value
from pipeline.transformers.rules import apply_rules
from schemas.pipeline import FieldMappingSpec, FileFormatSpec, TransformationRule


def mapping(source, target, **kwargs):
    return FieldMappingSpec(source_field=source, target_field=target, **kwargs)


class TestFieldMapper:
    """Test end-to-end mapping of one source record"""

    def test_honda_civic_row(self):
        mapper = FieldMapper([
            mapping("VIN", "vin"),
            mapping("Make", "make"),
            mapping("Year", "year"),
            mapping("Price", "price"),
            mapping("Mileage", "odometer"),
            mapping("Features", "features"),
        ])
        record = mapper.transform({
            "VIN": "1HGCM82633A004352",
            "Make": "Honda",
            "Year": "2021",
            "Price": "$18,995",
            "Mileage": "Mileage: 45,231 mi",
            "Features": "Leather Seats|Sunroof|Backup Camera",
        })

        assert record == {
            "vin": "1HGCM82633A004352",
            "make": "Honda",
            "year": 2021,
            "price": Decimal("18995"),
            "odometer": 45231,
            "features": '{"Leather Seats","Sunroof","Backup Camera"}',
        }

    def test_mileage_extraction(self):
        mapper = FieldMapper([mapping("Mileage", "odometer")])
        assert mapper.transform({"Mileage": "Mileage: 45,231 mi"})["odometer"] == 45231

    def test_price_picks_value_in_range(self):
        mapper = FieldMapper([mapping("Price", "price")])
        assert mapper.transform({"Price": "Save 2 today! Now only $18,995"})["price"] == Decimal("18995")

    def test_absent_source_uses_default(self):
        mapper = FieldMapper([mapping("Condition", "new_used", default_value="used")])
        assert mapper.transform({}) == {"new_used": "used"}

    def test_absent_source_without_default_is_omitted(self):
        mapper = FieldMapper([mapping("Color", "color")])
        assert mapper.transform({"VIN": "X1"}) == {}

    def test_blank_value_becomes_none(self):
        mapper = FieldMapper([mapping("Price", "price")])
        assert mapper.transform({"Price": "  "}) == {"price": None}

    def test_unparsable_number_becomes_none(self):
        mapper = FieldMapper([mapping("Year", "year")])
        assert mapper.transform({"Year": "unknown"}) == {"year": None}

    def test_explicit_type_wins_over_name(self):
        mapper = FieldMapper([mapping("Stock", "stock_number", field_type="integer")])
        assert mapper.transform({"Stock": "A-1042"}) == {"stock_number": 1042}

    @pytest.mark.parametrize("raw,expected", [
        ("Yes", True),
        ("CPO", True),
        ("Not certified", False),
        ("false", False),
        ("maybe", False),
    ])
    def test_boolean_leniency(self, raw, expected):
        mapper = FieldMapper([mapping("CPO", "certified")])
        assert mapper.transform({"CPO": raw}) == {"certified": expected}

    def test_date_values_keep_time(self):
        mapper = FieldMapper([mapping("Received", "received_date")])
        assert mapper.transform({"Received": "2024-01-15 10:30"}) == {"received_date": "2024-01-15T10:30:00"}

    def test_rules_apply_after_extraction(self):
        mapper = FieldMapper([
            mapping("Make", "make", transformation_rules=[{"type": "trim"}, {"type": "uppercase"}])
        ])
        assert mapper.transform({"Make": "  honda "}) == {"make": "HONDA"}

    def test_rules_given_as_json_string(self):
        mapper = FieldMapper([
            mapping("Body", "body_style", transformation_rules='{"op": "replace", "find": "^4dr ", "replace": ""}')
        ])
        assert mapper.transform({"Body": "4dr Sedan"}) == {"body_style": "Sedan"}

    def test_multi_value_uses_configured_delimiter(self):
        mapper = FieldMapper([mapping("Options", "features")], FileFormatSpec(multi_value_delimiter=";"))
        assert mapper.transform({"Options": "A;B"}) == {"features": '{"A","B"}'}

    def test_broken_rule_raises_transform_error(self):
        mapper = FieldMapper([
            mapping("Make", "make", transformation_rules=[{"type": "replace", "find": "(", "replace": ""}])
        ])
        with pytest.raises(TransformError, match="Invalid regular expression"):
            mapper.transform({"Make": "Honda"})

    def test_custom_strategy_is_used(self):
        class NoExtraction(DefaultHeuristics):
            def extract(self, value, field_type, field_name):
                return UNRESOLVED

        mapper = FieldMapper([mapping("Mileage", "odometer")], strategy=NoExtraction())
        # strict coercion cannot read the prefixed value
        assert mapper.transform({"Mileage": "Mileage 45231"}) == {"odometer": None}


class TestMultiValue:

    def test_pipe_delimited(self):
        assert format_multi_value("Leather Seats|Sunroof|Backup Camera") == \
            '{"Leather Seats","Sunroof","Backup Camera"}'

    def test_comma_fallback(self):
        assert format_multi_value("A, B") == '{"A","B"}'

    def test_already_formatted_is_unchanged(self):
        assert format_multi_value('{"A","B"}') == '{"A","B"}'

    def test_empty_items_give_none(self):
        assert format_multi_value("| |") is None


class TestRulesAndCoercion:

    def test_unknown_rule_raises(self):
        with pytest.raises(TransformError, match="Unknown transformation rule"):
            apply_rules("x", [TransformationRule(type="reverse")], "make")

    def test_parse_date_rule_formats(self):
        rules = [TransformationRule(type="parse_date", format="%m/%d/%Y")]
        assert apply_rules("2024-01-15", rules, "in_stock_date") == "01/15/2024"

    def test_parse_number_rule(self):
        assert apply_rules("12,500 miles", [TransformationRule(type="number")], "odometer") == Decimal("12500")

    def test_coerce_decimal_strips_currency(self):
        assert coerce_value("$1,250.50", FieldType.DECIMAL) == Decimal("1250.50")

    def test_coerce_unparsable_date_is_none(self):
        assert coerce_value("not a date", FieldType.DATE) is None


class TestValidationEngine:
    """Test required-field and type checks"""

    def setup_method(self):
        self.validator = ValidationEngine()

    def test_required_field_missing(self):
        result = self.validator.validate({}, [mapping("VIN", "vin", is_required=True)])

        assert result.is_valid is False
        assert "vin" in result.errors[0]
        assert result.errors == ["Required field vin is missing"]

    def test_required_blank_string_fails(self):
        result = self.validator.validate({"vin": "  "}, [mapping("VIN", "vin", is_required=True)])
        assert not result.is_valid

    def test_type_messages(self):
        mappings = [
            mapping("Year", "year", field_type="integer"),
            mapping("Sold", "sold_date", field_type="date"),
            mapping("CPO", "certified", field_type="boolean"),
        ]
        result = self.validator.validate(
            {"year": "abc", "sold_date": "someday", "certified": "perhaps"}, mappings
        )

        assert result.errors == [
            "Field year must be a number",
            "Field sold_date must be a valid date",
            "Field certified must be a boolean",
        ]

    def test_optional_none_passes(self):
        result = self.validator.validate({"price": None}, [mapping("Price", "price", field_type="decimal")])
        assert result.is_valid
