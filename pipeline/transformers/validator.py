"""
Required-field and type checks over mapped records.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from models.base import FieldType
from pipeline.transformers.coercion import is_boolean_token, parse_date, parse_number
from schemas.pipeline import FieldMappingSpec


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class ValidationEngine:
    """
    Validate a mapped record against its mappings.

    Values that the mapper already resolved to None only fail when the
    field is required.
    """

    def validate(self, record: Dict[str, Any], mappings: List[FieldMappingSpec]) -> ValidationResult:
        errors: List[str] = []
        for mapping in mappings:
            target = mapping.target_field
            if not target:
                continue
            value = record.get(target)

            if mapping.is_required and _is_empty(value):
                errors.append(f"Required field {target} is missing")
                continue

            if value is None or mapping.field_type is None:
                continue

            message = self._check_type(target, value, mapping.field_type)
            if message:
                errors.append(message)

        return ValidationResult(is_valid=not errors, errors=errors)

    def _check_type(self, target: str, value: Any, field_type: FieldType) -> Optional[str]:
        if field_type in (FieldType.INTEGER, FieldType.DECIMAL):
            if parse_number(value) is None:
                return f"Field {target} must be a number"
        elif field_type == FieldType.DATE:
            if parse_date(value) is None:
                return f"Field {target} must be a valid date"
        elif field_type == FieldType.BOOLEAN:
            if not is_boolean_token(value):
                return f"Field {target} must be a boolean"
        return None
