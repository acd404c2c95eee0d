"""
Field mapper: turns one parsed source record into a typed target record.

Per mapping, in ``order``:
    1. read the raw value (absent -> default value, or omit the target)
    2. resolve the type (explicit, then target-name keywords, then content)
    3. clean markup
    4. heuristic extraction, falling back to strict coercion
    5. transformation rules
    6. multi-value formatting for list-like targets
"""

import logging
from typing import Any, Dict, List, Optional

from core.exceptions import TransformError
from models.base import FieldType
from pipeline.transformers.coercion import coerce_value
from pipeline.transformers.heuristics import UNRESOLVED, DefaultHeuristics, HeuristicStrategy
from pipeline.transformers.rules import apply_rules
from schemas.pipeline import FieldMappingSpec, FileFormatSpec

logger = logging.getLogger(__name__)

MULTI_VALUE_KEYWORDS = ("feature", "option", "accessor", "package", "photo", "image")
LIST_FIELDS = frozenset({"features", "photo_url_list", "options", "packages"})

_OMIT = object()


def is_multi_value_field(field_name: str) -> bool:
    name = field_name.lower()
    return name in LIST_FIELDS or any(k in name for k in MULTI_VALUE_KEYWORDS)


def format_multi_value(raw: str, delimiter: str = "|") -> Optional[str]:
    """
    ``'Leather Seats|Sunroof'`` -> ``'{"Leather Seats","Sunroof"}'``

    Splits on ``delimiter`` when present, otherwise on commas. Values already
    in brace form are returned unchanged.
    """
    text = raw.strip()
    if text.startswith("{") and text.endswith("}"):
        return text

    separator = delimiter if delimiter and delimiter in text else ","
    items = []
    for item in text.split(separator):
        item = item.replace('"', "").replace("{", "").replace("}", "").strip()
        if item:
            items.append(f'"{item}"')
    if not items:
        return None
    return "{" + ",".join(items) + "}"


class FieldMapper:
    """
    Apply an ordered list of field mappings to source records.

    Responsibilities:
    - Consume only canonical FieldMappingSpec objects
    - Never raise for unparsable values (they become None)
    - Raise TransformError for broken transformation rules
    """

    def __init__(
        self,
        mappings: List[FieldMappingSpec],
        file_format: Optional[FileFormatSpec] = None,
        strategy: Optional[HeuristicStrategy] = None
    ):
        self.mappings = sorted(
            (m for m in mappings if m.target_field),
            key=lambda m: m.order if m.order is not None else 0
        )
        self.multi_value_delimiter = (file_format or FileFormatSpec()).multi_value_delimiter
        self.strategy = strategy or DefaultHeuristics()

    def transform(self, record: Dict[str, Any]) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for mapping in self.mappings:
            try:
                value = self._map_field(mapping, record)
            except TransformError:
                raise
            except Exception as e:
                raise TransformError(
                    f"Failed to map {mapping.source_field} -> {mapping.target_field}: {e}",
                    context={"source_field": mapping.source_field, "target_field": mapping.target_field},
                    original_exception=e
                )
            if value is not _OMIT:
                result[mapping.target_field] = value
        return result

    def _map_field(self, mapping: FieldMappingSpec, record: Dict[str, Any]) -> Any:
        target = mapping.target_field

        if mapping.source_field in record:
            raw = record[mapping.source_field]
        elif mapping.default_value not in (None, ""):
            raw = mapping.default_value
        else:
            return _OMIT

        raw_text = "" if raw is None else str(raw)
        field_type = mapping.field_type or self.strategy.type_from_name(target)

        if field_type in (None, FieldType.STRING) and is_multi_value_field(target):
            value: Any = raw_text if raw_text.strip() else None
            if value is not None and mapping.transformation_rules:
                value = apply_rules(value, mapping.transformation_rules, target)
            if isinstance(value, str):
                value = format_multi_value(value, self.multi_value_delimiter)
            return value

        cleaned = self.strategy.clean(raw_text, field_type)
        if not cleaned:
            return None
        if field_type is None:
            field_type = self.strategy.type_from_content(cleaned)

        value = self.strategy.extract(cleaned, field_type, target)
        if value is UNRESOLVED:
            value = coerce_value(cleaned, field_type, target)

        if value is not None and mapping.transformation_rules:
            value = apply_rules(value, mapping.transformation_rules, target)
        return value
