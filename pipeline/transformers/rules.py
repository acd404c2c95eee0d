"""
Ordered transformation rules attached to a field mapping.

Supported operations: trim, uppercase, lowercase, replace (regex find /
replace), parse_date (optional strftime output format) and parse_number.
"""

import logging
import re
from decimal import Decimal
from typing import Any, List

from core.exceptions import TransformError
from pipeline.transformers.coercion import parse_date
from schemas.pipeline import TransformationRule

logger = logging.getLogger(__name__)

_RULE_ALIASES = {
    "strip": "trim",
    "upper": "uppercase",
    "to_upper": "uppercase",
    "lower": "lowercase",
    "to_lower": "lowercase",
    "regex_replace": "replace",
    "regex": "replace",
    "date": "parse_date",
    "reparse_date": "parse_date",
    "number": "parse_number",
}

_LEADING_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


def _text_op(value: Any, op) -> Any:
    return op(value) if isinstance(value, str) else value


def _replace(value: Any, rule: TransformationRule, field_name: str) -> Any:
    if not rule.find:
        raise TransformError(
            "replace rule needs a 'find' pattern",
            context={"target_field": field_name, "rule": rule.type}
        )
    try:
        return re.sub(rule.find, rule.replace or "", str(value))
    except re.error as e:
        raise TransformError(
            f"Invalid regular expression '{rule.find}'",
            context={"target_field": field_name, "rule": rule.type},
            original_exception=e
        )


def _reparse_date(value: Any, rule: TransformationRule, field_name: str) -> Any:
    parsed = parse_date(value)
    if parsed is None:
        logger.warning(f"parse_date rule could not parse '{value}' for {field_name}; keeping value")
        return value
    return parsed.strftime(rule.format) if rule.format else parsed.isoformat()


def _parse_number(value: Any) -> Any:
    if isinstance(value, (int, Decimal)) and not isinstance(value, bool):
        return value
    match = _LEADING_NUMBER.search(str(value).replace(",", ""))
    return Decimal(match.group()) if match else 0


def apply_rules(value: Any, rules: List[TransformationRule], field_name: str = "") -> Any:
    """Apply ``rules`` in order. Unknown operations raise TransformError."""
    for rule in rules:
        op = _RULE_ALIASES.get(rule.type, rule.type)
        if op == "trim":
            value = _text_op(value, str.strip)
        elif op == "uppercase":
            value = _text_op(value, str.upper)
        elif op == "lowercase":
            value = _text_op(value, str.lower)
        elif op == "replace":
            value = _replace(value, rule, field_name)
        elif op == "parse_date":
            value = _reparse_date(value, rule, field_name)
        elif op == "parse_number":
            value = _parse_number(value)
        else:
            raise TransformError(
                f"Unknown transformation rule '{rule.type}'",
                context={"target_field": field_name, "rule": rule.type}
            )
    return value
