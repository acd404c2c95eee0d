"""
Strict type coercion shared by the mapper and the validator.

Coercion never raises: values that cannot be parsed resolve to None and
are logged.
"""

import logging
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from dateutil import parser as date_parser

from models.base import FieldType

logger = logging.getLogger(__name__)

TRUE_TOKENS = frozenset({"true", "1", "yes", "y"})
FALSE_TOKENS = frozenset({"false", "0", "no", "n"})

_CURRENCY_NOISE = re.compile(r"[$€£¥,\s]")
_NUMBER = re.compile(r"[-+]?(?:\d+(?:\.\d+)?|\.\d+)")


def parse_number(value: Any) -> Optional[Decimal]:
    """Parse a number after stripping currency symbols and thousands separators."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, Decimal)):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value))
    text = _CURRENCY_NOISE.sub("", str(value))
    if not _NUMBER.fullmatch(text):
        return None
    try:
        return Decimal(text)
    except InvalidOperation:
        return None


def parse_date(value: Any, fmt: Optional[str] = None) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = str(value).strip()
    if not text:
        return None
    try:
        if fmt:
            return datetime.strptime(text, fmt)
        return date_parser.parse(text)
    except (ValueError, OverflowError):
        return None


def is_boolean_token(value: Any) -> bool:
    if isinstance(value, bool):
        return True
    token = str(value).strip().lower()
    return token in TRUE_TOKENS or token in FALSE_TOKENS


def coerce_value(value: Any, field_type: Optional[FieldType], field_name: str = "") -> Any:
    """Convert a cleaned raw value to ``field_type``."""
    if value is None:
        return None

    if field_type is None or field_type == FieldType.STRING:
        return str(value)

    if field_type in (FieldType.INTEGER, FieldType.DECIMAL):
        number = parse_number(value)
        if number is None:
            logger.warning(f"Could not convert '{value}' to {field_type.value} for {field_name}; using null")
            return None
        return int(number) if field_type == FieldType.INTEGER else number

    if field_type == FieldType.BOOLEAN:
        if isinstance(value, bool):
            return value
        token = str(value).strip().lower()
        if token in TRUE_TOKENS:
            return True
        if token not in FALSE_TOKENS:
            logger.debug(f"Unrecognized boolean '{value}' for {field_name}; using false")
        return False

    if field_type == FieldType.DATE:
        parsed = parse_date(value)
        if parsed is None:
            logger.warning(f"Could not parse date '{value}' for {field_name}; using null")
            return None
        return parsed.isoformat()

    return value
