"""
Type detection and "meaningful extraction" from noisy dealer feeds.

Feeds routinely put values like ``"Mileage: 45,231 mi"`` or
``"Now only $18,995!"`` in numeric columns. The strategy here pulls the
useful part out before strict coercion is attempted. It sits behind
``HeuristicStrategy`` so a stricter or looser implementation can be
swapped into ``FieldMapper``.
"""

import re
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, List, Optional

from models.base import FieldType

# Returned by ``extract`` when the heuristic has no opinion
UNRESOLVED = object()

DECIMAL_KEYWORDS = ("price", "msrp", "discount", "rebate", "cost", "savings")
DECIMAL_NAMES = frozenset({"dealer_accessories"})
INTEGER_KEYWORDS = ("year", "odometer", "mileage", "miles")
BOOLEAN_KEYWORDS = ("certified",)
DATE_KEYWORDS = ("date", "created", "updated")

PRICE_KEYWORDS = DECIMAL_KEYWORDS + ("accessories",)
MAXIMUM_KEYWORDS = ("odometer", "mileage")

PRICE_RANGE = (Decimal(100), Decimal(1_000_000))
YEAR_RANGE = (Decimal(1900), Decimal(2030))

NEGATIVE_TOKENS = frozenset({"no", "not", "false", "n", "0", "non", "uncertified"})
POSITIVE_TOKENS = frozenset({"yes", "true", "y", "1", "certified", "cpo"})

_WHITESPACE = re.compile(r"\s+")
_MARKUP = re.compile(r"[^A-Za-z0-9 ,.\-$]")
_DATE_MARKUP = re.compile(r"[^A-Za-z0-9 ,.\-$:/+]")
_THOUSANDS = re.compile(r"(?<=\d),(?=\d{3}(?!\d))")
_NUMBER_TOKEN = re.compile(r"\d+(?:\.\d+)?")
_ALL_DIGITS = re.compile(r"\d+")
_DECIMAL_LIKE = re.compile(r"\$?\s*\d[\d,]*(?:\.\d+)?")


class HeuristicStrategy(ABC):
    """Pluggable type detection / extraction used by FieldMapper."""

    @abstractmethod
    def type_from_name(self, field_name: str) -> Optional[FieldType]:
        """Guess a type from the target field name, or None."""

    @abstractmethod
    def type_from_content(self, value: str) -> FieldType:
        """Guess a type from a cleaned value."""

    @abstractmethod
    def clean(self, value: str, field_type: Optional[FieldType]) -> str:
        """Strip markup and normalize whitespace."""

    @abstractmethod
    def extract(self, value: str, field_type: FieldType, field_name: str) -> Any:
        """Return the meaningful value, or UNRESOLVED to fall back to strict coercion."""

    def detect_type(self, field_name: str, value: str) -> FieldType:
        return self.type_from_name(field_name) or self.type_from_content(value)


class DefaultHeuristics(HeuristicStrategy):
    """Keyword typing and digit-run extraction tuned for vehicle inventory."""

    def type_from_name(self, field_name: str) -> Optional[FieldType]:
        name = field_name.lower()
        if name in DECIMAL_NAMES or any(k in name for k in DECIMAL_KEYWORDS):
            return FieldType.DECIMAL
        if any(k in name for k in INTEGER_KEYWORDS):
            return FieldType.INTEGER
        if any(k in name for k in BOOLEAN_KEYWORDS):
            return FieldType.BOOLEAN
        if any(k in name for k in DATE_KEYWORDS):
            return FieldType.DATE
        return None

    def type_from_content(self, value: str) -> FieldType:
        if _ALL_DIGITS.fullmatch(value):
            return FieldType.INTEGER
        if _DECIMAL_LIKE.fullmatch(value) and any(c in value for c in ".$,"):
            return FieldType.DECIMAL
        return FieldType.STRING

    def clean(self, value: str, field_type: Optional[FieldType]) -> str:
        pattern = _DATE_MARKUP if field_type == FieldType.DATE else _MARKUP
        cleaned = pattern.sub("", _WHITESPACE.sub(" ", value))
        return _WHITESPACE.sub(" ", cleaned).strip()

    def extract(self, value: str, field_type: FieldType, field_name: str) -> Any:
        name = field_name.lower()

        if field_type in (FieldType.INTEGER, FieldType.DECIMAL):
            numbers = self._numbers(value)
            if not numbers:
                return None
            chosen = self._pick_number(numbers, name)
            return int(chosen) if field_type == FieldType.INTEGER else chosen

        if field_type == FieldType.BOOLEAN:
            return self._extract_boolean(value)

        if field_type == FieldType.STRING:
            return value

        return UNRESOLVED

    def _numbers(self, value: str) -> List[Decimal]:
        text = _THOUSANDS.sub("", value)
        return [Decimal(token) for token in _NUMBER_TOKEN.findall(text)]

    def _pick_number(self, numbers: List[Decimal], name: str) -> Decimal:
        if any(k in name for k in MAXIMUM_KEYWORDS):
            positive = [n for n in numbers if n > 0]
            if positive:
                return max(positive)

        if any(k in name for k in PRICE_KEYWORDS):
            low, high = PRICE_RANGE
            for number in numbers:
                if low <= number <= high:
                    return number

        if "year" in name:
            low, high = YEAR_RANGE
            for number in numbers:
                if number == number.to_integral_value() and low <= number <= high:
                    return number

        return numbers[0]

    def _extract_boolean(self, value: str) -> Any:
        tokens = set(re.findall(r"[a-z0-9]+", value.lower()))
        if tokens & NEGATIVE_TOKENS:
            return False
        if tokens & POSITIVE_TOKENS:
            return True
        if len(value) > 10:
            return False
        return UNRESOLVED
