"""
Record transformation: mapping, heuristics, rules and validation.
"""

from pipeline.transformers.heuristics import DefaultHeuristics, HeuristicStrategy, UNRESOLVED
from pipeline.transformers.mapper import FieldMapper, format_multi_value, is_multi_value_field
from pipeline.transformers.validator import ValidationEngine, ValidationResult

__all__ = [
    "DefaultHeuristics",
    "HeuristicStrategy",
    "UNRESOLVED",
    "FieldMapper",
    "format_multi_value",
    "is_multi_value_field",
    "ValidationEngine",
    "ValidationResult",
]
