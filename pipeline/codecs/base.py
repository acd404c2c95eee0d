"""
Shared helpers for the file codecs.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from core.exceptions import CodecError
from schemas.pipeline import FileFormatSpec


def decode_bytes(data: bytes, fmt: FileFormatSpec) -> str:
    """Decode file bytes with the configured encoding, dropping a BOM."""
    try:
        text = data.decode(fmt.encoding or "utf-8")
    except LookupError as e:
        raise CodecError(
            f"Unknown file encoding '{fmt.encoding}'",
            context={"file_type": fmt.file_type.value},
            original_exception=e
        )
    except UnicodeDecodeError as e:
        raise CodecError(
            f"File is not valid {fmt.encoding}",
            context={"file_type": fmt.file_type.value, "position": e.start},
            original_exception=e
        )
    return text.lstrip("\ufeff")


def encode_text(text: str, fmt: FileFormatSpec) -> bytes:
    try:
        return text.encode(fmt.encoding or "utf-8")
    except (LookupError, UnicodeEncodeError) as e:
        raise CodecError(
            f"Cannot encode output as {fmt.encoding}",
            context={"file_type": fmt.file_type.value},
            original_exception=e
        )


def format_value(value: Any, date_format: Optional[str] = None) -> str:
    """Render a stored value as a wire string."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.strftime(date_format) if date_format else value.isoformat()
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)


def json_value(value: Any, date_format: Optional[str] = None) -> Any:
    """Like format_value, but keeps JSON-native types."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    return format_value(value, date_format)


def flatten_record(
    record: Dict[str, Any],
    list_delimiter: str,
    prefix: str = "",
    out: Optional[Dict[str, str]] = None
) -> Dict[str, str]:
    """
    Flatten nested objects into ``parent_child`` keys with string values.

    Lists of scalars are joined with the multi-value delimiter; lists of
    objects are flattened with a 1-based index suffix.
    """
    flat = {} if out is None else out
    for key, value in record.items():
        full_key = f"{prefix}_{key}" if prefix else str(key)
        if isinstance(value, dict):
            flatten_record(value, list_delimiter, full_key, flat)
        elif isinstance(value, list):
            if any(isinstance(item, dict) for item in value):
                for index, item in enumerate(value, start=1):
                    if isinstance(item, dict):
                        flatten_record(item, list_delimiter, f"{full_key}_{index}", flat)
                    else:
                        flat[f"{full_key}_{index}"] = format_value(item)
            else:
                flat[full_key] = list_delimiter.join(format_value(item) for item in value)
        else:
            flat[full_key] = format_value(value)
    return flat
