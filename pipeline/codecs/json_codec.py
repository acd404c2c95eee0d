"""
JSON codec.

Accepted shapes: a top-level array, an object with a ``records`` or
``items`` array, or a single object (treated as one record).
"""

import json
import logging
from typing import Any, Dict, List

from core.exceptions import CodecError
from pipeline.codecs.base import decode_bytes, encode_text, flatten_record, json_value
from schemas.pipeline import FileFormatSpec

logger = logging.getLogger(__name__)


def _unwrap(payload: Any) -> List[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in ("records", "items"):
            if isinstance(payload.get(key), list):
                return payload[key]
        return [payload]
    raise CodecError(
        "JSON file must contain an array or an object",
        context={"file_type": "json", "found": type(payload).__name__}
    )


def parse_json(data: bytes, fmt: FileFormatSpec) -> List[Dict[str, str]]:
    text = decode_bytes(data, fmt)
    try:
        payload = json.loads(text)
    except ValueError as e:
        raise CodecError("Malformed JSON file", context={"file_type": "json"}, original_exception=e)

    records = []
    for index, item in enumerate(_unwrap(payload), start=1):
        if not isinstance(item, dict):
            raise CodecError(
                f"JSON record {index} is not an object",
                context={"file_type": "json", "record": index}
            )
        records.append(flatten_record(item, fmt.multi_value_delimiter))

    logger.debug(f"Parsed {len(records)} JSON records")
    return records


def serialize_json(records: List[Dict[str, Any]], columns: List[str], fmt: FileFormatSpec) -> bytes:
    rows = [
        {column: json_value(record.get(column), fmt.date_format) for column in columns}
        for record in records
    ]
    return encode_text(json.dumps(rows, indent=2, ensure_ascii=False), fmt)
