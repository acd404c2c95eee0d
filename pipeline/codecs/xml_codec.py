"""
XML codec.

Wire shape::

    <records>
      <record><vin>...</vin><make>...</make></record>
    </records>

Nested elements flatten to ``parent_child`` keys, attributes flatten like
child elements, repeated scalar elements are joined with the multi-value
delimiter.
"""

import logging
import re
from typing import Any, Dict, List

import xmltodict
from xml.parsers.expat import ExpatError

from core.exceptions import CodecError
from pipeline.codecs.base import decode_bytes, encode_text, format_value
from schemas.pipeline import FileFormatSpec

logger = logging.getLogger(__name__)

ROOT_ELEMENT = "records"
RECORD_ELEMENT = "record"


def _local_name(key: str) -> str:
    """Strip attribute marker and namespace prefix."""
    return key.lstrip("@").split(":")[-1]


def _flatten(node: Dict[str, Any], delimiter: str, prefix: str, out: Dict[str, str]) -> Dict[str, str]:
    for key, value in node.items():
        if key == "#text":
            if prefix:
                out[prefix] = (value or "").strip()
            continue
        full_key = f"{prefix}_{_local_name(key)}" if prefix else _local_name(key)
        if isinstance(value, dict):
            _flatten(value, delimiter, full_key, out)
        elif isinstance(value, list):
            if any(isinstance(item, dict) for item in value):
                for index, item in enumerate(value, start=1):
                    if isinstance(item, dict):
                        _flatten(item, delimiter, f"{full_key}_{index}", out)
                    else:
                        out[f"{full_key}_{index}"] = (item or "").strip()
            else:
                out[full_key] = delimiter.join((item or "").strip() for item in value)
        else:
            out[full_key] = (value or "").strip()
    return out


def parse_xml(data: bytes, fmt: FileFormatSpec) -> List[Dict[str, str]]:
    text = decode_bytes(data, fmt)
    if not text.strip():
        raise CodecError("XML file is empty", context={"file_type": "xml"})
    try:
        document = xmltodict.parse(text)
    except ExpatError as e:
        raise CodecError("Malformed XML file", context={"file_type": "xml"}, original_exception=e)

    root_name = next(iter(document))
    root = document[root_name]
    if _local_name(root_name) == RECORD_ELEMENT:
        items = [root]
    elif _local_name(root_name) == ROOT_ELEMENT:
        items = root.get(RECORD_ELEMENT) if isinstance(root, dict) else None
        if items is None:
            items = []
        elif not isinstance(items, list):
            items = [items]
    else:
        raise CodecError(
            f"XML root element must be <{ROOT_ELEMENT}>, found <{root_name}>",
            context={"file_type": "xml"}
        )

    records = []
    for item in items:
        if isinstance(item, dict):
            records.append(_flatten(item, fmt.multi_value_delimiter, "", {}))
        else:
            records.append({})

    logger.debug(f"Parsed {len(records)} XML records")
    return records


def _element_name(column: str) -> str:
    name = re.sub(r"[^A-Za-z0-9_.\-]", "_", column.strip()) or "field"
    if not re.match(r"[A-Za-z_]", name):
        name = f"_{name}"
    return name


def serialize_xml(records: List[Dict[str, Any]], columns: List[str], fmt: FileFormatSpec) -> bytes:
    names = {column: _element_name(column) for column in columns}
    rows = [
        {names[column]: format_value(record.get(column), fmt.date_format) for column in columns}
        for record in records
    ]
    document = {ROOT_ELEMENT: {RECORD_ELEMENT: rows} if rows else None}
    text = xmltodict.unparse(document, encoding=fmt.encoding or "utf-8", pretty=True)
    return encode_text(text, fmt)
