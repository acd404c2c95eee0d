"""
File format codecs (CSV, JSON, XML).

Every codec buffers the whole file in memory, which bounds the practical
file size. Callers on the event loop should run ``parse``/``serialize``
through ``asyncio.to_thread``.
"""

from typing import Any, Callable, Dict, List

from core.exceptions import CodecError
from models.base import FileType
from pipeline.codecs.csv_codec import parse_csv, serialize_csv
from pipeline.codecs.json_codec import parse_json, serialize_json
from pipeline.codecs.xml_codec import parse_xml, serialize_xml
from schemas.pipeline import FileFormatSpec

_PARSERS: Dict[FileType, Callable[[bytes, FileFormatSpec], List[Dict[str, str]]]] = {
    FileType.CSV: parse_csv,
    FileType.JSON: parse_json,
    FileType.XML: parse_xml,
}

_SERIALIZERS = {
    FileType.CSV: serialize_csv,
    FileType.JSON: serialize_json,
    FileType.XML: serialize_xml,
}


def parse(data: bytes, fmt: FileFormatSpec) -> List[Dict[str, str]]:
    """Parse file bytes into an ordered list of field-name -> raw string records."""
    parser = _PARSERS.get(fmt.file_type)
    if parser is None:
        raise CodecError(f"Unsupported file type: {fmt.file_type}")
    return parser(data, fmt)


def serialize(records: List[Dict[str, Any]], columns: List[str], fmt: FileFormatSpec) -> bytes:
    """Serialize records, emitting ``columns`` in order."""
    serializer = _SERIALIZERS.get(fmt.file_type)
    if serializer is None:
        raise CodecError(f"Unsupported file type: {fmt.file_type}")
    return serializer(records, columns, fmt)


__all__ = ["parse", "serialize", "parse_csv", "parse_json", "parse_xml"]
