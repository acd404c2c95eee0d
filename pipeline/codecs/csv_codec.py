"""
CSV codec.

Parsing uses a quote-aware line splitter: a double quote toggles the
"in quotes" state (the quote itself is dropped) and a delimiter inside
quotes is not a field boundary. Quoted fields spanning several lines are
NOT supported, so this is not a complete RFC 4180 reader; each physical
line is one record.

Serialization goes through pandas with minimal quoting.
"""

import logging
from typing import Any, Dict, List

import pandas as pd

from core.exceptions import CodecError
from pipeline.codecs.base import decode_bytes, encode_text, format_value
from schemas.pipeline import FileFormatSpec

logger = logging.getLogger(__name__)


def split_line(line: str, delimiter: str = ",") -> List[str]:
    """Split one CSV line into trimmed fields."""
    fields: List[str] = []
    current: List[str] = []
    in_quotes = False
    width = len(delimiter)
    i = 0
    while i < len(line):
        char = line[i]
        if char == '"':
            in_quotes = not in_quotes
        elif not in_quotes and line.startswith(delimiter, i):
            fields.append("".join(current).strip())
            current = []
            i += width
            continue
        else:
            current.append(char)
        i += 1
    fields.append("".join(current).strip())
    return fields


def parse_csv(data: bytes, fmt: FileFormatSpec) -> List[Dict[str, str]]:
    text = decode_bytes(data, fmt)
    lines = [line.rstrip("\r") for line in text.split("\n")]
    lines = [line for line in lines if line.strip()]
    if not lines:
        raise CodecError("CSV file is empty", context={"file_type": "csv"})

    rows = [split_line(line, fmt.delimiter) for line in lines]
    if fmt.include_header:
        headers = [name or f"column_{i + 1}" for i, name in enumerate(rows[0])]
        rows = rows[1:]
    else:
        width = max(len(row) for row in rows)
        headers = [f"column_{i + 1}" for i in range(width)]

    records = []
    for row in rows:
        records.append({
            header: row[i] if i < len(row) else ""
            for i, header in enumerate(headers)
        })

    logger.debug(f"Parsed {len(records)} CSV records with {len(headers)} columns")
    return records


def serialize_csv(records: List[Dict[str, Any]], columns: List[str], fmt: FileFormatSpec) -> bytes:
    if len(fmt.delimiter) != 1:
        raise CodecError(
            "CSV export needs a single-character delimiter",
            context={"file_type": "csv", "delimiter": fmt.delimiter}
        )

    frame = pd.DataFrame(
        [[format_value(record.get(column), fmt.date_format) for column in columns] for record in records],
        columns=columns,
    )
    text = frame.to_csv(
        sep=fmt.delimiter,
        index=False,
        header=fmt.include_header,
        lineterminator="\n",
    )
    return encode_text(text, fmt)
