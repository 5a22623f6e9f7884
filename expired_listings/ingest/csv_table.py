"""Quote-aware tokenizer for MLS and skip-trace CSV exports."""

from __future__ import annotations

import re
from typing import Callable

from expired_listings.common.models import RawRecord

_WHITESPACE_RE = re.compile(r"\s+")


def _strip_quotes(value: str) -> str:
    if value.startswith('"'):
        value = value[1:]
    if value.endswith('"'):
        value = value[:-1]
    return value


def parse_csv_line(line: str) -> list[str]:
    """Split one line on commas outside double quotes; quotes toggle and are dropped."""
    values: list[str] = []
    current: list[str] = []
    in_quotes = False

    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            values.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    values.append("".join(current).strip())

    return [_strip_quotes(value) for value in values]


def normalise_header(name: str) -> str:
    return _WHITESPACE_RE.sub("_", name.strip().lower())


def parse_table(text: str, *, header_transform: Callable[[str], str] | None = None) -> list[RawRecord]:
    lines = [line for line in text.split("\n") if line.strip()]
    if len(lines) < 2:
        return []

    headers = parse_csv_line(lines[0])
    if header_transform is not None:
        headers = [header_transform(h) for h in headers]

    records: list[RawRecord] = []
    for line in lines[1:]:
        values = parse_csv_line(line)
        record: RawRecord = {}
        for index, header in enumerate(headers):
            record[header] = values[index] if index < len(values) else ""
        records.append(record)
    return records
