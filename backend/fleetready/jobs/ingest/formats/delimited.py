"""
Delimited text (CSV / TSV / pipe-separated).

A file is split into one raw record per data row; each raw record is the header
line followed by that row, so it can be re-parsed on its own.
"""

import csv
import io
from typing import Any

from fleetready.core.errors import FormatError


def _write_rows(rows: list[list[str]], delimiter: str) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, delimiter=delimiter, lineterminator="\n", quoting=csv.QUOTE_MINIMAL)
    writer.writerows(rows)
    return buf.getvalue()


def _read_rows(text: str, delimiter: str) -> list[list[str]]:
    try:
        return [row for row in csv.reader(io.StringIO(text), delimiter=delimiter, strict=True) if row]
    except csv.Error as e:
        raise FormatError(f"Malformed delimited text: {e}")


def split_records(text: str, *, delimiter: str) -> list[str]:
    rows = _read_rows(text.lstrip("\ufeff"), delimiter)
    if not rows:
        return []
    header, data = rows[0], rows[1:]
    return [
        _write_rows([header, row], delimiter)
        for row in data
        if any(cell.strip() for cell in row)
    ]


def parse_record(payload: str, *, delimiter: str) -> dict[str, Any]:
    rows = _read_rows(payload, delimiter)
    if len(rows) != 2:
        raise FormatError(f"Delimited record must be a header plus one row, got {len(rows)} row(s)")
    header, row = rows
    if len(header) != len(row):
        raise FormatError(f"Row has {len(row)} column(s) but header has {len(header)}")
    return {k.strip(): v.strip() for k, v in zip(header, row) if k.strip()}
