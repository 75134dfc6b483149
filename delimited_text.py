"""Tokenizer for comma/tab separated text pasted from spreadsheets.

Both ``,`` and ``\\t`` separate fields, character by character, so a paste may
mix them freely outside quotes. Double quotes wrap a field; inside quotes a
doubled quote is a literal ``"`` and separators or newlines are plain content.
Rows whose fields are all blank are dropped and every field is trimmed.
Malformed quoting is never an error: an unterminated quote simply runs to the
end of the input.
"""

from __future__ import annotations

import csv
import io
from typing import Iterable, List, Sequence

SEPARATORS = {",", "\t"}
BOM = "\ufeff"


def _finish_row(row: List[str], rows: List[List[str]]) -> None:
    if any(field.strip() for field in row):
        rows.append([field.strip() for field in row])


def parse_rows(text: str) -> List[List[str]]:
    """Split ``text`` into rows of trimmed string fields."""
    if text.startswith(BOM):
        text = text[len(BOM):]
    text = text.replace("\r\n", "\n")

    rows: List[List[str]] = []
    row: List[str] = []
    field: List[str] = []
    in_quotes = False
    idx = 0
    length = len(text)

    while idx < length:
        char = text[idx]
        if char == '"':
            if in_quotes and idx + 1 < length and text[idx + 1] == '"':
                field.append('"')
                idx += 1
            else:
                in_quotes = not in_quotes
        elif char in SEPARATORS and not in_quotes:
            row.append("".join(field))
            field = []
        elif char == "\n" and not in_quotes:
            row.append("".join(field))
            _finish_row(row, rows)
            row = []
            field = []
        else:
            field.append(char)
        idx += 1

    if field or row:
        row.append("".join(field))
        _finish_row(row, rows)

    return rows


def write_rows(rows: Iterable[Sequence[object]]) -> str:
    """Serialize rows as CSV text with minimal quoting."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    for row in rows:
        writer.writerow(["" if value is None else value for value in row])
    return buffer.getvalue()
