"""
Quote-aware CSV tokenizer for spreadsheet exports.

Rules:
- Fields may be double-quoted; quoted fields may hold commas and newlines.
- A doubled quote inside a quoted field is a literal quote.
- LF, CR and CRLF all end a row (CRLF counts once).
- Rows whose fields are all empty are dropped.
- An unterminated quote is closed at end of input.
"""

from __future__ import annotations

from typing import List

from .rules import CSV_DELIMITER

QUOTE = '"'


def tokenize(text: str, delimiter: str = CSV_DELIMITER) -> List[List[str]]:
    rows: List[List[str]] = []
    row: List[str] = []
    field: List[str] = []
    in_quotes = False

    def end_row() -> None:
        row.append("".join(field))
        if any(row):
            rows.append(list(row))
        row.clear()
        field.clear()

    i = 0
    n = len(text)
    while i < n:
        ch = text[i]

        if ch == QUOTE:
            if in_quotes and i + 1 < n and text[i + 1] == QUOTE:
                field.append(QUOTE)
                i += 1
            else:
                in_quotes = not in_quotes
        elif in_quotes:
            field.append(ch)
        elif ch == delimiter:
            row.append("".join(field))
            field.clear()
        elif ch == "\n" or ch == "\r":
            if field or row:
                end_row()
            if ch == "\r" and i + 1 < n and text[i + 1] == "\n":
                i += 1
        else:
            field.append(ch)
        i += 1

    if field or row:
        end_row()

    return rows
