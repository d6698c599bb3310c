"""
Core normalization logic.

Responsibilities:
- payload decoding (charset detection, BOM)
- column resolution (positional or by header label)
- per-row validation and coercion into PlaceRecord
- skipped-row reporting
- batch hashing for change detection
"""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from charset_normalizer import from_bytes
from pydantic import ValidationError

from .csv_tokenizer import tokenize
from .errors import ParseRowError
from .models import NormalizeReport, PlaceRecord, ReportItem
from .rules import (
    FIELDS,
    HEADER_LABELS,
    LAT_RANGE,
    LON_RANGE,
    NO_LINK,
    NOT_AVAILABLE,
    POSITIONAL_COLUMNS,
    REQUIRED_FIELDS,
    STRATEGY_HEADER,
    STRATEGY_POSITIONAL,
    TARGET_ENCODING,
    UNAVAILABLE,
)

logger = logging.getLogger(__name__)

DEFAULTS = {
    "safety_advice": UNAVAILABLE,
    "travel_info": NOT_AVAILABLE,
    "route_link": NO_LINK,
    "tourism_link": NO_LINK,
}


def decode_payload(raw: bytes) -> Tuple[str, Dict[str, Any]]:
    """
    Decode a fetched export into text.

    Rules:
    - Sheet exports are UTF-8; try that first (BOM stripped).
    - Otherwise detect encoding best-effort via charset-normalizer.
    - If decode still fails, fall back to UTF-8 with replacement characters and report it.
    """
    detected = None
    decode_fallback = False
    try:
        text = raw.decode("utf-8-sig")
        decode_used = "utf-8-sig" if raw.startswith(b"\xef\xbb\xbf") else TARGET_ENCODING
    except UnicodeDecodeError:
        match = from_bytes(raw).best()
        if match is not None:
            detected = match.encoding
        decode_used = detected or TARGET_ENCODING
        try:
            text = raw.decode(decode_used)
        except (UnicodeDecodeError, LookupError):
            decode_used = TARGET_ENCODING
            decode_fallback = True
            text = raw.decode(TARGET_ENCODING, errors="replace")
        logger.info("payload is not UTF-8; decoded as %s", decode_used)

    return text, {
        "detected": detected,
        "decode_used": decode_used,
        "decode_fallback": decode_fallback,
    }


@dataclass
class ColumnLayout:
    """Resolved field -> column index; None means the column is absent."""

    strategy: str
    indices: Dict[str, Optional[int]] = field(default_factory=dict)

    def missing(self) -> List[str]:
        return [f for f in FIELDS if self.indices.get(f) is None]

    def cell(self, row: Sequence[str], name: str) -> str:
        idx = self.indices.get(name)
        if idx is None or idx >= len(row):
            return ""
        return row[idx].strip()


def resolve_columns(header: Sequence[str], strategy: str = STRATEGY_POSITIONAL) -> ColumnLayout:
    """Map record fields to column indices for the given header row."""
    if strategy == STRATEGY_POSITIONAL:
        return ColumnLayout(strategy=strategy, indices=dict(POSITIONAL_COLUMNS))
    if strategy != STRATEGY_HEADER:
        raise ValueError(f"unknown column strategy: {strategy!r}")

    labels = [h.strip().lower() for h in header]
    indices: Dict[str, Optional[int]] = {}
    for name in FIELDS:
        indices[name] = None
        for alias in HEADER_LABELS[name]:
            if alias in labels:
                indices[name] = labels.index(alias)
                break
    return ColumnLayout(strategy=strategy, indices=indices)


LEADING_FLOAT = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")


def coerce_coordinate(value: str) -> Optional[float]:
    """
    Parse the leading number of a cell: '20,5' -> 20.5, '19.95 N' -> 19.95.

    Trailing text (cardinal letters, degree signs) is ignored; None if the
    cell does not start with a finite number.
    """
    text = (value or "").strip().replace(",", ".", 1)
    match = LEADING_FLOAT.match(text)
    if match is None:
        return None
    number = float(match.group(0))
    if not math.isfinite(number):
        return None
    return number


def build_record(values: Dict[str, Any], row_number: int) -> PlaceRecord:
    """
    Validate one row's raw values into a PlaceRecord.

    Raises ParseRowError when the name is blank or a coordinate is
    missing, unparseable or out of range.
    """
    name = str(values.get("name") or "").strip()
    if not name:
        raise ParseRowError(row_number, "missing_name")

    coords = {}
    for key, (low, high) in (("latitude", LAT_RANGE), ("longitude", LON_RANGE)):
        raw = values.get(key)
        if isinstance(raw, (int, float)) and not isinstance(raw, bool):
            number = float(raw) if math.isfinite(raw) else None
        else:
            number = coerce_coordinate(str(raw or ""))
        if number is None:
            raise ParseRowError(row_number, f"invalid_{key}", None if raw is None else str(raw))
        if not low <= number <= high:
            raise ParseRowError(row_number, f"{key}_out_of_range", str(raw))
        coords[key] = number

    text_fields = {}
    for key, default in DEFAULTS.items():
        text_fields[key] = str(values.get(key) or "").strip() or default

    try:
        return PlaceRecord(name=name, **coords, **text_fields)
    except ValidationError as exc:
        raise ParseRowError(row_number, "invalid_record", str(exc)) from exc


def normalize_row(row: Sequence[str], layout: ColumnLayout, row_number: int) -> PlaceRecord:
    values = {name: layout.cell(row, name) for name in FIELDS}
    return build_record(values, row_number)


def normalize_rows(
    rows: Sequence[Sequence[str]],
    strategy: str = STRATEGY_POSITIONAL,
) -> Tuple[List[PlaceRecord], NormalizeReport]:
    """
    Turn tokenized rows (header first) into records.

    Malformed rows are skipped and listed in the report; they never
    abort the batch. Fewer than two rows is an empty, valid batch.
    """
    report = NormalizeReport(strategy=strategy)
    if not rows:
        return [], report

    layout = resolve_columns(rows[0], strategy)
    report.columns = dict(layout.indices)
    logger.debug("column layout (%s): %s", strategy, layout.indices)

    for name in layout.missing():
        report.warnings.append(ReportItem(
            column=name,
            issue="column_not_found",
            action="error" if name in REQUIRED_FIELDS else "default",
        ))

    records: List[PlaceRecord] = []
    seen: set[str] = set()
    for i, row in enumerate(rows[1:], start=2):
        report.summary.rows += 1
        try:
            record = normalize_row(row, layout, i)
        except ParseRowError as exc:
            logger.debug("skipping %s", exc)
            report.skipped.append(ReportItem(row=exc.row, issue=exc.issue, value=exc.value, action="skipped"))
            continue
        if record.name in seen:
            report.summary.duplicates += 1
        seen.add(record.name)
        records.append(record)

    report.summary.records = len(records)
    report.summary.skipped = len(report.skipped)
    return records, report


def parse_csv_text(text: str, strategy: str = STRATEGY_POSITIONAL) -> Tuple[List[PlaceRecord], NormalizeReport]:
    return normalize_rows(tokenize(text), strategy)


def parse_csv_bytes(raw: bytes, strategy: str = STRATEGY_POSITIONAL) -> Tuple[List[PlaceRecord], NormalizeReport]:
    text, _ = decode_payload(raw)
    return parse_csv_text(text, strategy)


def to_mapping(records: Iterable[PlaceRecord]) -> Dict[str, PlaceRecord]:
    """Key records by name; later duplicates overwrite earlier ones."""
    return {record.name: record for record in records}


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def batch_hash(records: Sequence[PlaceRecord]) -> int:
    """
    Order-dependent 32-bit rolling hash over the canonical JSON form of a batch.

    Not cryptographic; only used to tell whether a refresh changed anything.
    """
    payload = json.dumps(
        [r.model_dump() for r in records],
        ensure_ascii=False,
        sort_keys=True,
        separators=(",", ":"),
    )
    h = 0
    for ch in payload:
        h = _to_int32((h << 5) - h + ord(ch))
    return h
