"""
Static JSON sources from the first version of the dashboard.

municipios_data.json   {"municipios": [{"nombre", "distancia_tiempo", "consejos_seguridad",
                                        "ruta_viaje", "link_turismo", "lat"?, "lng"?}]}
pueblos_magicos.json   {"pueblos_magicos": [{"nombre", "lat", "lng"}]}

Both are mapped through the same row validation as the CSV path.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Tuple

from .errors import ParseRowError
from .models import NormalizeReport, PlaceRecord, ReportItem
from .normalize import build_record

logger = logging.getLogger(__name__)

MUNICIPIOS_FILE = "municipios_data.json"
PUEBLOS_FILE = "pueblos_magicos.json"


def load_municipios(payload: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Advisory fields keyed by municipality name."""
    out: Dict[str, Dict[str, Any]] = {}
    for item in payload.get("municipios") or []:
        name = str(item.get("nombre") or "").strip()
        if not name:
            continue
        out[name] = {
            "name": name,
            "latitude": item.get("lat"),
            "longitude": item.get("lng"),
            "safety_advice": item.get("consejos_seguridad"),
            "travel_info": item.get("distancia_tiempo"),
            "route_link": item.get("ruta_viaje"),
            "tourism_link": item.get("link_turismo"),
        }
    return out


def load_pueblos_magicos(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Marker entries: name and coordinates, in file order."""
    out = []
    for item in payload.get("pueblos_magicos") or []:
        out.append({
            "name": str(item.get("nombre") or "").strip(),
            "latitude": item.get("lat"),
            "longitude": item.get("lng"),
        })
    return out


def merge_legacy(
    municipios: Dict[str, Dict[str, Any]],
    pueblos: List[Dict[str, Any]],
) -> Tuple[List[PlaceRecord], NormalizeReport]:
    """
    Join pueblo coordinates with municipio advice by name.

    Pueblos come first in file order; municipios that carry their own
    coordinates and are not pueblos follow. Entries without coordinates
    are skipped like malformed CSV rows.
    """
    report = NormalizeReport(strategy="legacy-json")
    records: List[PlaceRecord] = []
    seen: set[str] = set()

    entries: List[Dict[str, Any]] = []
    for pueblo in pueblos:
        merged = dict(municipios.get(pueblo["name"], {}))
        merged.update({k: v for k, v in pueblo.items() if v not in (None, "")})
        entries.append(merged)
    pueblo_names = {p["name"] for p in pueblos}
    entries.extend(v for k, v in municipios.items() if k not in pueblo_names)

    for i, values in enumerate(entries, start=1):
        report.summary.rows += 1
        try:
            record = build_record(values, i)
        except ParseRowError as exc:
            logger.debug("skipping legacy entry %s", exc)
            report.skipped.append(ReportItem(row=exc.row, issue=exc.issue, value=exc.value, action="skipped"))
            continue
        if record.name in seen:
            report.summary.duplicates += 1
        seen.add(record.name)
        records.append(record)

    report.summary.records = len(records)
    report.summary.skipped = len(report.skipped)
    return records, report


def load_legacy_files(directory: str | Path) -> Tuple[List[PlaceRecord], NormalizeReport]:
    """Read both JSON files from a directory; a missing file counts as empty."""
    base = Path(directory)

    def _read(name: str) -> Dict[str, Any]:
        path = base / name
        if not path.exists():
            logger.warning("legacy source not found: %s", path)
            return {}
        with open(path, encoding="utf-8") as f:
            return json.load(f)

    return merge_legacy(
        load_municipios(_read(MUNICIPIOS_FILE)),
        load_pueblos_magicos(_read(PUEBLOS_FILE)),
    )
