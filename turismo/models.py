from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .rules import NO_LINK, NOT_AVAILABLE, UNAVAILABLE


class PlaceRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)
    safety_advice: str = UNAVAILABLE
    travel_info: str = NOT_AVAILABLE
    route_link: str = NO_LINK
    tourism_link: str = NO_LINK

    @property
    def has_route(self) -> bool:
        return _is_link(self.route_link)

    @property
    def has_tourism_link(self) -> bool:
        return _is_link(self.tourism_link)


def _is_link(value: Optional[str]) -> bool:
    return bool(value) and value != NO_LINK


class PlaceLookup(BaseModel):
    """What the renderer gets for a name: the record, or a fallback with sentinels."""

    found: bool
    name: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    safety_advice: str = UNAVAILABLE
    travel_info: str = NOT_AVAILABLE
    route_link: str = NO_LINK
    tourism_link: str = NO_LINK

    @classmethod
    def from_record(cls, record: PlaceRecord) -> "PlaceLookup":
        return cls(found=True, **record.model_dump())

    @classmethod
    def fallback(cls, name: str) -> "PlaceLookup":
        return cls(found=False, name=name)


class ReportItem(BaseModel):
    row: Optional[int] = None
    column: Optional[str] = None
    issue: str
    value: Optional[str] = None
    action: str


class ReportSummary(BaseModel):
    rows: int = 0
    records: int = 0
    skipped: int = 0
    duplicates: int = 0


class NormalizeReport(BaseModel):
    summary: ReportSummary = Field(default_factory=ReportSummary)
    columns: Dict[str, Optional[int]] = Field(default_factory=dict)
    strategy: str = ""
    skipped: List[ReportItem] = Field(default_factory=list)
    warnings: List[ReportItem] = Field(default_factory=list)


class ParseResponse(BaseModel):
    batch_hash: int
    records: List[PlaceRecord]
    report: NormalizeReport


class RefreshStatus(BaseModel):
    code: str = Field(examples=["ok", "updated", "unchanged", "error", "busy"])
    message: str
    state: str = "idle"
    record_count: int = 0
    skipped_rows: int = 0
    batch_hash: Optional[int] = None
    finished_at: Optional[datetime] = None


class PlacesResponse(BaseModel):
    batch_hash: Optional[int] = None
    count: int
    places: List[PlaceRecord]


class HealthResponse(BaseModel):
    ok: bool = True
