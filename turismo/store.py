from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, Mapping, NamedTuple, Optional

from .models import PlaceLookup, PlaceRecord
from .normalize import to_mapping


class Snapshot(NamedTuple):
    places: Mapping[str, PlaceRecord]
    batch_hash: Optional[int]


class PlaceStore:
    """
    In-memory record set keyed by place name.

    The mapping and its hash live in one immutable snapshot that is
    replaced by a single reference swap, so readers see either the old
    batch or the new one, never a mix.
    """

    def __init__(self) -> None:
        self._snapshot = Snapshot(MappingProxyType({}), None)

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    @property
    def places(self) -> Mapping[str, PlaceRecord]:
        return self._snapshot.places

    @property
    def last_hash(self) -> Optional[int]:
        return self._snapshot.batch_hash

    def __len__(self) -> int:
        return len(self._snapshot.places)

    def replace(self, records: Iterable[PlaceRecord], batch_hash: int) -> Mapping[str, PlaceRecord]:
        snapshot = Snapshot(MappingProxyType(to_mapping(records)), batch_hash)
        self._snapshot = snapshot
        return snapshot.places

    def get(self, name: str) -> Optional[PlaceRecord]:
        return self._snapshot.places.get(name)

    def lookup(self, name: str) -> PlaceLookup:
        record = self._snapshot.places.get(name)
        if record is None:
            return PlaceLookup.fallback(name)
        return PlaceLookup.from_record(record)
