"""
Refresh cycle: fetch -> parse -> apply or skip.

One Ingestor owns the store, the last applied hash and the in-flight
guard. Timer ticks and manual refreshes both go through `refresh`;
a trigger that arrives while a cycle is running is dropped.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, List, Mapping, Optional, Sequence, Tuple

from .errors import BatchParseError, FetchError, IngestError
from .models import NormalizeReport, PlaceRecord, RefreshStatus
from .normalize import batch_hash, parse_csv_bytes
from .rules import STRATEGY_POSITIONAL
from .store import PlaceStore

logger = logging.getLogger(__name__)

Fetcher = Callable[[], Awaitable[bytes]]
RecordsListener = Callable[[Mapping[str, PlaceRecord]], None]
StatusListener = Callable[[RefreshStatus], None]


class CycleState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    PARSING = "parsing"
    APPLYING = "applying"
    SKIPPING = "skipping"
    FAILED = "failed"


class Ingestor:
    def __init__(
        self,
        fetcher: Fetcher,
        store: Optional[PlaceStore] = None,
        strategy: str = STRATEGY_POSITIONAL,
        fetch_timeout: float = 10.0,
    ):
        self.fetcher = fetcher
        self.store = store or PlaceStore()
        self.strategy = strategy
        self.fetch_timeout = fetch_timeout
        self.state = CycleState.IDLE
        self.last_status = RefreshStatus(code="ok", message="Waiting for first refresh")
        self.last_report: Optional[NormalizeReport] = None
        self._in_flight = False
        self._task: Optional[asyncio.Task] = None
        self._records_listeners: List[RecordsListener] = []
        self._status_listeners: List[StatusListener] = []

    @property
    def busy(self) -> bool:
        return self._in_flight

    def subscribe(
        self,
        on_records: Optional[RecordsListener] = None,
        on_status: Optional[StatusListener] = None,
    ) -> None:
        if on_records is not None:
            self._records_listeners.append(on_records)
        if on_status is not None:
            self._status_listeners.append(on_status)

    async def refresh(self, force: bool = False) -> RefreshStatus:
        """
        Run one cycle. `force` applies the batch even when its hash is unchanged.

        Returns a `busy` status without touching anything if a cycle is
        already running.
        """
        if self._in_flight:
            logger.debug("refresh dropped; cycle already in flight (%s)", self.state.value)
            return self._status("busy", "Refresh already in progress")

        self._in_flight = True
        try:
            self.state = CycleState.FETCHING
            raw = await self._fetch()
            self.state = CycleState.PARSING
            records, report = self._parse(raw)
            status = self.apply_batch(records, report, force=force)
        except IngestError as exc:
            self.state = CycleState.FAILED
            logger.warning("refresh failed: %s", exc)
            status = self._status("error", f"Connection error: {exc}" if isinstance(exc, FetchError) else str(exc))
            self._emit_status(status)
        finally:
            self.state = CycleState.IDLE
            self._in_flight = False
        return status

    async def _fetch(self) -> bytes:
        try:
            return await asyncio.wait_for(self.fetcher(), timeout=self.fetch_timeout)
        except asyncio.TimeoutError as exc:
            raise FetchError(f"timed out after {self.fetch_timeout}s") from exc
        except IngestError:
            raise
        except Exception as exc:
            raise FetchError(f"{type(exc).__name__}: {exc}") from exc

    def _parse(self, raw: bytes) -> Tuple[List[PlaceRecord], NormalizeReport]:
        try:
            return parse_csv_bytes(raw, self.strategy)
        except Exception as exc:
            raise BatchParseError(f"payload could not be parsed: {type(exc).__name__}: {exc}") from exc

    def apply_batch(
        self,
        records: Sequence[PlaceRecord],
        report: NormalizeReport,
        force: bool = False,
    ) -> RefreshStatus:
        """Swap in a parsed batch if its hash changed (or if forced) and notify listeners."""
        self.last_report = report
        if report.summary.rows and not records:
            raise BatchParseError(
                f"none of {report.summary.rows} data rows could be parsed",
                skipped=report.summary.skipped,
            )

        new_hash = batch_hash(records)
        if force or new_hash != self.store.last_hash:
            self.state = CycleState.APPLYING
            mapping = self.store.replace(records, new_hash)
            logger.info(
                "applied batch: %d places (%d rows skipped, hash %d)",
                len(mapping), report.summary.skipped, new_hash,
            )
            for listener in self._records_listeners:
                try:
                    listener(mapping)
                except Exception:
                    logger.exception("records listener failed")
            status = self._status("updated", "Data updated")
        else:
            self.state = CycleState.SKIPPING
            logger.debug("batch unchanged (hash %d)", new_hash)
            status = self._status("unchanged", "No changes")

        self._emit_status(status)
        return status

    def _status(self, code: str, message: str) -> RefreshStatus:
        report = self.last_report
        return RefreshStatus(
            code=code,
            message=message,
            state=self.state.value,
            record_count=len(self.store),
            skipped_rows=report.summary.skipped if report else 0,
            batch_hash=self.store.last_hash,
            finished_at=datetime.now(timezone.utc),
        )

    def _emit_status(self, status: RefreshStatus) -> None:
        self.last_status = status
        for listener in self._status_listeners:
            try:
                listener(status)
            except Exception:
                logger.exception("status listener failed")

    async def run_periodic(self, interval: float) -> None:
        while True:
            try:
                await self.refresh()
            except Exception:
                logger.exception("periodic refresh failed; retrying in %ss", interval)
            await asyncio.sleep(interval)

    def start(self, interval: float) -> asyncio.Task:
        """Schedule the periodic refresh on the running loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run_periodic(interval))
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
