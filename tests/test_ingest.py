import asyncio

import pytest

from turismo.errors import BatchParseError, FetchError
from turismo.ingest import CycleState, Ingestor
from turismo.models import NormalizeReport
from turismo.rules import NOT_AVAILABLE, UNAVAILABLE

HEADER = "#,Pueblo Mágico,Latitud,Longitud,Consejos de seguridad,Distancia / Tiempo,Ruta/Viaje desde GDL,Link turismo\n"
CSV_V1 = (HEADER + "1,Tapalpa,19.95,-103.75\n2,Mazamitla,19.915,-103.02\n").encode("utf-8")
CSV_V2 = (HEADER + "1,Tapalpa,19.95,-103.75,Viaja de día\n2,Mazamitla,19.915,-103.02\n").encode("utf-8")


def _fetcher(*payloads):
    """Fetcher returning (or raising) each payload in turn."""
    queue = list(payloads)

    async def fetch():
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    return fetch


def test_first_refresh_applies_batch():
    ingestor = Ingestor(_fetcher(CSV_V1))
    status = asyncio.run(ingestor.refresh())

    assert status.code == "updated"
    assert status.record_count == 2
    assert status.batch_hash == ingestor.store.last_hash
    assert ingestor.state is CycleState.IDLE
    assert ingestor.last_status == status
    assert set(ingestor.store.places) == {"Tapalpa", "Mazamitla"}


def test_identical_payload_reports_unchanged_and_keeps_mapping():
    ingestor = Ingestor(_fetcher(CSV_V1, CSV_V1))
    first = asyncio.run(ingestor.refresh())
    mapping = ingestor.store.places

    second = asyncio.run(ingestor.refresh())

    assert second.code == "unchanged"
    assert second.batch_hash == first.batch_hash
    assert ingestor.store.places is mapping


def test_forced_refresh_always_applies():
    ingestor = Ingestor(_fetcher(CSV_V1, CSV_V1))
    asyncio.run(ingestor.refresh())
    mapping = ingestor.store.places

    status = asyncio.run(ingestor.refresh(force=True))

    assert status.code == "updated"
    assert ingestor.store.places is not mapping


def test_changed_payload_replaces_records():
    ingestor = Ingestor(_fetcher(CSV_V1, CSV_V2))
    asyncio.run(ingestor.refresh())
    assert ingestor.store.get("Tapalpa").safety_advice == UNAVAILABLE

    status = asyncio.run(ingestor.refresh())

    assert status.code == "updated"
    assert ingestor.store.get("Tapalpa").safety_advice == "Viaja de día"


def test_fetch_error_keeps_previous_records():
    ingestor = Ingestor(_fetcher(CSV_V1, FetchError("HTTP error! status: 503", status=503)))
    asyncio.run(ingestor.refresh())
    previous = ingestor.store.places

    status = asyncio.run(ingestor.refresh())

    assert status.code == "error"
    assert status.state == CycleState.FAILED.value
    assert "503" in status.message
    assert ingestor.store.places is previous
    assert status.record_count == 2
    assert not ingestor.busy
    assert ingestor.state is CycleState.IDLE


def test_total_parse_failure_is_an_error():
    garbage = (HEADER + "1,,x,y\n2,Tapalpa,norte,sur\n").encode("utf-8")
    ingestor = Ingestor(_fetcher(CSV_V1, garbage))
    asyncio.run(ingestor.refresh())

    status = asyncio.run(ingestor.refresh())

    assert status.code == "error"
    assert status.skipped_rows == 2
    assert len(ingestor.store) == 2


def test_header_only_payload_is_an_empty_update():
    ingestor = Ingestor(_fetcher(HEADER.encode("utf-8")))
    status = asyncio.run(ingestor.refresh())

    assert status.code == "updated"
    assert status.record_count == 0


def test_overlapping_refresh_is_dropped():
    async def scenario():
        gate = asyncio.Event()
        calls = []

        async def slow_fetch():
            calls.append(1)
            await gate.wait()
            return CSV_V1

        ingestor = Ingestor(slow_fetch)
        first = asyncio.create_task(ingestor.refresh())
        await asyncio.sleep(0)
        assert ingestor.busy
        assert ingestor.state is CycleState.FETCHING

        dropped = await ingestor.refresh(force=True)
        gate.set()
        return ingestor, await first, dropped, calls

    ingestor, first, dropped, calls = asyncio.run(scenario())

    assert dropped.code == "busy"
    assert first.code == "updated"
    assert len(calls) == 1
    assert ingestor.last_status == first


def test_fetch_timeout_fails_cycle_and_releases_guard():
    async def stalled():
        await asyncio.sleep(5)
        return CSV_V1

    ingestor = Ingestor(stalled, fetch_timeout=0.01)
    status = asyncio.run(ingestor.refresh())

    assert status.code == "error"
    assert "timed out" in status.message
    assert not ingestor.busy


def test_listeners_receive_records_and_status():
    seen_records = []
    seen_status = []
    ingestor = Ingestor(_fetcher(CSV_V1, CSV_V1, FetchError("boom")))
    ingestor.subscribe(on_records=seen_records.append, on_status=seen_status.append)

    asyncio.run(ingestor.refresh())
    asyncio.run(ingestor.refresh())
    asyncio.run(ingestor.refresh())

    assert len(seen_records) == 1
    assert set(seen_records[0]) == {"Tapalpa", "Mazamitla"}
    assert [s.code for s in seen_status] == ["updated", "unchanged", "error"]


def test_failing_listener_does_not_break_cycle():
    def broken(_mapping):
        raise RuntimeError("renderer crashed")

    ingestor = Ingestor(_fetcher(CSV_V1))
    ingestor.subscribe(on_records=broken)

    status = asyncio.run(ingestor.refresh())
    assert status.code == "updated"


def test_apply_batch_rejects_all_skipped():
    report = NormalizeReport()
    report.summary.rows = 3
    report.summary.skipped = 3

    with pytest.raises(BatchParseError):
        Ingestor(_fetcher()).apply_batch([], report)


def test_periodic_refresh_runs_until_stopped():
    async def scenario():
        calls = []

        async def fetch():
            calls.append(1)
            return CSV_V1

        ingestor = Ingestor(fetch)
        ingestor.start(0.01)
        await asyncio.sleep(0.1)
        await ingestor.stop()
        return ingestor, len(calls)

    ingestor, calls = asyncio.run(scenario())

    assert calls >= 2
    assert ingestor.last_status.code == "unchanged"
    assert not ingestor.busy


def test_lookup_fallback_for_unknown_name():
    ingestor = Ingestor(_fetcher(CSV_V1))
    asyncio.run(ingestor.refresh())

    found = ingestor.store.lookup("Tapalpa")
    missing = ingestor.store.lookup("Atlantis")

    assert found.found and found.latitude == 19.95
    assert not missing.found
    assert missing.name == "Atlantis"
    assert missing.latitude is None
    assert missing.travel_info == NOT_AVAILABLE
    assert missing.route_link == "#"


def test_unexpected_fetcher_exception_fails_cycle():
    ingestor = Ingestor(_fetcher(CSV_V1, ConnectionResetError("peer reset")))
    asyncio.run(ingestor.refresh())
    previous = ingestor.store.places

    status = asyncio.run(ingestor.refresh())

    assert status.code == "error"
    assert "ConnectionResetError" in status.message
    assert ingestor.last_status == status
    assert ingestor.store.places is previous
    assert ingestor.state is CycleState.IDLE
    assert not ingestor.busy


def test_unparseable_payload_fails_cycle():
    async def not_bytes():
        return None

    ingestor = Ingestor(not_bytes)
    status = asyncio.run(ingestor.refresh())

    assert status.code == "error"
    assert "could not be parsed" in status.message
    assert not ingestor.busy


def test_periodic_refresh_survives_failed_cycles():
    async def scenario():
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise OSError("network unreachable")
            return CSV_V1

        ingestor = Ingestor(flaky)
        task = ingestor.start(0.01)
        await asyncio.sleep(0.1)
        alive = not task.done()
        await ingestor.stop()
        return ingestor, len(calls), alive

    ingestor, calls, alive = asyncio.run(scenario())

    assert alive
    assert calls >= 2
    assert len(ingestor.store) == 2


def test_store_snapshot_pairs_records_with_hash():
    ingestor = Ingestor(_fetcher(CSV_V1, CSV_V2))
    asyncio.run(ingestor.refresh())
    first = ingestor.store.snapshot

    asyncio.run(ingestor.refresh())
    second = ingestor.store.snapshot

    assert first.batch_hash != second.batch_hash
    assert first.places["Tapalpa"].safety_advice == UNAVAILABLE
    assert second.places["Tapalpa"].safety_advice == "Viaja de día"
    assert second.batch_hash == ingestor.store.last_hash
