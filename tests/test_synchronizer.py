"""Reconciliation against the ledger and local cache mutations."""

from __future__ import annotations

from decimal import Decimal

import pytest

from stellar_stream.errors import DecodeError, LedgerError, ValidationError
from stellar_stream.models.records import StreamStatus
from stellar_stream.streams.cache import StreamCache
from stellar_stream.streams.progress import compute_status
from stellar_stream.streams.synchronizer import StreamSynchronizer

from tests.factories import (
    RECIPIENT,
    SENDER,
    STREAM_CONTRACT,
    UNIT,
    XLM_TOKEN,
    make_chain_stream,
    make_stream,
)


# ── Reconciliation ────────────────────────────────────────────────


async def test_sync_populates_cache_from_ledger(synchronizer, ledger, cache, clock):
    ledger.add_stream(make_chain_stream(1, total_amount=100 * UNIT, start_time=1_000, end_time=2_000))
    ledger.add_stream(make_chain_stream(2, token=XLM_TOKEN, total_amount=5 * UNIT + 5,
                                        start_time=1_500, end_time=1_600))

    report = await synchronizer.sync_streams()

    assert report.total == 2
    assert report.synced == 2
    assert report.failed == 0
    assert not report.skipped

    first = cache.get("1")
    assert first.sender == SENDER
    assert first.recipient == RECIPIENT
    assert first.asset_code == "USDC"
    assert first.total_amount == Decimal(100)
    assert first.start_at == 1_000
    assert first.duration_seconds == 1_000
    assert first.created_at == clock.now()
    assert first.canceled_at is None

    second = cache.get("2")
    assert second.asset_code == "XLM"
    assert second.total_amount == Decimal("5.0000005")
    assert second.duration_seconds == 100


async def test_sync_is_idempotent(synchronizer, ledger, cache, clock):
    """A second pass with no ledger change leaves the cache identical."""
    ledger.add_stream(make_chain_stream(1))
    ledger.add_stream(make_chain_stream(2, canceled=True))
    ledger.add_stream(make_chain_stream(3, claimed_amount=100 * UNIT))

    await synchronizer.sync_streams()
    first = {s.id: s for s in cache.snapshot()}

    clock.advance(3_600)
    await synchronizer.sync_streams()
    second = {s.id: s for s in cache.snapshot()}

    assert first == second


async def test_sync_tolerates_single_index_failure(synchronizer, ledger, cache):
    for i in (1, 2, 3):
        ledger.add_stream(make_chain_stream(i))
    ledger.failing_indices.add(2)

    report = await synchronizer.sync_streams()

    assert report.total == 3
    assert report.synced == 2
    assert report.failed == 1
    assert report.failed_ids == [2]
    assert "1" in cache
    assert "2" not in cache
    assert "3" in cache


async def test_sync_skipped_when_ledger_unavailable(synchronizer, ledger, cache):
    cache.init([make_stream(id="7")])
    ledger.unavailable = True

    report = await synchronizer.sync_streams()

    assert report.skipped
    assert [s.id for s in cache.snapshot()] == ["7"]


@pytest.mark.parametrize(
    "error",
    [LedgerError("get_next_stream_id simulation error: HostError"), DecodeError("bad count")],
)
async def test_sync_skipped_when_count_unreadable(synchronizer, ledger, cache, error):
    cache.init([make_stream(id="7")])
    ledger.add_stream(make_chain_stream(1))
    ledger.count_error = error

    report = await synchronizer.sync_streams()

    assert report.skipped
    assert [s.id for s in cache.snapshot()] == ["7"]


async def test_sync_without_ledger_is_skipped(cache, clock):
    sync = StreamSynchronizer(cache=cache, clock=clock)

    report = await sync.sync_streams()

    assert report.skipped
    assert not sync.ledger_enabled


async def test_sync_replaces_stale_entries(synchronizer, ledger, cache):
    cache.init([make_stream(id="1", total_amount=1, created_at=42)])
    ledger.add_stream(make_chain_stream(1, total_amount=50 * UNIT))

    await synchronizer.sync_streams()

    record = cache.get("1")
    assert record.total_amount == Decimal(50)
    assert record.created_at == 42


async def test_sync_marks_ledger_cancellation(synchronizer, ledger, cache, clock):
    ledger.add_stream(make_chain_stream(1, canceled=True))

    await synchronizer.sync_streams()

    record = cache.get("1")
    assert record.canceled_at == clock.now()
    assert compute_status(record, clock.now()) == StreamStatus.CANCELED


async def test_sync_marks_fully_claimed_stream_completed(synchronizer, ledger, cache, clock):
    """A fully claimed stream is completed even before its end time."""
    ledger.add_stream(make_chain_stream(1, claimed_amount=100 * UNIT, start_time=900, end_time=5_000))

    await synchronizer.sync_streams()

    record = cache.get("1")
    assert record.completed_at == clock.now()
    assert compute_status(record, clock.now()) == StreamStatus.COMPLETED


async def test_sync_preserves_local_cancellation(synchronizer, ledger, cache, clock):
    ledger.add_stream(make_chain_stream(1))
    await synchronizer.sync_streams()

    await synchronizer.cancel_stream("1")
    clock.advance(10)
    await synchronizer.sync_streams()

    assert cache.get("1").canceled_at == 1_000


async def test_unknown_token_falls_back_to_contract_id(synchronizer, ledger, cache):
    ledger.add_stream(make_chain_stream(1, token=STREAM_CONTRACT))

    await synchronizer.sync_streams()

    assert cache.get("1").asset_code == STREAM_CONTRACT


async def test_sync_persists_changed_records(synchronizer, ledger, event_log):
    ledger.add_stream(make_chain_stream(1))

    await synchronizer.sync_streams()

    saved = await event_log.load_streams()
    assert [s.id for s in saved] == ["1"]


async def test_readers_see_old_snapshot_during_sync(synchronizer, ledger, cache):
    """Snapshots taken before a pass are unaffected by it."""
    cache.init([make_stream(id="1", total_amount=1)])
    before = cache.snapshot()
    ledger.add_stream(make_chain_stream(1, total_amount=9 * UNIT))

    await synchronizer.sync_streams()

    assert before[0].total_amount == Decimal(1)
    assert cache.get("1").total_amount == Decimal(9)


# ── Local cancellation ────────────────────────────────────────────


async def test_cancel_stream_sets_timestamp(synchronizer, cache, clock):
    cache.init([make_stream(id="1", start_at=900)])

    record = await synchronizer.cancel_stream("1")

    assert record.canceled_at == clock.now()
    assert cache.get("1").canceled_at == clock.now()


async def test_cancel_is_idempotent(synchronizer, cache, clock):
    cache.init([make_stream(id="1")])
    first = await synchronizer.cancel_stream("1")
    clock.advance(100)

    second = await synchronizer.cancel_stream("1")

    assert second.canceled_at == first.canceled_at


async def test_cancel_unknown_stream_returns_none(synchronizer):
    assert await synchronizer.cancel_stream("404") is None


# ── Start time updates ────────────────────────────────────────────


async def test_update_start_at_moves_scheduled_stream(synchronizer, cache, event_log):
    cache.init([make_stream(id="1", start_at=5_000)])

    record = await synchronizer.update_start_at("1", 6_000)

    assert record.start_at == 6_000
    assert cache.get("1").start_at == 6_000
    assert (await event_log.load_streams())[0].start_at == 6_000


async def test_update_start_at_rejects_past_time(synchronizer, cache, clock):
    cache.init([make_stream(id="1", start_at=5_000)])

    with pytest.raises(ValidationError):
        await synchronizer.update_start_at("1", clock.now())

    assert cache.get("1").start_at == 5_000


async def test_update_start_at_rejects_active_stream(synchronizer, cache):
    cache.init([make_stream(id="1", start_at=900, duration_seconds=1_000)])

    with pytest.raises(ValidationError) as exc_info:
        await synchronizer.update_start_at("1", 9_000)

    assert exc_info.value.issues[0][0] == "startAt"


async def test_update_start_at_unknown_stream(synchronizer):
    assert await synchronizer.update_start_at("99", 9_000) is None


async def test_moved_start_time_survives_sync(synchronizer, ledger, cache, event_log):
    ledger.add_stream(make_chain_stream(1, start_time=5_000, end_time=6_000))
    await synchronizer.sync_streams()

    await synchronizer.update_start_at("1", 8_000)
    await synchronizer.sync_streams()

    record = cache.get("1")
    assert record.start_at == 8_000
    assert record.duration_seconds == 1_000
    assert record.local_start_at == 8_000
    assert (await event_log.load_streams())[0].start_at == 8_000


async def test_unmoved_stream_follows_ledger_start_time(synchronizer, ledger, cache):
    ledger.add_stream(make_chain_stream(1, start_time=5_000, end_time=6_000))
    await synchronizer.sync_streams()

    ledger.add_stream(make_chain_stream(1, start_time=7_000, end_time=8_000))
    await synchronizer.sync_streams()

    assert cache.get("1").start_at == 7_000
    assert cache.get("1").local_start_at is None


# ── Cache ─────────────────────────────────────────────────────────


def test_cache_init_and_reset():
    cache = StreamCache()
    cache.init([make_stream(id="1"), make_stream(id="2")])

    assert len(cache) == 2
    cache.reset()
    assert len(cache) == 0
    assert cache.get("1") is None
