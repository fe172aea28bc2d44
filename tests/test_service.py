"""Service wiring: bootstrap, ledger configuration and shutdown."""

from __future__ import annotations

from functools import partial

import pytest

from stellar_stream.errors import ConfigurationError, LedgerError
from stellar_stream.service import StreamService
from stellar_stream.stellar.client import SorobanLedgerClient

from tests.conftest import make_test_config
from tests.factories import make_chain_stream, make_stream
from tests.mocks import MockClock, MockLedger


@pytest.fixture
def mock_ledger():
    ledger = MockLedger()
    ledger.add_stream(make_chain_stream(1))
    return ledger


# ── Soroban bootstrap ─────────────────────────────────────────────


def test_init_soroban_requires_rpc_url():
    service = StreamService(make_test_config(rpc_url=""))

    with pytest.raises(ConfigurationError):
        service.init_soroban()


def test_init_soroban_without_contract_disables_sync():
    service = StreamService(make_test_config(contract_id=""))

    assert service.init_soroban() is False
    assert service.ledger is None
    assert not service.synchronizer.ledger_enabled


async def test_init_soroban_builds_rpc_client():
    service = StreamService(make_test_config())

    assert service.init_soroban() is True
    assert isinstance(service.ledger, SorobanLedgerClient)
    assert service.synchronizer.ledger_enabled

    await service.ledger.close()


def test_passphrase_falls_back_to_network_name():
    service = StreamService(make_test_config(network="mainnet", network_passphrase=""))
    assert service.passphrase == "Public Global Stellar Network ; September 2015"


# ── Lifecycle ─────────────────────────────────────────────────────


async def test_bootstrap_with_injected_ledger(mock_ledger):
    service = StreamService(make_test_config(), clock=MockClock(now=1_500))
    await service.store.initialize()
    service.init_soroban(ledger=mock_ledger)

    assert (await service.synchronizer.sync_streams()).synced == 1
    assert await service.init_indexer() is True

    await service.indexer.tick()
    assert service.indexer.cursor == mock_ledger.latest_ledger
    assert service.api.get_stream("1") is not None

    await service.shutdown()


async def test_initialize_without_contract_keeps_cache_readable(tmp_path):
    cfg = make_test_config(contract_id="", db_path=str(tmp_path / "streams.db"))
    seed = StreamService(cfg)
    await seed.store.initialize()
    await seed.store.save_stream(make_stream(id="5"))
    await seed.store.close()

    service = StreamService(cfg)
    await service.initialize()

    assert service.ledger is None
    assert service.indexer is None
    assert service.api.get_stream("5") is not None

    await service.shutdown()


async def test_initialize_survives_missing_rpc_url():
    service = StreamService(make_test_config(rpc_url=""))

    await service.initialize()

    assert service.ledger is None
    await service.shutdown()


async def test_initialize_survives_unreadable_stream_count(mock_ledger):
    mock_ledger.count_error = LedgerError("get_next_stream_id simulation error: HostError")
    service = StreamService(make_test_config())
    service.init_soroban = partial(service.init_soroban, ledger=mock_ledger)

    await service.initialize()

    assert service.ledger is mock_ledger
    assert len(service.cache) == 0
    assert service.indexer is not None
    await service.shutdown()


async def test_start_closes_store_when_initialize_fails(monkeypatch):
    service = StreamService(make_test_config())

    async def broken_indexer():
        raise RuntimeError("boom")

    monkeypatch.setattr(service, "init_indexer", broken_indexer)
    monkeypatch.setattr(service, "init_soroban", lambda: False)

    with pytest.raises(RuntimeError):
        await service.start()

    assert service.store._db is None


async def test_indexer_disabled_by_config(mock_ledger):
    cfg = make_test_config()
    cfg.indexer.enabled = False
    service = StreamService(cfg)
    await service.store.initialize()
    service.init_soroban(ledger=mock_ledger)

    assert await service.init_indexer() is False

    await service.shutdown()


async def test_stop_ends_sync_loop(mock_ledger):
    service = StreamService(make_test_config(sync_interval=3600))
    await service.store.initialize()
    service.init_soroban(ledger=mock_ledger)
    service._running = True

    await service.stop()
    await service._sync_loop()

    assert len(service.cache) == 0
    await service.shutdown()
