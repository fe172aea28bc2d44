"""Shared fixtures for stellar_stream tests."""

from __future__ import annotations

import pytest
from stellar_sdk import Keypair

from stellar_stream.api.streams import StreamAPI
from stellar_stream.indexer.indexer import EventIndexer
from stellar_stream.models.config import ConfirmationConfig, ServiceConfig
from stellar_stream.policy.validation import StreamInputValidator
from stellar_stream.storage.sqlite import SQLiteEventLog
from stellar_stream.streams.cache import StreamCache
from stellar_stream.streams.synchronizer import StreamSynchronizer

from tests.factories import SERVICE_SECRET, STREAM_CONTRACT, USDC_TOKEN, XLM_TOKEN
from tests.mocks import MockClock, MockLedger, RecordingSleep

TOKENS = {"USDC": USDC_TOKEN, "XLM": XLM_TOKEN}


def make_test_config(**overrides) -> ServiceConfig:
    """Build a ServiceConfig suitable for testing."""
    defaults = dict(
        sync_interval=1,
        rpc_url="https://soroban-testnet.stellar.org",
        network_passphrase="Test SDF Network ; September 2015",
        contract_id=STREAM_CONTRACT,
        signing_secret=SERVICE_SECRET,
        token_contracts=dict(TOKENS),
        db_path=":memory:",
    )
    defaults.update(overrides)
    return ServiceConfig(**defaults)


@pytest.fixture
def test_config():
    return make_test_config()


@pytest.fixture
def clock():
    return MockClock(now=1_000)


@pytest.fixture
def sleep(clock):
    """Recording sleep that advances the mock clock."""
    return RecordingSleep(clock)


@pytest.fixture
def cache():
    return StreamCache()


@pytest.fixture
def ledger():
    return MockLedger()


@pytest.fixture
def keypair():
    return Keypair.from_secret(SERVICE_SECRET)


@pytest.fixture
async def event_log():
    """Initialized in-memory SQLiteEventLog."""
    log = SQLiteEventLog(":memory:")
    await log.initialize()
    yield log
    await log.close()


@pytest.fixture
def synchronizer(cache, clock, ledger, keypair, event_log, sleep):
    """Synchronizer wired to the mock ledger, with 10 x 1s confirmation polling."""
    return StreamSynchronizer(
        cache=cache,
        clock=clock,
        ledger=ledger,
        keypair=keypair,
        token_contracts=TOKENS,
        confirmation=ConfirmationConfig(attempts=10, interval=1.0),
        snapshot_store=event_log,
        sleep=sleep,
    )


@pytest.fixture
def indexer(ledger, event_log):
    return EventIndexer(
        ledger=ledger,
        event_log=event_log,
        contract_id=STREAM_CONTRACT,
        backfill_ledgers=100,
    )


@pytest.fixture
def api(cache, synchronizer, clock, event_log, indexer):
    return StreamAPI(
        cache=cache,
        synchronizer=synchronizer,
        validator=StreamInputValidator(["USDC", "XLM"]),
        clock=clock,
        event_log=event_log,
        indexer=indexer,
    )
