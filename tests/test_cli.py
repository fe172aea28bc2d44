"""CLI commands that run without a ledger connection."""

from __future__ import annotations

import pytest
from click.testing import CliRunner

from stellar_stream.cli import cli

from tests.factories import STREAM_CONTRACT


@pytest.fixture
def runner(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for name in ("SECRET", "CONTRACT_ID", "NETWORK", "RPC_URL", "ALLOWED_ASSETS"):
        monkeypatch.delenv(f"STELLAR_STREAM_{name}", raising=False)
    monkeypatch.setenv("STELLAR_STREAM_DB_PATH", str(tmp_path / "streams.db"))
    return CliRunner()


def test_status_shows_configuration(runner):
    result = runner.invoke(cli, ["status"])

    assert result.exit_code == 0
    assert "Network:    testnet" in result.output
    assert "(not set)" in result.output


def test_run_requires_contract(runner):
    result = runner.invoke(cli, ["run"])

    assert result.exit_code == 1
    assert "No contract ID configured" in result.output


def test_create_requires_secret(runner, monkeypatch):
    monkeypatch.setenv("STELLAR_STREAM_CONTRACT_ID", STREAM_CONTRACT)

    result = runner.invoke(cli, [
        "create", "--sender", "G", "--recipient", "G", "--asset", "USDC",
        "--amount", "1", "--duration", "60",
    ])

    assert result.exit_code == 1
    assert "No signing secret configured" in result.output


def test_streams_empty_cache(runner):
    result = runner.invoke(cli, ["streams"])

    assert result.exit_code == 0
    assert "No streams." in result.output


def test_streams_json(runner):
    result = runner.invoke(cli, ["streams", "--json"])

    assert result.exit_code == 0
    assert "[]" in result.output


def test_history_for_unknown_stream(runner):
    result = runner.invoke(cli, ["history", "3"])

    assert result.exit_code == 0
    assert "No events for stream 3." in result.output
