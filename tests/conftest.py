"""Shared fixtures for coinflip_referee tests."""

from __future__ import annotations

import pytest
from pytest_metadata.plugin import metadata_key
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from coinflip_referee.game.orchestrator import GameOrchestrator
from coinflip_referee.ledger.keys import save_keypair
from coinflip_referee.models.config import (
    DEFAULT_ORACLE_PROGRAM_ID,
    DEFAULT_PROGRAM_ID,
    DEFAULT_RPC_URL,
    OracleConfig,
    RunnerConfig,
)
from coinflip_referee.oracle.client import OracleClient
from coinflip_referee.storage.sqlite import SQLiteRoundStore

from tests.mocks import MockLedger

PROGRAM_ID = Pubkey.from_string(DEFAULT_PROGRAM_ID)
ORACLE_PROGRAM_ID = Pubkey.from_string(DEFAULT_ORACLE_PROGRAM_ID)

STAKE = 50_000_000  # 0.05 SOL
STARTING_BALANCE = 10_000_000_000

EXPLORER_BASE = "https://explorer.solana.com"


def explorer_link(kind: str, id: str, label: str | None = None) -> str:
    """Build an HTML anchor to the Solana explorer for the report."""
    url = f"{EXPLORER_BASE}/{kind}/{id}?cluster=custom&customUrl={DEFAULT_RPC_URL}"
    text = label or f"{id[:8]}...{id[-4:]}"
    return f'<a href="{url}" target="_blank">{text}</a>'


# ── Report metadata & explorer links ─────────────────────────────


def pytest_configure(config):
    """Add program info to the HTML report Environment table."""
    meta = config.stash.setdefault(metadata_key, {})
    meta["RPC"] = DEFAULT_RPC_URL
    meta["Coinflip Program"] = DEFAULT_PROGRAM_ID
    meta["Tool Oracle Program"] = DEFAULT_ORACLE_PROGRAM_ID


def pytest_html_results_summary(prefix, summary, postfix):
    """Inject program explorer links into the report summary."""
    prefix.append(
        '<div style="margin:8px 0;padding:10px;background:#f8f9fa;border:1px solid #dee2e6;'
        'border-radius:4px;font-family:monospace;font-size:13px;">'
        "<strong>Explorer Links</strong><br/>"
        f'Coinflip: {explorer_link("address", DEFAULT_PROGRAM_ID, DEFAULT_PROGRAM_ID)}<br/>'
        f'Tool Oracle: {explorer_link("address", DEFAULT_ORACLE_PROGRAM_ID, DEFAULT_ORACLE_PROGRAM_ID)}'
        "</div>"
    )


def make_test_config(**overrides) -> RunnerConfig:
    """Build a RunnerConfig suitable for testing."""
    defaults = dict(
        rpc_url="http://mock-rpc",
        wallet_path="",
        joiner_wallet_path="",
        stake_lamports=STAKE,
        reveal_deadline_slots=500,
        artifacts_dir="artifacts",
        db_path=":memory:",
        oracle=OracleConfig(poll_interval=0, timeout=None, max_attempts=10),
    )
    defaults.update(overrides)
    return RunnerConfig(**defaults)


@pytest.fixture
def creator():
    return Keypair()


@pytest.fixture
def joiner():
    return Keypair()


@pytest.fixture
def ledger(creator, joiner):
    """MockLedger with both players funded."""
    mock = MockLedger(PROGRAM_ID, ORACLE_PROGRAM_ID)
    mock.balances[creator.pubkey()] = STARTING_BALANCE
    mock.balances[joiner.pubkey()] = STARTING_BALANCE
    return mock


@pytest.fixture
async def store():
    """Initialized in-memory SQLiteRoundStore."""
    s = SQLiteRoundStore(":memory:")
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
def orchestrator(ledger, creator, joiner, store):
    return GameOrchestrator(ledger, PROGRAM_ID, creator, joiner, store=store)


@pytest.fixture
def oracle_config():
    return OracleConfig(poll_interval=0, timeout=None, max_attempts=10)


@pytest.fixture
def oracle(ledger, creator, oracle_config, store):
    return OracleClient(ledger, ORACLE_PROGRAM_ID, creator, oracle_config, store=store)


@pytest.fixture
def test_config(tmp_path, creator, joiner):
    """RunnerConfig with key files on disk and artifacts under tmp_path."""
    return make_test_config(
        wallet_path=str(save_keypair(creator, tmp_path / "creator.json")),
        joiner_wallet_path=str(save_keypair(joiner, tmp_path / "joiner.json")),
        artifacts_dir=str(tmp_path / "artifacts"),
    )
