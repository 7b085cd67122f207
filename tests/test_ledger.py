"""Key files, funding and RPC error classification."""

from __future__ import annotations

import json
from types import SimpleNamespace

import httpx
import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.signature import Signature

from coinflip_referee.errors import ConfigError, FundingError
from coinflip_referee.ledger.funding import ensure_funded, manual_transfer_command
from coinflip_referee.ledger.keys import load_keypair, save_keypair
from coinflip_referee.ledger.transport import SolanaTransport, classify_program_error
from coinflip_referee.protocol.addresses import oracle_request_address
from coinflip_referee.protocol.instructions import reclaim_accounts_ix

from tests.conftest import ORACLE_PROGRAM_ID


# ── Key files ─────────────────────────────────────────────────────


def test_keypair_file_roundtrip(tmp_path):
    kp = Keypair()
    path = save_keypair(kp, tmp_path / "id.json")
    assert len(json.loads(path.read_text())) == 64
    assert load_keypair(path).pubkey() == kp.pubkey()


def test_missing_key_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_keypair(tmp_path / "missing.json")


def test_malformed_key_file(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("[1, 2, 3]")
    with pytest.raises(ConfigError, match="64 bytes"):
        load_keypair(path)


# ── Funding ───────────────────────────────────────────────────────


def test_manual_transfer_command():
    kp = Keypair()
    cmd = manual_transfer_command(kp.pubkey(), 200_000_000, "https://rpc.ambient.xyz")
    assert cmd == (
        f"solana transfer {kp.pubkey()} 0.2 --allow-unfunded-recipient "
        "--url https://rpc.ambient.xyz"
    )


async def test_funded_account_is_left_alone(ledger, joiner):
    balance = await ensure_funded(ledger, joiner.pubkey(), 100_000_000, 200_000_000, settle_delay=0)
    assert balance == ledger.balances[joiner.pubkey()]
    assert ledger.airdrops == []


async def test_airdrop_tops_up_empty_account(ledger):
    pk = Keypair().pubkey()
    balance = await ensure_funded(ledger, pk, 100_000_000, 200_000_000, settle_delay=0)
    assert balance == 200_000_000
    assert ledger.airdrops == [(pk, 200_000_000)]


async def test_airdrop_unsupported_gives_remediation(ledger):
    ledger.airdrop_supported = False
    pk = Keypair().pubkey()
    with pytest.raises(FundingError) as exc_info:
        await ensure_funded(ledger, pk, 100_000_000, 200_000_000, settle_delay=0)
    assert exc_info.value.remediation == manual_transfer_command(pk, 200_000_000, ledger.endpoint)


async def test_airdrop_too_small(ledger):
    pk = Keypair().pubkey()
    with pytest.raises(FundingError, match="still holds"):
        await ensure_funded(ledger, pk, 500_000_000, 200_000_000, settle_delay=0)


# ── Error classification ──────────────────────────────────────────


@pytest.mark.parametrize("code,kind", [
    (6000, "invalid_stake"),
    (6001, "bad_status"),
    (6002, "already_joined"),
    (6003, "not_player"),
    (6004, "invalid_choice"),
    (6005, "bad_reveal"),
    (6006, "already_revealed"),
    (6007, "too_early"),
    (6008, "not_ready"),
])
def test_game_program_codes(code, kind):
    message = f"Transaction simulation failed: custom program error: {hex(code)}"
    assert classify_program_error(message) == kind


def test_anchor_log_line_wins():
    logs = [
        "Program log: AnchorError occurred. Error Code: BadReveal. Error Number: 6005. "
        "Error Message: Bad reveal.",
    ]
    assert classify_program_error("custom program error: 0x1775", logs) == "bad_reveal"


@pytest.mark.parametrize("name,number", [
    ("InstructionFallbackNotFound", 101),
    ("InstructionDidNotDeserialize", 102),
])
def test_abi_mismatch(name, number):
    logs = [f"Program log: AnchorError occurred. Error Code: {name}. Error Number: {number}."]
    assert classify_program_error("failed", logs) == "abi_mismatch"
    assert classify_program_error(f"custom program error: {hex(number)}") == "abi_mismatch"


@pytest.mark.parametrize("message,kind", [
    ("Transfer: insufficient lamports 10, need 50000000", "insufficient_funds"),
    ("Attempt to debit an account but found no record of a prior credit.", "insufficient_funds"),
    ("Allocate: account Address { .. } already in use", "account_in_use"),
    ("Blockhash not found", "blockhash_expired"),
    ("something else entirely", "unknown"),
])
def test_textual_errors(message, kind):
    assert classify_program_error(message) == kind


# ── On-chain failures ─────────────────────────────────────────────


class _StubRpc:
    """Stands in for AsyncClient: preflight passes, execution fails on-chain."""

    def __init__(self, err, log_messages, logs_error=None):
        self._err = err
        self._log_messages = log_messages
        self._logs_error = logs_error
        self.transaction_lookups = []

    async def get_latest_blockhash(self, commitment=None):
        return SimpleNamespace(value=SimpleNamespace(blockhash=Hash.default()))

    async def send_raw_transaction(self, txn, opts=None):
        return SimpleNamespace(value=Signature.default())

    async def confirm_transaction(self, signature, commitment=None):
        return SimpleNamespace(value=[SimpleNamespace(err=self._err)])

    async def get_transaction(self, signature, commitment=None, max_supported_transaction_version=None):
        self.transaction_lookups.append(signature)
        if self._logs_error is not None:
            raise self._logs_error
        meta = SimpleNamespace(log_messages=self._log_messages)
        return SimpleNamespace(value=SimpleNamespace(transaction=SimpleNamespace(meta=meta)))

    async def close(self):
        pass


def _transport_with(stub):
    transport = SolanaTransport("http://mock-rpc")
    transport._client = stub
    return transport


def _reclaim_ix(payer):
    request, _ = oracle_request_address(ORACLE_PROGRAM_ID, payer.pubkey())
    return reclaim_accounts_ix(ORACLE_PROGRAM_ID, request, payer.pubkey(), payer.pubkey())


async def test_onchain_failure_is_classified_from_transaction_logs():
    payer = Keypair()
    stub = _StubRpc(
        err="InstructionError(0, Custom(102))",
        log_messages=[
            f"Program {ORACLE_PROGRAM_ID} invoke [1]",
            "Program log: AnchorError occurred. Error Code: InstructionDidNotDeserialize. "
            "Error Number: 102. Error Message: The program could not deserialize the given instruction.",
        ],
    )

    result = await _transport_with(stub).send([_reclaim_ix(payer)], [payer])

    assert not result.success
    assert result.error_kind == "abi_mismatch"
    assert any("InstructionDidNotDeserialize" in line for line in result.logs)
    assert result.signature == str(Signature.default())
    assert stub.transaction_lookups == [Signature.default()]


async def test_onchain_failure_without_logs_still_reported():
    payer = Keypair()
    stub = _StubRpc(err="InstructionError(0, Custom(1))", log_messages=None,
                    logs_error=httpx.ConnectError("gone"))

    result = await _transport_with(stub).send([_reclaim_ix(payer)], [payer])

    assert not result.success
    assert result.error_kind == "unknown"
    assert result.logs == []
