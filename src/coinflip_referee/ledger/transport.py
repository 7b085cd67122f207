"""Solana RPC transport - thin adapter over solana-py's AsyncClient."""

from __future__ import annotations

import logging
import re
from typing import Sequence

import httpx
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solana.rpc.core import RPCException, UnconfirmedTxError
from solana.rpc.types import TxOpts
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction

from coinflip_referee.errors import TransportError
from coinflip_referee.models.records import TxResult

log = logging.getLogger(__name__)

# Custom error codes of the coinflip program (Anchor numbers them from 6000).
GAME_PROGRAM_ERRORS = {
    6000: "invalid_stake",
    6001: "bad_status",
    6002: "already_joined",
    6003: "not_player",
    6004: "invalid_choice",
    6005: "bad_reveal",
    6006: "already_revealed",
    6007: "too_early",
    6008: "not_ready",
}

# Anchor framework errors meaning the instruction bytes did not match the
# program's entry points or argument layout.
_ABI_MISMATCH_CODES = {100, 101, 102, 103}
_ABI_MISMATCH_NAMES = {
    "InstructionMissing",
    "InstructionFallbackNotFound",
    "InstructionDidNotDeserialize",
    "InstructionDidNotSerialize",
}

_CUSTOM_CODE_RE = re.compile(r"custom program error: 0x([0-9a-fA-F]+)")
_ANCHOR_CODE_RE = re.compile(r"Error Code: (\w+)\. Error Number: (\d+)")
_TRANSPORT_ERRORS = (SolanaRpcException, httpx.HTTPError, OSError)


def _snake(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def classify_program_error(message: str, logs: Sequence[str] = ()) -> str:
    """Map an RPC error message and program logs to a short error kind."""
    text = "\n".join([message, *logs])

    if m := _ANCHOR_CODE_RE.search(text):
        name, number = m.group(1), int(m.group(2))
        if name in _ABI_MISMATCH_NAMES or number in _ABI_MISMATCH_CODES:
            return "abi_mismatch"
        return GAME_PROGRAM_ERRORS.get(number, _snake(name))

    if m := _CUSTOM_CODE_RE.search(text):
        code = int(m.group(1), 16)
        if code in _ABI_MISMATCH_CODES:
            return "abi_mismatch"
        return GAME_PROGRAM_ERRORS.get(code, f"custom_{code}")

    lowered = text.lower()
    if "insufficient lamports" in lowered or "no record of a prior credit" in lowered:
        return "insufficient_funds"
    if "already in use" in lowered:
        return "account_in_use"
    if "blockhash not found" in lowered:
        return "blockhash_expired"
    return "unknown"


def _preflight_logs(exc: RPCException) -> list[str]:
    """Pull simulation logs out of a preflight failure, if the node sent any."""
    err = exc.args[0] if exc.args else None
    data = getattr(err, "data", None)
    logs = getattr(data, "logs", None)
    return list(logs or [])


def _rpc_message(exc: RPCException) -> str:
    err = exc.args[0] if exc.args else None
    return str(getattr(err, "message", None) or exc)


class SolanaTransport:
    """LedgerTransport backed by a Solana JSON-RPC endpoint.

    No retries beyond what the RPC client does itself: a rejected
    instruction is reported as-is and a dead endpoint raises TransportError.
    """

    def __init__(self, rpc_url: str, commitment: str = "confirmed", timeout: float = 30) -> None:
        self._rpc_url = rpc_url
        self._commitment = Commitment(commitment)
        self._client = AsyncClient(rpc_url, commitment=self._commitment, timeout=timeout)

    @property
    def endpoint(self) -> str:
        return self._rpc_url

    async def close(self) -> None:
        await self._client.close()

    # ── Reads ──────────────────────────────────────────────

    async def get_balance(self, pubkey: Pubkey) -> int:
        try:
            resp = await self._client.get_balance(pubkey, self._commitment)
        except _TRANSPORT_ERRORS as exc:
            raise TransportError(f"get_balance({pubkey}) failed: {exc}") from exc
        return resp.value

    async def get_slot(self) -> int:
        try:
            resp = await self._client.get_slot(self._commitment)
        except _TRANSPORT_ERRORS as exc:
            raise TransportError(f"get_slot failed: {exc}") from exc
        return resp.value

    async def get_account_data(self, pubkey: Pubkey) -> bytes | None:
        try:
            resp = await self._client.get_account_info(pubkey, self._commitment)
        except _TRANSPORT_ERRORS as exc:
            raise TransportError(f"get_account_info({pubkey}) failed: {exc}") from exc
        if resp.value is None:
            return None
        return bytes(resp.value.data)

    # ── Writes ─────────────────────────────────────────────

    async def send(
        self, instructions: Sequence[Instruction], signers: Sequence[Keypair]
    ) -> TxResult:
        """Sign, submit with preflight, and wait for confirmation."""
        if not signers:
            raise ValueError("at least one signer (the fee payer) is required")
        payer = signers[0].pubkey()

        try:
            blockhash = (await self._client.get_latest_blockhash(self._commitment)).value.blockhash
            tx = Transaction.new_signed_with_payer(
                list(instructions), payer, list(signers), blockhash
            )
            resp = await self._client.send_raw_transaction(
                bytes(tx),
                opts=TxOpts(skip_preflight=False, preflight_commitment=self._commitment),
            )
        except RPCException as exc:
            logs = _preflight_logs(exc)
            message = _rpc_message(exc)
            kind = classify_program_error(message, logs)
            log.warning("Transaction rejected in preflight: %s (%s)", kind, message)
            for line in logs:
                log.debug("  %s", line)
            return TxResult(success=False, error=message, error_kind=kind, logs=logs)
        except _TRANSPORT_ERRORS as exc:
            log.error("Transaction submission failed: %s", exc)
            return TxResult(success=False, error=str(exc), error_kind="transport")

        signature = resp.value
        sig_str = str(signature)
        log.debug("Sent %s, awaiting %s confirmation", sig_str[:16], self._commitment)

        try:
            conf = await self._client.confirm_transaction(signature, self._commitment)
        except UnconfirmedTxError as exc:
            return TxResult(
                success=False, signature=sig_str, error=str(exc), error_kind="unconfirmed",
            )
        except _TRANSPORT_ERRORS as exc:
            return TxResult(
                success=False, signature=sig_str, error=str(exc), error_kind="transport",
            )

        status = conf.value[0] if conf.value else None
        if status is not None and status.err is not None:
            message = str(status.err)
            logs = await self._transaction_logs(signature)
            kind = classify_program_error(message, logs)
            log.warning("Transaction %s failed on-chain: %s (%s)", sig_str[:16], kind, message)
            for line in logs:
                log.debug("  %s", line)
            return TxResult(
                success=False,
                signature=sig_str,
                error=message,
                error_kind=kind,
                logs=logs,
            )

        return TxResult(success=True, signature=sig_str)

    async def _transaction_logs(self, signature: Signature) -> list[str]:
        """Program logs of a landed transaction, or [] if the node has none."""
        try:
            resp = await self._client.get_transaction(
                signature, commitment=self._commitment, max_supported_transaction_version=0,
            )
        except (RPCException, *_TRANSPORT_ERRORS) as exc:
            log.warning("Could not fetch logs for %s: %s", str(signature)[:16], exc)
            return []
        meta = resp.value.transaction.meta if resp.value is not None else None
        return list(meta.log_messages or []) if meta is not None else []

    async def request_airdrop(self, pubkey: Pubkey, lamports: int) -> TxResult:
        try:
            resp = await self._client.request_airdrop(pubkey, lamports, self._commitment)
            signature = resp.value
            await self._client.confirm_transaction(signature, self._commitment)
        except RPCException as exc:
            return TxResult(success=False, error=_rpc_message(exc), error_kind="airdrop_unsupported")
        except (UnconfirmedTxError, *_TRANSPORT_ERRORS) as exc:
            return TxResult(success=False, error=str(exc), error_kind="transport")
        return TxResult(success=True, signature=str(signature))
