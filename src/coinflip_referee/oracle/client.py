"""Tool-oracle client - asks an external model to judge a completed round."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from typing import Sequence

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from coinflip_referee.errors import (
    OracleCancelledError,
    OracleError,
    OracleTimeoutError,
    TransportError,
)
from coinflip_referee.interfaces.ledger import LedgerTransport
from coinflip_referee.interfaces.store import RoundStore
from coinflip_referee.models.config import OracleConfig
from coinflip_referee.models.records import (
    EvidenceBundle,
    OracleRequestHandle,
    RefereeRecord,
    VerdictResult,
)
from coinflip_referee.protocol.addresses import oracle_output_address, oracle_request_address
from coinflip_referee.protocol.instructions import create_request_ix, reclaim_accounts_ix

log = logging.getLogger(__name__)

VERDICT_PATTERN = "^(VALID|CHEAT)$"


def build_prompt(evidence: EvidenceBundle) -> str:
    return (
        f"Verify Coinflip Game {evidence.game}: Result {evidence.coin}, "
        f"Winner {evidence.winner}. Players: creator {evidence.creator}, "
        f"joiner {evidence.joiner}. Respond VALID or CHEAT."
    )


def match_verdict(text: str, terminal_tokens: Sequence[str]) -> str | None:
    """Return the terminal token that occurs first in `text` as a whole word.

    A token embedded in a longer word does not count, so "INVALID" never
    matches "VALID".
    """
    best: tuple[int, str] | None = None
    for token in terminal_tokens:
        m = re.search(rf"(?<![A-Za-z0-9_]){re.escape(token)}(?![A-Za-z0-9_])", text)
        if m and (best is None or m.start() < best[0]):
            best = (m.start(), token)
    return best[1] if best else None


class OracleClient:
    """Submits verification requests and polls for the verdict.

    The request and output accounts are derived from the payer, so each payer
    can have only one request outstanding. A leftover request from an earlier
    run must be reclaimed before a new one can be created.
    """

    def __init__(
        self,
        transport: LedgerTransport,
        oracle_program_id: Pubkey,
        payer: Keypair,
        config: OracleConfig | None = None,
        store: RoundStore | None = None,
    ) -> None:
        self._transport = transport
        self._program_id = oracle_program_id
        self._payer = payer
        self._config = config or OracleConfig()
        self._store = store

        payer_pk = payer.pubkey()
        self.request_address, _ = oracle_request_address(oracle_program_id, payer_pk)
        self.output_address, _ = oracle_output_address(oracle_program_id, payer_pk)

    async def has_pending_request(self) -> bool:
        return await self._transport.get_account_data(self.request_address) is not None

    async def reclaim(self) -> str | None:
        """Close an outstanding request account. Returns the tx, or None if there was none."""
        if not await self.has_pending_request():
            log.info("Oracle request account %s already empty", str(self.request_address)[:8])
            return None

        payer = self._payer.pubkey()
        instruction = reclaim_accounts_ix(self._program_id, self.request_address, payer, payer)
        result = await self._transport.send([instruction], [self._payer])
        if not result.success:
            if result.error_kind == "transport":
                raise TransportError(f"reclaim_accounts: {result.error}")
            raise OracleError(f"reclaim_accounts failed ({result.error_kind}): {result.error}")
        log.info("Reclaimed oracle request account: %s", result.signature)
        return result.signature

    async def submit_verification(self, evidence: EvidenceBundle) -> OracleRequestHandle:
        if await self.has_pending_request():
            if not self._config.auto_reclaim:
                raise OracleError(
                    f"oracle request account {self.request_address} already exists; "
                    "run `coinflip-referee reclaim` first"
                )
            await self.reclaim()

        prompt = build_prompt(evidence)
        instruction = create_request_ix(
            self._program_id,
            request=self.request_address,
            output=self.output_address,
            payer=self._payer.pubkey(),
            prompt=prompt,
            pattern=VERDICT_PATTERN,
            budget=self._config.budget,
            version=self._config.version,
        )
        log.info("Submitting oracle request for game %s", evidence.game[:8])
        result = await self._transport.send([instruction], [self._payer])
        if not result.success:
            if result.error_kind == "transport":
                raise TransportError(f"create_request: {result.error}")
            raise OracleError(f"create_request failed ({result.error_kind}): {result.error}")

        log.info("Oracle request created: %s", result.signature)
        return OracleRequestHandle(
            tx=result.signature or "",
            request_address=str(self.request_address),
            output_address=str(self.output_address),
            prompt=prompt,
        )

    async def poll_verdict(
        self,
        output_address: Pubkey | None = None,
        interval: float | None = None,
        terminal_tokens: Sequence[str] | None = None,
        max_attempts: int | None = None,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> VerdictResult:
        """Poll the output account until it holds a terminal token.

        Unset arguments fall back to the oracle config. Raises
        OracleTimeoutError when the attempt budget or the wall-clock timeout
        runs out and OracleCancelledError once `cancel` is set.
        """
        address = output_address or self.output_address
        interval = self._config.poll_interval if interval is None else interval
        tokens = list(terminal_tokens or self._config.terminal_tokens)
        max_attempts = self._config.max_attempts if max_attempts is None else max_attempts
        timeout = self._config.timeout if timeout is None else timeout

        start = time.monotonic()
        attempts = 0
        while True:
            if cancel is not None and cancel.is_set():
                raise OracleCancelledError(attempts, time.monotonic() - start)

            attempts += 1
            data = await self._transport.get_account_data(address)
            elapsed = time.monotonic() - start
            if data is not None:
                verdict = match_verdict(data.decode("utf-8", errors="ignore"), tokens)
                if verdict:
                    log.info("Verdict %s after %d attempts (%.1fs)", verdict, attempts, elapsed)
                    return VerdictResult(verdict, attempts, elapsed)
            log.info(
                "Waiting for oracle verdict: attempt %d, %.1fs elapsed%s",
                attempts, elapsed, "" if data is not None else " (no output yet)",
            )

            if max_attempts is not None and attempts >= max_attempts:
                raise OracleTimeoutError(attempts, elapsed)
            if timeout is not None and elapsed >= timeout:
                raise OracleTimeoutError(attempts, elapsed)

            if cancel is None:
                await asyncio.sleep(interval)
            else:
                try:
                    await asyncio.wait_for(cancel.wait(), timeout=interval)
                except asyncio.TimeoutError:
                    pass

    async def referee(
        self,
        evidence: EvidenceBundle,
        max_attempts: int | None = None,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> RefereeRecord:
        """Submit the round for verification and wait for the verdict."""
        handle = await self.submit_verification(evidence)
        result = await self.poll_verdict(
            Pubkey.from_string(handle.output_address),
            max_attempts=max_attempts,
            timeout=timeout,
            cancel=cancel,
        )
        record = RefereeRecord(
            tx=handle.tx,
            verdict=result.verdict,
            attempts=result.attempts,
            elapsed_seconds=result.elapsed_seconds,
            round=evidence,
        )
        if self._store:
            await self._store.save_referee(record)
            await self._store.log_activity(
                "verdict", f"{result.verdict} after {result.attempts} attempts", game=evidence.game,
            )
        return record
