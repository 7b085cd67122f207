"""LedgerTransport protocol - the RPC operations the orchestrator relies on."""

from __future__ import annotations

from typing import Protocol, Sequence

from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from coinflip_referee.models.records import TxResult


class LedgerTransport(Protocol):
    """Balance queries, account fetches and transaction submission."""

    @property
    def endpoint(self) -> str:
        ...

    async def get_balance(self, pubkey: Pubkey) -> int:
        """Balance in lamports."""
        ...

    async def get_slot(self) -> int:
        """Current slot at the configured commitment."""
        ...

    async def get_account_data(self, pubkey: Pubkey) -> bytes | None:
        """Raw account data, or None if the account does not exist."""
        ...

    async def send(
        self, instructions: Sequence[Instruction], signers: Sequence[Keypair]
    ) -> TxResult:
        """Sign with `signers` (first one pays), submit, and await confirmation."""
        ...

    async def request_airdrop(self, pubkey: Pubkey, lamports: int) -> TxResult:
        ...

    async def close(self) -> None:
        ...
