"""Best-effort balance top-up before a round."""

from __future__ import annotations

import asyncio
import logging

from solders.pubkey import Pubkey

from coinflip_referee.errors import FundingError
from coinflip_referee.interfaces.ledger import LedgerTransport
from coinflip_referee.models.config import LAMPORTS_PER_SOL

log = logging.getLogger(__name__)


def manual_transfer_command(pubkey: Pubkey, lamports: int, rpc_url: str) -> str:
    sol = lamports / LAMPORTS_PER_SOL
    return f"solana transfer {pubkey} {sol:g} --allow-unfunded-recipient --url {rpc_url}"


async def ensure_funded(
    transport: LedgerTransport,
    pubkey: Pubkey,
    min_lamports: int,
    airdrop_lamports: int,
    settle_delay: float = 0.8,
) -> int:
    """Make sure `pubkey` holds at least `min_lamports`, airdropping once if not.

    Many networks do not support airdrops. On any failure this raises
    FundingError with the transfer command the operator can run instead.
    Returns the balance after funding.
    """
    balance = await transport.get_balance(pubkey)
    if balance >= min_lamports:
        log.debug("%s already funded (%d lamports)", str(pubkey)[:8], balance)
        return balance

    remediation = manual_transfer_command(pubkey, airdrop_lamports, transport.endpoint)
    log.info(
        "Funding %s: balance %d < %d, requesting airdrop of %d",
        str(pubkey)[:8], balance, min_lamports, airdrop_lamports,
    )
    result = await transport.request_airdrop(pubkey, airdrop_lamports)
    if not result.success:
        raise FundingError(
            f"Airdrop to {pubkey} failed: {result.error}. "
            "Fund the account manually, then rerun.",
            remediation,
        )

    log.info("Airdrop tx: %s", result.signature)
    await asyncio.sleep(settle_delay)
    balance = await transport.get_balance(pubkey)
    if balance < min_lamports:
        raise FundingError(
            f"{pubkey} still holds {balance} lamports after airdrop (need {min_lamports})",
            remediation,
        )
    return balance
