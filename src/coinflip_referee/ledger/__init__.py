"""Solana integration: RPC transport, key files, funding."""

from coinflip_referee.ledger.funding import ensure_funded
from coinflip_referee.ledger.keys import load_keypair
from coinflip_referee.ledger.transport import SolanaTransport

__all__ = ["SolanaTransport", "ensure_funded", "load_keypair"]
