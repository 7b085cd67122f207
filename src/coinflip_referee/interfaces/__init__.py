"""Protocol interfaces for coinflip_referee components."""

from coinflip_referee.interfaces.ledger import LedgerTransport
from coinflip_referee.interfaces.store import RoundStore

__all__ = ["LedgerTransport", "RoundStore"]
