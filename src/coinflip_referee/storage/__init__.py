"""Evidence files and the round journal."""

from coinflip_referee.storage.evidence import EvidenceFiles
from coinflip_referee.storage.sqlite import SQLiteRoundStore

__all__ = ["EvidenceFiles", "SQLiteRoundStore"]
