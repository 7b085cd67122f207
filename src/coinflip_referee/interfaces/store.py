"""RoundStore protocol - journals round progress for audit and recovery."""

from __future__ import annotations

from typing import Protocol

from coinflip_referee.models.game import Game, Player
from coinflip_referee.models.records import (
    ActivityRecord,
    EvidenceBundle,
    RefereeRecord,
    RoundRecord,
)
from coinflip_referee.protocol.commitment import PlayerCommitment


class RoundStore(Protocol):
    """Persists round checkpoints so an interrupted round can be resumed."""

    # ── Lifecycle ──────────────────────────────────────────

    async def initialize(self) -> None:
        """Create tables if they don't exist."""
        ...

    async def close(self) -> None:
        ...

    # ── Rounds ─────────────────────────────────────────────

    async def save_round(self, game: Game) -> None:
        """Insert or update the round for `game`, including its secrets."""
        ...

    async def save_secret(self, game: Game, player: Player, commitment: PlayerCommitment) -> None:
        """Persist a player's choice and secret before its commitment is submitted."""
        ...

    async def record_step(self, game: str, step: str, signature: str) -> None:
        ...

    async def get_round(self, game: str) -> RoundRecord | None:
        ...

    async def get_rounds(self, states: list[str] | None = None) -> list[RoundRecord]:
        ...

    # ── Evidence & referee ─────────────────────────────────

    async def save_evidence(self, bundle: EvidenceBundle) -> None:
        ...

    async def get_evidence(self, game: str) -> EvidenceBundle | None:
        ...

    async def save_referee(self, record: RefereeRecord) -> None:
        ...

    # ── Activity log ───────────────────────────────────────

    async def log_activity(self, event_type: str, message: str, game: str | None = None) -> None:
        ...

    async def get_recent_activity(self, limit: int = 50) -> list[ActivityRecord]:
        ...
