"""Client-side mirror of the on-chain game."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from solders.pubkey import Pubkey

from coinflip_referee.protocol.commitment import PlayerCommitment


class GameState(str, Enum):
    """Local lifecycle. EXPIRED is observed, never caused, by the client."""

    IDLE = "idle"
    CREATED = "created"
    JOINED = "joined"
    REVEALED_ONE = "revealed_one"
    REVEALED_BOTH = "revealed_both"
    FINALIZED = "finalized"
    EXPIRED = "expired"


class Player(str, Enum):
    CREATOR = "creator"
    JOINER = "joiner"


# Transaction keys in step order.
STEPS = ("create", "join", "reveal_creator", "reveal_joiner", "finalize")


@dataclass
class Game:
    """One round, owned by a single orchestrator.

    Mutated only after a step's transaction is confirmed.
    """

    game_seed: Pubkey
    creator: Pubkey
    joiner: Pubkey
    stake_lamports: int
    reveal_deadline_slots: int
    game_address: Pubkey
    vault_address: Pubkey
    state: GameState = GameState.IDLE

    # Local secret material, kept until reveal
    creator_commitment: PlayerCommitment | None = None
    joiner_commitment: PlayerCommitment | None = None

    # Confirmed on-chain
    commit_creator: bytes | None = None
    commit_joiner: bytes | None = None
    revealed_creator: bool = False
    revealed_joiner: bool = False
    reveal_deadline_slot: int | None = None  # absolute, read back after create

    # Outcome, written by the program and only read here
    coin: int | None = None
    winner: Pubkey | None = None

    txs: dict[str, str] = field(default_factory=dict)

    def commitment_for(self, player: Player) -> PlayerCommitment | None:
        if player is Player.CREATOR:
            return self.creator_commitment
        return self.joiner_commitment

    def onchain_commit(self, player: Player) -> bytes | None:
        if player is Player.CREATOR:
            return self.commit_creator
        return self.commit_joiner

    def has_revealed(self, player: Player) -> bool:
        if player is Player.CREATOR:
            return self.revealed_creator
        return self.revealed_joiner

    def identity(self, player: Player) -> Pubkey:
        return self.creator if player is Player.CREATOR else self.joiner

    @property
    def is_complete(self) -> bool:
        return self.state is GameState.FINALIZED and all(s in self.txs for s in STEPS)
