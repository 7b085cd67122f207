"""Operation results and persisted round records."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

from coinflip_referee.models.config import LAMPORTS_PER_SOL
from coinflip_referee.models.game import STEPS, Game, Player
from coinflip_referee.protocol.commitment import PlayerCommitment


@dataclass
class TxResult:
    """Result of submitting one transaction and awaiting confirmation."""

    success: bool
    signature: str | None = None
    error: str | None = None
    error_kind: str | None = None  # "transport", "abi_mismatch", "bad_status", ...
    logs: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class EvidenceBundle:
    """Immutable record of a completed round, handed to the referee.

    Identities are base58 strings; byte fields are hex.
    """

    rpc: str
    program_id: str
    creator: str
    joiner: str
    game_seed: str
    game: str
    vault: str
    stake_lamports: int
    reveal_deadline_slots: int
    reveal_deadline_slot: int | None
    commit_creator_hex: str
    commit_joiner_hex: str
    choice_creator: int
    choice_joiner: int
    secret_creator_hex: str
    secret_joiner_hex: str
    coin: int
    winner: str
    txs: dict[str, str]
    timestamp: str

    @property
    def stake_sol(self) -> float:
        return self.stake_lamports / LAMPORTS_PER_SOL

    @classmethod
    def from_game(
        cls, game: Game, rpc: str, program_id: str, timestamp: str | None = None
    ) -> EvidenceBundle:
        """Snapshot a finalized game. Raises ValueError for incomplete rounds."""
        if not game.is_complete:
            missing = [s for s in STEPS if s not in game.txs]
            raise ValueError(
                f"round not complete (state={game.state.value}, missing txs={missing})"
            )
        if game.coin is None or game.winner is None:
            raise ValueError("outcome was never read back")
        if game.creator_commitment is None or game.joiner_commitment is None:
            raise ValueError("local commitments are missing")
        return cls(
            rpc=rpc,
            program_id=program_id,
            creator=str(game.creator),
            joiner=str(game.joiner),
            game_seed=str(game.game_seed),
            game=str(game.game_address),
            vault=str(game.vault_address),
            stake_lamports=game.stake_lamports,
            reveal_deadline_slots=game.reveal_deadline_slots,
            reveal_deadline_slot=game.reveal_deadline_slot,
            commit_creator_hex=game.creator_commitment.digest.hex(),
            commit_joiner_hex=game.joiner_commitment.digest.hex(),
            choice_creator=game.creator_commitment.choice,
            choice_joiner=game.joiner_commitment.choice,
            secret_creator_hex=game.creator_commitment.secret.hex(),
            secret_joiner_hex=game.joiner_commitment.secret.hex(),
            coin=game.coin,
            winner=str(game.winner),
            txs={step: game.txs[step] for step in STEPS},
            timestamp=timestamp or datetime.now(timezone.utc).isoformat(),
        )

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["stake_sol"] = self.stake_sol
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EvidenceBundle:
        missing = [n for n in cls.__dataclass_fields__ if n not in data]
        if missing:
            raise ValueError(f"evidence record missing fields: {missing}")
        kwargs = {n: data[n] for n in cls.__dataclass_fields__}
        kwargs["txs"] = dict(kwargs["txs"])
        return cls(**kwargs)


@dataclass(frozen=True)
class OracleRequestHandle:
    """A submitted arbitration request."""

    tx: str
    request_address: str
    output_address: str
    prompt: str


@dataclass(frozen=True)
class VerdictResult:
    verdict: str
    attempts: int
    elapsed_seconds: float


@dataclass(frozen=True)
class RefereeRecord:
    """Persisted referee outcome with the round it judged."""

    tx: str
    verdict: str
    attempts: int
    elapsed_seconds: float
    round: EvidenceBundle

    def to_dict(self) -> dict[str, Any]:
        return {
            "tx": self.tx,
            "verdict": self.verdict,
            "attempts": self.attempts,
            "elapsed_seconds": self.elapsed_seconds,
            "round": self.round.to_dict(),
        }


@dataclass
class RoundRecord:
    """A round as tracked in the journal, complete or not."""

    game: str
    game_seed: str
    creator: str
    joiner: str
    stake_lamports: int
    reveal_deadline_slots: int
    state: str
    choice_creator: int | None = None
    choice_joiner: int | None = None
    secret_creator_hex: str | None = None
    secret_joiner_hex: str | None = None
    coin: int | None = None
    winner: str | None = None
    txs: dict[str, str] = field(default_factory=dict)
    created_at: str = ""
    updated_at: str = ""

    def commitment(self, player: Player) -> PlayerCommitment | None:
        """Rebuild the journalled commitment for `player`, if its secret was saved."""
        if player is Player.CREATOR:
            choice, secret = self.choice_creator, self.secret_creator_hex
        else:
            choice, secret = self.choice_joiner, self.secret_joiner_hex
        if choice is None or secret is None:
            return None
        return PlayerCommitment.from_parts(choice, bytes.fromhex(secret))


@dataclass
class ActivityRecord:
    """A single activity log entry."""

    id: int
    event_type: str
    game: str | None
    message: str
    created_at: str
