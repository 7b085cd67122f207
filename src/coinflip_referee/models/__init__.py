"""Data models for coinflip_referee."""

from coinflip_referee.models.config import LAMPORTS_PER_SOL, OracleConfig, RunnerConfig
from coinflip_referee.models.game import STEPS, Game, GameState, Player
from coinflip_referee.models.records import (
    ActivityRecord,
    EvidenceBundle,
    OracleRequestHandle,
    RefereeRecord,
    RoundRecord,
    TxResult,
    VerdictResult,
)

__all__ = [
    "LAMPORTS_PER_SOL", "OracleConfig", "RunnerConfig",
    "STEPS", "Game", "GameState", "Player",
    "ActivityRecord", "EvidenceBundle", "OracleRequestHandle", "RefereeRecord",
    "RoundRecord", "TxResult", "VerdictResult",
]
