"""Decoding of the game program's on-chain Game account."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

from solders.pubkey import Pubkey

from coinflip_referee.protocol.encoding import (
    InstructionReader,
    DecodeError,
    boolean,
    discriminator,
    fixed_bytes,
    u8,
    u64,
)

GAME_ACCOUNT_NAME = "Game"

# 8 disc + 2 pubkeys + stake + 2 commits + 2 flags + 2 choices + 2 secrets
# + 2 slots + coin + winner + status
GAME_ACCOUNT_SPACE = 8 + 32 + 32 + 8 + 32 + 32 + 1 + 1 + 1 + 1 + 32 + 32 + 8 + 8 + 1 + 32 + 1


class OnchainStatus(IntEnum):
    CREATED = 0
    JOINED = 1
    REVEALING = 2
    READY_TO_FINALIZE = 3
    FINALIZED = 4


@dataclass(frozen=True)
class GameAccount:
    """Snapshot of the Game account as stored by the program."""

    creator: Pubkey
    joiner: Pubkey
    stake_lamports: int
    commit_creator: bytes
    commit_joiner: bytes
    revealed_creator: bool
    revealed_joiner: bool
    choice_creator: int
    choice_joiner: int
    secret_creator: bytes
    secret_joiner: bytes
    created_slot: int
    reveal_deadline_slot: int
    coin: int
    winner: Pubkey
    status: OnchainStatus

    @property
    def has_joiner(self) -> bool:
        return self.joiner != Pubkey.default()

    @property
    def has_winner(self) -> bool:
        return self.winner != Pubkey.default()


def decode_game_account(data: bytes) -> GameAccount:
    """Decode raw account data. Raises DecodeError on a foreign or short account."""
    r = InstructionReader(data)
    r.expect_discriminator(GAME_ACCOUNT_NAME, namespace="account")
    creator = Pubkey(r.pubkey())
    joiner = Pubkey(r.pubkey())
    stake = r.u64()
    commit_a = r.fixed_bytes(32)
    commit_b = r.fixed_bytes(32)
    revealed_a = r.boolean()
    revealed_b = r.boolean()
    choice_a = r.u8()
    choice_b = r.u8()
    secret_a = r.fixed_bytes(32)
    secret_b = r.fixed_bytes(32)
    created_slot = r.u64()
    deadline = r.u64()
    coin = r.u8()
    winner = Pubkey(r.pubkey())
    raw_status = r.u8()
    try:
        status = OnchainStatus(raw_status)
    except ValueError as exc:
        raise DecodeError(f"unknown game status {raw_status}") from exc

    return GameAccount(
        creator=creator,
        joiner=joiner,
        stake_lamports=stake,
        commit_creator=commit_a,
        commit_joiner=commit_b,
        revealed_creator=revealed_a,
        revealed_joiner=revealed_b,
        choice_creator=choice_a,
        choice_joiner=choice_b,
        secret_creator=secret_a,
        secret_joiner=secret_b,
        created_slot=created_slot,
        reveal_deadline_slot=deadline,
        coin=coin,
        winner=winner,
        status=status,
    )


def encode_game_account(account: GameAccount) -> bytes:
    """Inverse of decode_game_account, used by local fakes and fixtures."""
    return b"".join([
        discriminator(GAME_ACCOUNT_NAME, namespace="account"),
        bytes(account.creator),
        bytes(account.joiner),
        u64(account.stake_lamports),
        fixed_bytes(account.commit_creator, 32),
        fixed_bytes(account.commit_joiner, 32),
        boolean(account.revealed_creator),
        boolean(account.revealed_joiner),
        u8(account.choice_creator),
        u8(account.choice_joiner),
        fixed_bytes(account.secret_creator, 32),
        fixed_bytes(account.secret_joiner, 32),
        u64(account.created_slot),
        u64(account.reveal_deadline_slot),
        u8(account.coin),
        bytes(account.winner),
        u8(int(account.status)),
    ])
