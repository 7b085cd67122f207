"""SQLite implementation of the RoundStore protocol."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from coinflip_referee.models.game import Game, Player
from coinflip_referee.models.records import (
    ActivityRecord,
    EvidenceBundle,
    RefereeRecord,
    RoundRecord,
)
from coinflip_referee.protocol.commitment import PlayerCommitment

SCHEMA = """
-- One row per game, keyed by game address
CREATE TABLE IF NOT EXISTS rounds (
    game TEXT PRIMARY KEY,
    game_seed TEXT NOT NULL,
    vault TEXT NOT NULL,
    creator TEXT NOT NULL,
    joiner TEXT NOT NULL,
    stake_lamports INTEGER NOT NULL,
    reveal_deadline_slots INTEGER NOT NULL,
    reveal_deadline_slot INTEGER,
    state TEXT NOT NULL DEFAULT 'idle',
    commit_creator_hex TEXT,
    commit_joiner_hex TEXT,
    choice_creator INTEGER,
    choice_joiner INTEGER,
    secret_creator_hex TEXT,
    secret_joiner_hex TEXT,
    coin INTEGER,
    winner TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_rounds_state ON rounds(state);

-- Confirmed transaction per step
CREATE TABLE IF NOT EXISTS steps (
    game TEXT NOT NULL,
    step TEXT NOT NULL,
    signature TEXT NOT NULL,
    confirmed_at TEXT NOT NULL DEFAULT (datetime('now')),
    PRIMARY KEY (game, step)
);

-- Evidence bundles of completed rounds
CREATE TABLE IF NOT EXISTS evidence (
    game TEXT PRIMARY KEY,
    bundle TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

-- Referee verdicts
CREATE TABLE IF NOT EXISTS referee (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    game TEXT NOT NULL,
    tx TEXT NOT NULL,
    verdict TEXT NOT NULL,
    attempts INTEGER NOT NULL,
    elapsed_seconds REAL NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_referee_game ON referee(game);

-- Activity log
CREATE TABLE IF NOT EXISTS activity_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    event_type TEXT NOT NULL,
    game TEXT,
    message TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_activity_created ON activity_log(created_at);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _hex(value: bytes | None) -> str | None:
    return value.hex() if value is not None else None


class SQLiteRoundStore:
    """SQLite-backed implementation of the RoundStore protocol.

    Secrets are stored in plain hex. They are revealed on-chain anyway once
    the round completes; until then the database file is as sensitive as
    the key files.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self._db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(SCHEMA)
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        assert self._db is not None, "Store not initialized. Call initialize() first."
        return self._db

    # ── Rounds ─────────────────────────────────────────────

    async def _upsert_round(self, game: Game) -> None:
        now = _now()
        await self.db.execute(
            "INSERT INTO rounds"
            " (game, game_seed, vault, creator, joiner, stake_lamports,"
            "  reveal_deadline_slots, reveal_deadline_slot, state,"
            "  commit_creator_hex, commit_joiner_hex, coin, winner, created_at, updated_at)"
            " VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)"
            " ON CONFLICT(game) DO UPDATE SET"
            " joiner=excluded.joiner, stake_lamports=excluded.stake_lamports,"
            " reveal_deadline_slot=COALESCE(excluded.reveal_deadline_slot, reveal_deadline_slot),"
            " state=excluded.state,"
            " commit_creator_hex=COALESCE(excluded.commit_creator_hex, commit_creator_hex),"
            " commit_joiner_hex=COALESCE(excluded.commit_joiner_hex, commit_joiner_hex),"
            " coin=COALESCE(excluded.coin, coin), winner=COALESCE(excluded.winner, winner),"
            " updated_at=excluded.updated_at",
            (
                str(game.game_address), str(game.game_seed), str(game.vault_address),
                str(game.creator), str(game.joiner), game.stake_lamports,
                game.reveal_deadline_slots, game.reveal_deadline_slot, game.state.value,
                _hex(game.commit_creator), _hex(game.commit_joiner),
                game.coin, str(game.winner) if game.winner else None, now, now,
            ),
        )

    async def _store_secret(self, game: str, player: Player, commitment: PlayerCommitment) -> None:
        await self.db.execute(
            f"UPDATE rounds SET choice_{player.value}=?, secret_{player.value}_hex=?,"
            " updated_at=? WHERE game=?",
            (commitment.choice, commitment.secret.hex(), _now(), game),
        )

    async def save_round(self, game: Game) -> None:
        await self._upsert_round(game)
        for player in (Player.CREATOR, Player.JOINER):
            commitment = game.commitment_for(player)
            if commitment is not None:
                await self._store_secret(str(game.game_address), player, commitment)
        await self.db.commit()

    async def save_secret(self, game: Game, player: Player, commitment: PlayerCommitment) -> None:
        await self._upsert_round(game)
        await self._store_secret(str(game.game_address), player, commitment)
        await self.db.commit()

    async def record_step(self, game: str, step: str, signature: str) -> None:
        await self.db.execute(
            "INSERT OR REPLACE INTO steps (game, step, signature, confirmed_at)"
            " VALUES (?, ?, ?, ?)",
            (game, step, signature, _now()),
        )
        await self.db.commit()

    async def _get_steps(self, game: str) -> dict[str, str]:
        async with self.db.execute(
            "SELECT step, signature FROM steps WHERE game=? ORDER BY confirmed_at", (game,)
        ) as cur:
            return {row["step"]: row["signature"] async for row in cur}

    async def get_round(self, game: str) -> RoundRecord | None:
        async with self.db.execute("SELECT * FROM rounds WHERE game=?", (game,)) as cur:
            row = await cur.fetchone()
        if row is None:
            return None
        return _row_to_round(row, await self._get_steps(game))

    async def get_rounds(self, states: list[str] | None = None) -> list[RoundRecord]:
        if states:
            marks = ", ".join("?" for _ in states)
            query = f"SELECT * FROM rounds WHERE state IN ({marks}) ORDER BY created_at"
            params: tuple = tuple(states)
        else:
            query, params = "SELECT * FROM rounds ORDER BY created_at", ()
        async with self.db.execute(query, params) as cur:
            rows = [row async for row in cur]
        return [_row_to_round(row, await self._get_steps(row["game"])) for row in rows]

    # ── Evidence & referee ─────────────────────────────────

    async def save_evidence(self, bundle: EvidenceBundle) -> None:
        await self.db.execute(
            "INSERT OR REPLACE INTO evidence (game, bundle, created_at) VALUES (?, ?, ?)",
            (bundle.game, json.dumps(bundle.to_dict()), _now()),
        )
        await self.db.commit()

    async def get_evidence(self, game: str) -> EvidenceBundle | None:
        async with self.db.execute("SELECT bundle FROM evidence WHERE game=?", (game,)) as cur:
            row = await cur.fetchone()
            return EvidenceBundle.from_dict(json.loads(row["bundle"])) if row else None

    async def save_referee(self, record: RefereeRecord) -> None:
        await self.db.execute(
            "INSERT INTO referee (game, tx, verdict, attempts, elapsed_seconds, created_at)"
            " VALUES (?, ?, ?, ?, ?, ?)",
            (
                record.round.game, record.tx, record.verdict,
                record.attempts, record.elapsed_seconds, _now(),
            ),
        )
        await self.db.commit()

    async def get_verdicts(self, game: str) -> list[str]:
        async with self.db.execute(
            "SELECT verdict FROM referee WHERE game=? ORDER BY id", (game,)
        ) as cur:
            return [row["verdict"] async for row in cur]

    # ── Activity log ───────────────────────────────────────

    async def log_activity(self, event_type: str, message: str, game: str | None = None) -> None:
        await self.db.execute(
            "INSERT INTO activity_log (event_type, game, message, created_at)"
            " VALUES (?, ?, ?, ?)",
            (event_type, game, message, _now()),
        )
        await self.db.commit()

    async def get_recent_activity(self, limit: int = 50) -> list[ActivityRecord]:
        async with self.db.execute(
            "SELECT * FROM activity_log ORDER BY created_at DESC, id DESC LIMIT ?", (limit,)
        ) as cur:
            return [
                ActivityRecord(
                    id=row["id"],
                    event_type=row["event_type"],
                    game=row["game"],
                    message=row["message"],
                    created_at=row["created_at"],
                )
                async for row in cur
            ]


# ── Row converters ─────────────────────────────────────────


def _row_to_round(row: aiosqlite.Row, txs: dict[str, str]) -> RoundRecord:
    return RoundRecord(
        game=row["game"],
        game_seed=row["game_seed"],
        creator=row["creator"],
        joiner=row["joiner"],
        stake_lamports=row["stake_lamports"],
        reveal_deadline_slots=row["reveal_deadline_slots"],
        state=row["state"],
        choice_creator=row["choice_creator"],
        choice_joiner=row["choice_joiner"],
        secret_creator_hex=row["secret_creator_hex"],
        secret_joiner_hex=row["secret_joiner_hex"],
        coin=row["coin"],
        winner=row["winner"],
        txs=txs,
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
