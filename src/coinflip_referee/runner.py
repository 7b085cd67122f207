"""Round runner - wires the transport, keys, journal and evidence files together."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from coinflip_referee.errors import AccountStateError
from coinflip_referee.game.orchestrator import GameOrchestrator
from coinflip_referee.interfaces.ledger import LedgerTransport
from coinflip_referee.ledger.funding import ensure_funded
from coinflip_referee.ledger.keys import load_keypair
from coinflip_referee.ledger.transport import SolanaTransport
from coinflip_referee.models.config import RunnerConfig
from coinflip_referee.models.game import Game, GameState, Player
from coinflip_referee.models.records import ActivityRecord, EvidenceBundle, RefereeRecord, RoundRecord
from coinflip_referee.oracle.client import OracleClient
from coinflip_referee.storage.evidence import EvidenceFiles
from coinflip_referee.storage.sqlite import SQLiteRoundStore

log = logging.getLogger(__name__)

UNFINISHED_STATES = [
    GameState.IDLE.value,
    GameState.CREATED.value,
    GameState.JOINED.value,
    GameState.REVEALED_ONE.value,
    GameState.REVEALED_BOTH.value,
    GameState.EXPIRED.value,
]


class RoundRunner:
    """Runs rounds and referee checks for one configured operator.

    Use as an async context manager so the journal and RPC client are
    opened and closed together.
    """

    def __init__(self, cfg: RunnerConfig, transport: LedgerTransport | None = None) -> None:
        self._cfg = cfg
        self.transport = transport or SolanaTransport(cfg.rpc_url, cfg.commitment)
        self.store = SQLiteRoundStore(cfg.db_path)
        self.evidence = EvidenceFiles(cfg.artifacts_dir)
        self.program_id = Pubkey.from_string(cfg.program_id)
        self.oracle_program_id = Pubkey.from_string(cfg.oracle.program_id)
        self._creator: Keypair | None = None
        self._joiner: Keypair | None = None

    async def __aenter__(self) -> RoundRunner:
        await self.store.initialize()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.store.close()
        await self.transport.close()

    # ── Keys ───────────────────────────────────────────────

    @property
    def creator(self) -> Keypair:
        if self._creator is None:
            self._cfg.validate()
            self._creator = load_keypair(self._cfg.wallet_path)
        return self._creator

    @property
    def joiner(self) -> Keypair:
        if self._joiner is None:
            self._cfg.validate(require_joiner=True)
            self._joiner = load_keypair(self._cfg.joiner_wallet_path)
        return self._joiner

    def _oracle_payer(self) -> Keypair:
        if self._cfg.oracle.wallet_path:
            return load_keypair(self._cfg.oracle.wallet_path)
        return self.creator

    def orchestrator(self) -> GameOrchestrator:
        return GameOrchestrator(
            self.transport, self.program_id, self.creator, self.joiner, store=self.store,
        )

    def oracle(self) -> OracleClient:
        return OracleClient(
            self.transport, self.oracle_program_id, self._oracle_payer(),
            self._cfg.oracle, store=self.store,
        )

    # ── Commands ───────────────────────────────────────────

    async def status(self) -> dict[str, Any]:
        """Balances, slot and oracle state for the configured identities."""
        info: dict[str, Any] = {
            "rpc": self.transport.endpoint,
            "program_id": str(self.program_id),
            "oracle_program_id": str(self.oracle_program_id),
            "slot": await self.transport.get_slot(),
        }
        creator = self.creator.pubkey()
        info["creator"] = str(creator)
        info["creator_lamports"] = await self.transport.get_balance(creator)
        if self._cfg.joiner_wallet_path:
            joiner = self.joiner.pubkey()
            info["joiner"] = str(joiner)
            info["joiner_lamports"] = await self.transport.get_balance(joiner)
        info["oracle_request_pending"] = await self.oracle().has_pending_request()
        return info

    async def play(self, game_seed: Pubkey | None = None) -> EvidenceBundle:
        """Fund the joiner if needed, play one round and write its evidence."""
        cfg = self._cfg
        cfg.validate(require_joiner=True, require_round=True)
        orchestrator = self.orchestrator()
        await ensure_funded(
            self.transport, self.joiner.pubkey(), cfg.joiner_min_lamports, cfg.airdrop_lamports,
        )
        await self.store.log_activity(
            "round_started", f"stake {cfg.stake_sol:g} SOL, deadline {cfg.reveal_deadline_slots} slots",
        )
        bundle = await orchestrator.play_round(
            cfg.creator_choice,
            cfg.joiner_choice,
            cfg.stake_lamports,
            cfg.reveal_deadline_slots,
            game_seed=game_seed,
        )
        self.evidence.write_round(bundle)
        return bundle

    async def referee(
        self,
        game: str | None = None,
        max_attempts: int | None = None,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> RefereeRecord:
        """Have the oracle judge a round (the latest one unless `game` is given)."""
        bundle = self.evidence.read_round(game)
        record = await self.oracle().referee(
            bundle, max_attempts=max_attempts, timeout=timeout, cancel=cancel,
        )
        self.evidence.write_referee(record)
        return record

    async def reclaim(self) -> str | None:
        return await self.oracle().reclaim()

    async def _load_game(self, game: str) -> tuple[GameOrchestrator, Game, RoundRecord]:
        record = await self.store.get_round(game)
        if record is None:
            raise AccountStateError(f"game {game} is not in the journal at {self._cfg.db_path}")
        orchestrator = self.orchestrator()
        mirror = await orchestrator.resume(
            Pubkey.from_string(record.game_seed),
            record.stake_lamports,
            record.reveal_deadline_slots,
            record.commitment(Player.CREATOR),
            record.commitment(Player.JOINER),
            txs=record.txs,
        )
        return orchestrator, mirror, record

    async def resume(self, game: str) -> EvidenceBundle | Game:
        """Continue an interrupted round from the journal.

        Returns the evidence bundle when the round completes, or the game
        mirror when it was settled by forfeit instead.
        """
        orchestrator, mirror, record = await self._load_game(game)
        await orchestrator.advance(
            mirror, record.commitment(Player.CREATOR), record.commitment(Player.JOINER),
        )
        if not mirror.is_complete:
            log.warning("Game %s stopped in state %s", game[:8], mirror.state.value)
            return mirror
        bundle = orchestrator.evidence(mirror)
        await self.store.save_evidence(bundle)
        if not self.evidence.round_path(bundle.game).exists():
            self.evidence.write_round(bundle)
        return bundle

    async def forfeit(self, game: str) -> str:
        orchestrator, mirror, _ = await self._load_game(game)
        return await orchestrator.forfeit(mirror)

    async def unfinished(self) -> list[RoundRecord]:
        return await self.store.get_rounds(UNFINISHED_STATES)

    async def history(self, limit: int = 20) -> tuple[list[RoundRecord], list[ActivityRecord]]:
        rounds = await self.store.get_rounds()
        return rounds[-limit:], await self.store.get_recent_activity(limit)
