"""Game orchestrator - drives one commit-reveal round through the game program."""

from __future__ import annotations

import logging

from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from coinflip_referee.errors import (
    AccountStateError,
    DeadlineExpiredError,
    ProgramRejectedError,
    SequencingError,
    TransportError,
)
from coinflip_referee.interfaces.ledger import LedgerTransport
from coinflip_referee.interfaces.store import RoundStore
from coinflip_referee.models.game import Game, GameState, Player
from coinflip_referee.models.records import EvidenceBundle
from coinflip_referee.protocol import instructions as ix
from coinflip_referee.protocol.accounts import GameAccount, OnchainStatus, decode_game_account
from coinflip_referee.protocol.addresses import game_address, vault_address
from coinflip_referee.protocol.commitment import PlayerCommitment, verify
from coinflip_referee.protocol.encoding import DecodeError

log = logging.getLogger(__name__)

_REVEALABLE = (GameState.JOINED, GameState.REVEALED_ONE)
_EXPIRABLE = (GameState.CREATED, GameState.JOINED, GameState.REVEALED_ONE)

_STATE_FROM_CHAIN = {
    OnchainStatus.CREATED: GameState.CREATED,
    OnchainStatus.JOINED: GameState.JOINED,
    OnchainStatus.REVEALING: GameState.REVEALED_ONE,
    OnchainStatus.READY_TO_FINALIZE: GameState.REVEALED_BOTH,
    OnchainStatus.FINALIZED: GameState.FINALIZED,
}


class GameOrchestrator:
    """Sequences create -> join -> reveal x2 -> finalize for one game.

    Ordering is enforced locally before anything is sent, so an out-of-order
    step fails with SequencingError and leaves the Game untouched. The
    program's own checks still apply; its rejections are raised verbatim as
    ProgramRejectedError and never retried.

    The creator's key pays fees for every step; the joiner co-signs its own.
    """

    def __init__(
        self,
        transport: LedgerTransport,
        program_id: Pubkey,
        creator: Keypair,
        joiner: Keypair,
        store: RoundStore | None = None,
    ) -> None:
        self._transport = transport
        self._program_id = program_id
        self._creator = creator
        self._joiner = joiner
        self._store = store

    @property
    def program_id(self) -> Pubkey:
        return self._program_id

    def new_game(
        self,
        stake_lamports: int,
        reveal_deadline_slots: int,
        game_seed: Pubkey | None = None,
    ) -> Game:
        """Create an Idle game with derived addresses.

        A fresh random seed is used unless one is given; reuse a seed only to
        resume the same game.
        """
        if stake_lamports <= 0:
            raise ValueError(f"stake must be positive, got {stake_lamports}")
        if reveal_deadline_slots < 0:
            raise ValueError(f"reveal deadline must be >= 0, got {reveal_deadline_slots}")

        seed = game_seed if game_seed is not None else Keypair().pubkey()
        creator = self._creator.pubkey()
        game, _ = game_address(self._program_id, creator, seed)
        vault, _ = vault_address(self._program_id, game)
        return Game(
            game_seed=seed,
            creator=creator,
            joiner=self._joiner.pubkey(),
            stake_lamports=stake_lamports,
            reveal_deadline_slots=reveal_deadline_slots,
            game_address=game,
            vault_address=vault,
        )

    # ── Instruction builders (no side effects) ─────────────

    @staticmethod
    def _require(game: Game, allowed: tuple[GameState, ...], step: str) -> None:
        if game.state not in allowed:
            expected = " or ".join(s.value for s in allowed)
            raise SequencingError(
                f"cannot {step} game {str(game.game_address)[:8]} in state "
                f"{game.state.value} (needs {expected})"
            )

    def build_create(self, game: Game, commitment: PlayerCommitment) -> Instruction:
        self._require(game, (GameState.IDLE,), "create")
        return ix.create_game_ix(
            self._program_id,
            creator=game.creator,
            game_seed=game.game_seed,
            game=game.game_address,
            vault=game.vault_address,
            stake_lamports=game.stake_lamports,
            commit_creator=commitment.digest,
            reveal_deadline_slots=game.reveal_deadline_slots,
        )

    def build_join(self, game: Game, commitment: PlayerCommitment) -> Instruction:
        self._require(game, (GameState.CREATED,), "join")
        return ix.join_game_ix(
            self._program_id,
            joiner=game.joiner,
            game=game.game_address,
            vault=game.vault_address,
            commit_joiner=commitment.digest,
        )

    def build_reveal(self, game: Game, player: Player) -> Instruction:
        step = f"reveal ({player.value})"
        self._require(game, _REVEALABLE, step)
        if game.has_revealed(player):
            raise SequencingError(f"{player.value} has already revealed")
        if game.commit_creator is None or game.commit_joiner is None:
            raise SequencingError(f"cannot {step}: both commitments must be on-chain first")

        local = game.commitment_for(player)
        onchain = game.onchain_commit(player)
        if local is None:
            raise SequencingError(f"cannot {step}: the {player.value} secret is not available")
        if not verify(local.choice, local.secret, onchain):
            raise SequencingError(
                f"cannot {step}: local secret does not open the on-chain commitment"
            )

        build = ix.reveal_creator_ix if player is Player.CREATOR else ix.reveal_joiner_ix
        return build(
            self._program_id, game.identity(player), game.game_address, local.choice, local.secret,
        )

    def build_finalize(self, game: Game) -> Instruction:
        self._require(game, (GameState.REVEALED_BOTH,), "finalize")
        return ix.finalize_ix(
            self._program_id,
            game=game.game_address,
            vault=game.vault_address,
            creator_payout=game.creator,
            joiner_payout=game.joiner,
        )

    def build_forfeit(self, game: Game) -> Instruction:
        self._require(
            game, (GameState.JOINED, GameState.REVEALED_ONE, GameState.EXPIRED), "forfeit",
        )
        if game.commit_joiner is None:
            raise SequencingError("cannot forfeit a game nobody joined")
        return ix.forfeit_if_timeout_ix(
            self._program_id,
            game=game.game_address,
            vault=game.vault_address,
            creator_payout=game.creator,
            joiner_payout=game.joiner,
        )

    # ── Steps ──────────────────────────────────────────────

    async def _submit(
        self, step: str, game: Game, instruction: Instruction, signers: list[Keypair]
    ) -> str:
        log.info("%s: game %s", step, str(game.game_address)[:8])
        result = await self._transport.send([instruction], signers)
        if not result.success:
            if result.error_kind == "transport":
                raise TransportError(f"{step}: {result.error}")
            if self._store:
                await self._store.log_activity(
                    "step_rejected", f"{step}: {result.error_kind}", game=str(game.game_address),
                )
            raise ProgramRejectedError(
                step,
                result.error_kind or "unknown",
                result.error or "",
                logs=result.logs,
                signature=result.signature,
            )

        signature = result.signature or ""
        game.txs[step] = signature
        log.info("   tx: %s", signature)
        if self._store:
            await self._store.record_step(str(game.game_address), step, signature)
        return signature

    async def _checkpoint(self, game: Game, event: str) -> None:
        if self._store is None:
            return
        await self._store.save_round(game)
        await self._store.log_activity(
            event, f"game {str(game.game_address)[:8]} -> {game.state.value}",
            game=str(game.game_address),
        )

    async def _fetch_account(self, game: Game) -> GameAccount | None:
        data = await self._transport.get_account_data(game.game_address)
        if data is None:
            return None
        try:
            return decode_game_account(data)
        except DecodeError as exc:
            raise AccountStateError(
                f"account {game.game_address} is not a coinflip game: {exc}"
            ) from exc

    async def create(self, game: Game, commitment: PlayerCommitment) -> str:
        """Idle -> Created. Escrows the creator's stake and commitment."""
        instruction = self.build_create(game, commitment)
        if self._store:
            await self._store.save_secret(game, Player.CREATOR, commitment)

        sig = await self._submit("create", game, instruction, [self._creator])
        game.creator_commitment = commitment
        game.commit_creator = commitment.digest
        game.state = GameState.CREATED

        account = await self._fetch_account(game)
        if account is not None:
            game.reveal_deadline_slot = account.reveal_deadline_slot
        else:
            log.warning("Game account %s not visible yet after create", game.game_address)
        await self._checkpoint(game, "game_created")
        return sig

    async def join(self, game: Game, commitment: PlayerCommitment) -> str:
        """Created -> Joined. Escrows the joiner's matching stake."""
        instruction = self.build_join(game, commitment)
        if self._store:
            await self._store.save_secret(game, Player.JOINER, commitment)

        sig = await self._submit("join", game, instruction, [self._creator, self._joiner])
        game.joiner_commitment = commitment
        game.commit_joiner = commitment.digest
        game.state = GameState.JOINED
        await self._checkpoint(game, "game_joined")
        return sig

    async def observe_expiry(self, game: Game) -> bool:
        """Move the game to Expired if the ledger has passed its reveal deadline."""
        if game.reveal_deadline_slot is None or game.state not in _EXPIRABLE:
            return game.state is GameState.EXPIRED
        slot = await self._transport.get_slot()
        if slot <= game.reveal_deadline_slot:
            return False
        log.warning(
            "Game %s expired: slot %d > deadline %d",
            str(game.game_address)[:8], slot, game.reveal_deadline_slot,
        )
        game.state = GameState.EXPIRED
        await self._checkpoint(game, "game_expired")
        return True

    async def reveal(self, game: Game, player: Player) -> str:
        """Joined -> RevealedOne, or RevealedOne -> RevealedBoth."""
        instruction = self.build_reveal(game, player)
        if await self.observe_expiry(game):
            raise DeadlineExpiredError(
                f"reveal deadline {game.reveal_deadline_slot} passed; use forfeit"
            )

        signers = [self._creator] if player is Player.CREATOR else [self._creator, self._joiner]
        sig = await self._submit(f"reveal_{player.value}", game, instruction, signers)
        if player is Player.CREATOR:
            game.revealed_creator = True
        else:
            game.revealed_joiner = True
        both = game.revealed_creator and game.revealed_joiner
        game.state = GameState.REVEALED_BOTH if both else GameState.REVEALED_ONE
        await self._checkpoint(game, f"revealed_{player.value}")
        return sig

    async def read_outcome(self, game: Game) -> GameAccount:
        """Fetch coin and winner as computed by the program."""
        account = await self._fetch_account(game)
        if account is None:
            raise AccountStateError(f"game account {game.game_address} not found")
        if account.status not in (OnchainStatus.READY_TO_FINALIZE, OnchainStatus.FINALIZED):
            raise AccountStateError(
                f"outcome not available yet (on-chain status {account.status.name})"
            )
        if account.winner not in (game.creator, game.joiner):
            raise AccountStateError(f"winner {account.winner} is neither player")

        game.coin = account.coin
        game.winner = account.winner
        log.info("Outcome: coin=%d winner=%s", account.coin, str(account.winner)[:8])
        return account

    async def finalize(self, game: Game) -> str:
        """RevealedBoth -> Finalized. Pays the vault out to the winner."""
        instruction = self.build_finalize(game)
        sig = await self._submit("finalize", game, instruction, [self._creator])
        game.state = GameState.FINALIZED
        await self._checkpoint(game, "game_finalized")
        return sig

    async def forfeit(self, game: Game) -> str:
        """Settle a stalled game once its deadline has passed."""
        instruction = self.build_forfeit(game)
        if game.state is not GameState.EXPIRED and not await self.observe_expiry(game):
            raise SequencingError(
                f"deadline {game.reveal_deadline_slot} not reached; forfeit would be rejected"
            )
        sig = await self._submit("forfeit", game, instruction, [self._creator])
        game.state = GameState.FINALIZED
        account = await self._fetch_account(game)
        if account is not None and account.has_winner:
            game.winner = account.winner
        await self._checkpoint(game, "game_forfeited")
        return sig

    # ── Whole rounds ───────────────────────────────────────

    async def advance(
        self,
        game: Game,
        creator_commitment: PlayerCommitment | None = None,
        joiner_commitment: PlayerCommitment | None = None,
    ) -> Game:
        """Run every remaining step from the game's current state."""
        if game.state is GameState.IDLE:
            if creator_commitment is None:
                raise SequencingError("creator commitment required to create")
            await self.create(game, creator_commitment)
        if game.state is GameState.CREATED:
            if joiner_commitment is None:
                raise SequencingError("joiner commitment required to join")
            await self.join(game, joiner_commitment)
        for player in (Player.CREATOR, Player.JOINER):
            if game.state in _REVEALABLE and not game.has_revealed(player):
                await self.reveal(game, player)
        if game.state is GameState.REVEALED_BOTH:
            await self.read_outcome(game)
            await self.finalize(game)
        elif (
            game.state is GameState.FINALIZED and game.coin is None
            and game.revealed_creator and game.revealed_joiner
        ):
            await self.read_outcome(game)
        return game

    def evidence(self, game: Game) -> EvidenceBundle:
        return EvidenceBundle.from_game(
            game, rpc=self._transport.endpoint, program_id=str(self._program_id),
        )

    async def play_round(
        self,
        creator_choice: int,
        joiner_choice: int,
        stake_lamports: int,
        reveal_deadline_slots: int,
        game_seed: Pubkey | None = None,
    ) -> EvidenceBundle:
        """Play a full round and return its evidence bundle.

        Any failure propagates; no bundle exists for an incomplete round.
        """
        game = self.new_game(stake_lamports, reveal_deadline_slots, game_seed)
        log.info(
            "New round: game=%s vault=%s stake=%d",
            game.game_address, game.vault_address, stake_lamports,
        )
        creator_commitment = PlayerCommitment.generate(creator_choice)
        joiner_commitment = PlayerCommitment.generate(joiner_choice)

        await self.advance(game, creator_commitment, joiner_commitment)
        bundle = self.evidence(game)
        if self._store:
            await self._store.save_evidence(bundle)
        return bundle

    async def resume(
        self,
        game_seed: Pubkey,
        stake_lamports: int,
        reveal_deadline_slots: int,
        creator_commitment: PlayerCommitment | None,
        joiner_commitment: PlayerCommitment | None,
        txs: dict[str, str] | None = None,
    ) -> Game:
        """Rebuild the local mirror of a game from the same seed.

        Secrets must be the ones originally committed; a mismatch raises
        AccountStateError since those commitments can never be revealed.
        """
        game = self.new_game(stake_lamports, reveal_deadline_slots, game_seed)
        game.txs.update(txs or {})
        account = await self._fetch_account(game)
        if account is None:
            log.info("Game %s never reached the chain; resuming from idle", game.game_address)
            return game

        if account.creator != game.creator:
            raise AccountStateError(f"game {game.game_address} belongs to {account.creator}")
        self._adopt_commitment(game, Player.CREATOR, creator_commitment, account.commit_creator)
        game.stake_lamports = account.stake_lamports
        game.reveal_deadline_slot = account.reveal_deadline_slot

        if account.has_joiner:
            if account.joiner != game.joiner:
                raise AccountStateError(f"game {game.game_address} was joined by {account.joiner}")
            self._adopt_commitment(game, Player.JOINER, joiner_commitment, account.commit_joiner)

        game.revealed_creator = account.revealed_creator
        game.revealed_joiner = account.revealed_joiner
        game.state = _STATE_FROM_CHAIN[account.status]
        if account.revealed_creator and account.revealed_joiner and account.has_winner:
            game.coin = account.coin
            game.winner = account.winner

        log.info("Resumed game %s in state %s", str(game.game_address)[:8], game.state.value)
        await self._checkpoint(game, "game_resumed")
        return game

    @staticmethod
    def _adopt_commitment(
        game: Game, player: Player, local: PlayerCommitment | None, onchain: bytes
    ) -> None:
        if local is not None and local.digest != onchain:
            raise AccountStateError(
                f"stored {player.value} secret does not match the on-chain commitment"
            )
        if player is Player.CREATOR:
            game.creator_commitment = local
            game.commit_creator = onchain
        else:
            game.joiner_commitment = local
            game.commit_joiner = onchain
