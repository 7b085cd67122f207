"""Configuration models for the round runner."""

from __future__ import annotations

from dataclasses import dataclass, field

from coinflip_referee.errors import ConfigError

LAMPORTS_PER_SOL = 1_000_000_000

DEFAULT_RPC_URL = "https://rpc.ambient.xyz"
DEFAULT_PROGRAM_ID = "61LZE86MZSN8vKj9fXStz3LXnFkhkBXy6LNUBaPSAJdi"
DEFAULT_ORACLE_PROGRAM_ID = "721QWDeUzVL77UCzCFHsVGCMBVup8GsAMPaD2YvWvw97"


@dataclass
class OracleConfig:
    """Arbitration oracle settings."""

    program_id: str = DEFAULT_ORACLE_PROGRAM_ID
    wallet_path: str = ""  # payer; falls back to the main wallet
    version: int = 0
    budget: int = 1_000_000  # lamports
    poll_interval: float = 4.0  # seconds
    max_attempts: int | None = None
    timeout: float | None = 900.0  # seconds, None = unbounded
    terminal_tokens: list[str] = field(default_factory=lambda: ["VALID", "CHEAT"])
    auto_reclaim: bool = False


@dataclass
class RunnerConfig:
    """Complete runner configuration."""

    # Ledger
    rpc_url: str = DEFAULT_RPC_URL
    commitment: str = "confirmed"
    wallet_path: str = ""  # creator / payer key file (Solana CLI JSON)
    joiner_wallet_path: str = ""

    # Game program
    program_id: str = DEFAULT_PROGRAM_ID
    stake_lamports: int = 50_000_000  # 0.05 SOL
    reveal_deadline_slots: int = 500
    creator_choice: int = 0  # heads
    joiner_choice: int = 1  # tails

    # Funding
    joiner_min_lamports: int = 100_000_000  # 0.1 SOL
    airdrop_lamports: int = 200_000_000  # 0.2 SOL

    # Storage
    artifacts_dir: str = "artifacts"
    db_path: str = "~/.coinflip_referee/rounds.db"

    log_level: str = "info"

    oracle: OracleConfig = field(default_factory=OracleConfig)

    @property
    def stake_sol(self) -> float:
        return self.stake_lamports / LAMPORTS_PER_SOL

    def validate(self, require_joiner: bool = False, require_round: bool = False) -> None:
        """Raise ConfigError listing every missing or invalid required value.

        `require_round` also checks the stake and both choices, so a bad
        round is refused before anything is funded or sent.
        """
        missing = []
        if not self.rpc_url:
            missing.append("rpc_url (ANCHOR_PROVIDER_URL)")
        if not self.wallet_path:
            missing.append("wallet_path (ANCHOR_WALLET)")
        if require_joiner and not self.joiner_wallet_path:
            missing.append("joiner_wallet_path (JOINER_KEYPAIR)")

        invalid = []
        if require_round:
            if self.stake_lamports <= 0:
                invalid.append(f"stake_lamports must be positive (got {self.stake_lamports})")
            if self.reveal_deadline_slots < 0:
                invalid.append(
                    f"reveal_deadline_slots must be >= 0 (got {self.reveal_deadline_slots})"
                )
            for name in ("creator_choice", "joiner_choice"):
                value = getattr(self, name)
                if value not in (0, 1):
                    invalid.append(f"{name} must be 0 or 1 (got {value})")

        if missing or invalid:
            raise ConfigError(missing, invalid)
