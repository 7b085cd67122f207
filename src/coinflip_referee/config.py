"""Configuration loading: TOML file + environment variables."""

from __future__ import annotations

import os
from pathlib import Path

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:
    import tomli as tomllib  # type: ignore[no-redef]

from coinflip_referee.models.config import OracleConfig, RunnerConfig

# Variables set by the Anchor toolchain, honoured for compatibility.
ANCHOR_PROVIDER_URL = "ANCHOR_PROVIDER_URL"
ANCHOR_WALLET = "ANCHOR_WALLET"
JOINER_KEYPAIR = "JOINER_KEYPAIR"


def _env(env_prefix: str, name: str, fallback: str | None = None) -> str | None:
    value = os.environ.get(f"{env_prefix}{name}")
    if not value and fallback:
        value = os.environ.get(fallback)
    return value or None


def load_config(
    config_path: str | Path | None = None,
    env_prefix: str = "COINFLIP_REFEREE_",
) -> RunnerConfig:
    """Load runner configuration from a TOML file and env vars.

    Priority (highest wins):
        1. Prefixed environment variables (COINFLIP_REFEREE_RPC_URL, ...)
        2. Anchor environment variables (ANCHOR_PROVIDER_URL, ANCHOR_WALLET,
           JOINER_KEYPAIR)
        3. TOML config file
        4. Defaults from RunnerConfig
    """
    raw: dict = {}
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.exists():
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    cfg = RunnerConfig()

    # ── Ledger section ─────────────────────────────────────
    ledger = raw.get("ledger", {})
    if v := ledger.get("rpc_url"):
        cfg.rpc_url = str(v)
    if v := ledger.get("commitment"):
        cfg.commitment = str(v)
    if v := ledger.get("wallet_path"):
        cfg.wallet_path = str(v)
    if v := ledger.get("joiner_wallet_path"):
        cfg.joiner_wallet_path = str(v)
    if v := ledger.get("joiner_min_lamports"):
        cfg.joiner_min_lamports = int(v)
    if v := ledger.get("airdrop_lamports"):
        cfg.airdrop_lamports = int(v)

    # ── Game section ───────────────────────────────────────
    game = raw.get("game", {})
    if v := game.get("program_id"):
        cfg.program_id = str(v)
    if (v := game.get("stake_lamports")) is not None:
        cfg.stake_lamports = int(v)
    if (v := game.get("reveal_deadline_slots")) is not None:
        cfg.reveal_deadline_slots = int(v)
    if (v := game.get("creator_choice")) is not None:
        cfg.creator_choice = int(v)
    if (v := game.get("joiner_choice")) is not None:
        cfg.joiner_choice = int(v)

    # ── Oracle section ─────────────────────────────────────
    oracle_raw = raw.get("oracle", {})
    defaults = OracleConfig()
    cfg.oracle = OracleConfig(
        program_id=str(oracle_raw.get("program_id", defaults.program_id)),
        wallet_path=str(oracle_raw.get("wallet_path", defaults.wallet_path)),
        version=int(oracle_raw.get("version", defaults.version)),
        budget=int(oracle_raw.get("budget", defaults.budget)),
        poll_interval=float(oracle_raw.get("poll_interval", defaults.poll_interval)),
        max_attempts=oracle_raw.get("max_attempts", defaults.max_attempts),
        timeout=oracle_raw.get("timeout", defaults.timeout),
        terminal_tokens=list(oracle_raw.get("terminal_tokens", defaults.terminal_tokens)),
        auto_reclaim=bool(oracle_raw.get("auto_reclaim", defaults.auto_reclaim)),
    )

    # ── Storage section ────────────────────────────────────
    storage = raw.get("storage", {})
    if v := storage.get("artifacts_dir"):
        cfg.artifacts_dir = str(v)
    if v := storage.get("db_path"):
        cfg.db_path = str(v)

    # ── Runner section ─────────────────────────────────────
    runner = raw.get("runner", {})
    if v := runner.get("log_level"):
        cfg.log_level = str(v)

    # ── Environment variable overrides (highest priority) ──
    if v := _env(env_prefix, "RPC_URL", ANCHOR_PROVIDER_URL):
        cfg.rpc_url = v
    if v := _env(env_prefix, "WALLET", ANCHOR_WALLET):
        cfg.wallet_path = v
    if v := _env(env_prefix, "JOINER_WALLET", JOINER_KEYPAIR):
        cfg.joiner_wallet_path = v
    if v := _env(env_prefix, "PROGRAM_ID"):
        cfg.program_id = v
    if v := _env(env_prefix, "ORACLE_PROGRAM_ID"):
        cfg.oracle.program_id = v

    # Expand ~ in paths
    for attr in ("wallet_path", "joiner_wallet_path", "artifacts_dir", "db_path"):
        if value := getattr(cfg, attr):
            setattr(cfg, attr, str(Path(value).expanduser()))
    if cfg.oracle.wallet_path:
        cfg.oracle.wallet_path = str(Path(cfg.oracle.wallet_path).expanduser())

    return cfg
