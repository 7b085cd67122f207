"""Key-file loading (Solana CLI JSON format: a list of 64 byte values)."""

from __future__ import annotations

import json
from pathlib import Path

from solders.keypair import Keypair

from coinflip_referee.errors import ConfigError


def load_keypair(path: str | Path) -> Keypair:
    p = Path(path).expanduser()
    if not p.exists():
        raise ConfigError([f"key file {p} (not found)"])
    with open(p) as f:
        raw = json.load(f)
    if not isinstance(raw, list) or len(raw) != 64:
        raise ConfigError([f"key file {p} (expected a JSON array of 64 bytes)"])
    return Keypair.from_bytes(bytes(raw))


def save_keypair(keypair: Keypair, path: str | Path) -> Path:
    """Write a keypair in the same format load_keypair reads."""
    p = Path(path).expanduser()
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "w") as f:
        json.dump(list(bytes(keypair)), f)
    p.chmod(0o600)
    return p
