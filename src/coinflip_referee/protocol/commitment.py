"""Hiding/binding commitment to a coin side: sha256(choice || secret)."""

from __future__ import annotations

import hashlib
import hmac
import secrets
from dataclasses import dataclass

SECRET_LEN = 32
DIGEST_LEN = 32
CHOICES = (0, 1)  # heads, tails


def new_secret() -> bytes:
    return secrets.token_bytes(SECRET_LEN)


def commit(choice: int, secret: bytes) -> bytes:
    """Return the 32-byte commitment digest for (choice, secret)."""
    if choice not in CHOICES:
        raise ValueError(f"choice must be 0 or 1, got {choice!r}")
    if len(secret) != SECRET_LEN:
        raise ValueError(f"secret must be {SECRET_LEN} bytes, got {len(secret)}")
    return hashlib.sha256(bytes([choice]) + bytes(secret)).digest()


def verify(choice: int, secret: bytes, digest: bytes) -> bool:
    """Check a reveal against its commitment. Malformed input is a mismatch."""
    try:
        expected = commit(choice, secret)
    except (ValueError, TypeError):
        return False
    return hmac.compare_digest(expected, bytes(digest))


@dataclass(frozen=True)
class PlayerCommitment:
    """A player's choice, secret and the digest published on-chain.

    The secret must be kept until reveal. Losing it makes the commitment
    permanently unrevealable for that round.
    """

    choice: int
    secret: bytes
    digest: bytes

    @classmethod
    def generate(cls, choice: int) -> PlayerCommitment:
        secret = new_secret()
        return cls(choice=choice, secret=secret, digest=commit(choice, secret))

    @classmethod
    def from_parts(cls, choice: int, secret: bytes) -> PlayerCommitment:
        return cls(choice=choice, secret=bytes(secret), digest=commit(choice, secret))
