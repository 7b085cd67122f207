"""Tool-oracle arbitration of completed rounds."""

from coinflip_referee.oracle.client import (
    VERDICT_PATTERN,
    OracleClient,
    build_prompt,
    match_verdict,
)

__all__ = ["OracleClient", "VERDICT_PATTERN", "build_prompt", "match_verdict"]
