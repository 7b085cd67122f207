"""Exception taxonomy for round orchestration and refereeing.

Every exception aborts the current run. Nothing here is retried automatically.
"""

from __future__ import annotations


class CoinflipRefereeError(Exception):
    """Base class for all errors surfaced to the operator."""


class ConfigError(CoinflipRefereeError):
    """Required configuration is missing or invalid."""

    def __init__(self, missing: list[str], invalid: list[str] | None = None):
        invalid = invalid or []
        parts = []
        if missing:
            parts.append(f"Missing configuration: {', '.join(missing)}")
        if invalid:
            parts.append(f"Invalid configuration: {', '.join(invalid)}")
        super().__init__("; ".join(parts))
        self.missing = missing
        self.invalid = invalid


class TransportError(CoinflipRefereeError):
    """The RPC endpoint is unreachable or timed out."""


class FundingError(CoinflipRefereeError):
    """A balance top-up failed. `remediation` tells the operator what to run."""

    def __init__(self, message: str, remediation: str):
        super().__init__(message)
        self.remediation = remediation


class SequencingError(CoinflipRefereeError):
    """A step was attempted out of order. The local game is left untouched."""


class DeadlineExpiredError(SequencingError):
    """The reveal deadline has passed; only forfeit remains."""


class AccountStateError(CoinflipRefereeError):
    """On-chain account state is missing or contradicts the local mirror."""


class ProgramRejectedError(CoinflipRefereeError):
    """The remote program rejected an instruction.

    `error_kind` is the classified reason ("bad_status", "abi_mismatch", ...).
    `logs` are the program logs exactly as the RPC node returned them.
    """

    def __init__(
        self,
        step: str,
        error_kind: str,
        detail: str,
        logs: list[str] | None = None,
        signature: str | None = None,
    ):
        super().__init__(f"{step} rejected ({error_kind}): {detail}")
        self.step = step
        self.error_kind = error_kind
        self.detail = detail
        self.logs = logs or []
        self.signature = signature


class OracleError(CoinflipRefereeError):
    """The arbitration request could not be submitted."""


class OracleTimeoutError(OracleError):
    """No verdict appeared within the attempt budget or wall-clock deadline."""

    def __init__(self, attempts: int, elapsed: float):
        super().__init__(
            f"No oracle verdict after {attempts} attempts ({elapsed:.1f}s)"
        )
        self.attempts = attempts
        self.elapsed = elapsed


class OracleCancelledError(OracleTimeoutError):
    """Polling was cancelled by the caller before a verdict appeared."""

    def __init__(self, attempts: int, elapsed: float):
        super().__init__(attempts, elapsed)
        self.args = (f"Oracle polling cancelled after {attempts} attempts ({elapsed:.1f}s)",)
