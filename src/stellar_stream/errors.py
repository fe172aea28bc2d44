"""Error taxonomy for stream operations and ledger interaction."""

from __future__ import annotations


class StreamError(Exception):
    """Base class for all stellar_stream errors."""


class ValidationError(StreamError):
    """Bad caller input. Never reaches the ledger."""

    def __init__(self, issues: list[tuple[str, str]]) -> None:
        self.issues = issues
        super().__init__("; ".join(f"{field}: {message}" for field, message in issues))


class ConfigurationError(StreamError):
    """Required external-service parameters are missing."""


class DecodeError(StreamError):
    """A stream or event payload could not be decoded."""


class LedgerError(StreamError):
    """Base class for failures talking to the ledger."""


class LedgerUnavailable(LedgerError):
    """The RPC node could not be reached. Transient."""


class LedgerTimeout(LedgerError):
    """Confirmation polling ran out of attempts.

    The ledger-side outcome is unknown: the transaction may still land.
    Retrying without a pre-check risks a duplicate submission.
    """

    def __init__(self, tx_hash: str, attempts: int) -> None:
        self.tx_hash = tx_hash
        self.attempts = attempts
        super().__init__(
            f"transaction {tx_hash} unresolved after {attempts} status checks"
        )


class LedgerRejected(LedgerError):
    """The ledger definitively refused the transaction. Safe to resubmit."""

    def __init__(self, reason: str, tx_hash: str | None = None) -> None:
        self.reason = reason
        self.tx_hash = tx_hash
        suffix = f" (tx={tx_hash})" if tx_hash else ""
        super().__init__(f"transaction rejected: {reason}{suffix}")
