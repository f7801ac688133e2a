"""Error taxonomy for RFQ settlement operations.

Every failure aborts the whole operation; the enclosing ledger transaction is
rolled back, so callers never observe partial state. ``reason`` carries the
revert-style string a contract would surface.
"""


class RfqError(Exception):
    """Base class for all protocol-level failures."""

    code = "rfq_error"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.reason!r})"


class InvalidInput(RfqError):
    """Malformed arguments, expired deadlines or chain-ID mismatches."""

    code = "invalid_input"


class AlreadyProcessed(RfqError):
    """Duplicate quote hash or duplicate inbound message.

    Relayers rely on this signal to make their retries idempotent.
    """

    code = "already_processed"


class Unauthorized(RfqError):
    """Caller lacks the required role, or a signature quorum was not met."""

    code = "unauthorized"


class InsufficientFunds(RfqError):
    """A debit exceeds the available balance or accrued fees."""

    code = "insufficient_funds"


class PausedState(RfqError):
    """The contract is paused and only ``unpause`` is allowed."""

    code = "paused"


# Names used by the message gateway
Forbidden = Unauthorized
Duplicate = AlreadyProcessed
