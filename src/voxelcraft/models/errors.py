"""Error taxonomy shared by every orchestration component."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Closed set of failure kinds a step or ledger call can report."""

    USER_REJECTED = "user_rejected"  # signing declined
    NETWORK_UNAVAILABLE = "network_unavailable"  # RPC/store/backend unreachable or timed out
    INVALID_INPUT = "invalid_input"  # malformed address, amount, metadata
    NOT_OWNER = "not_owner"  # ownership precondition failed
    INSUFFICIENT_FUNDS = "insufficient_funds"
    STALE_STATE = "stale_state"  # listing inactive, reward not claimable, vote ineligible
    UPSTREAM_FAILURE = "upstream_failure"  # ledger revert or non-success backend envelope
    CANCELLED = "cancelled"  # caller abandoned the operation


class OperationError(Exception):
    """A typed failure raised by a component and carried in results."""

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"

    def __repr__(self) -> str:
        return f"OperationError({self.kind.value!r}, {self.message!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OperationError):
            return NotImplemented
        return self.kind == other.kind and self.message == other.message

    def __hash__(self) -> int:
        return hash((self.kind, self.message))

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "message": self.message}


def user_rejected(message: str = "signature request declined") -> OperationError:
    return OperationError(ErrorKind.USER_REJECTED, message)


def network_unavailable(message: str) -> OperationError:
    return OperationError(ErrorKind.NETWORK_UNAVAILABLE, message)


def invalid_input(message: str) -> OperationError:
    return OperationError(ErrorKind.INVALID_INPUT, message)


def stale_state(message: str) -> OperationError:
    return OperationError(ErrorKind.STALE_STATE, message)


def upstream_failure(message: str) -> OperationError:
    return OperationError(ErrorKind.UPSTREAM_FAILURE, message)
