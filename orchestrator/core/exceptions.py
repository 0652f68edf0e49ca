"""Custom exception types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class AttemptOutcome(str, Enum):
    SUCCESS = "success"
    MALFORMED_ENCODING = "malformed_encoding"
    SCHEMA_VIOLATION = "schema_violation"
    TRANSPORT_FAILURE = "transport_failure"


class CandidateFailure(Exception):
    """Raised when a single candidate cannot produce usable output.

    These never escape the failover loop; they are recorded and the next
    candidate is tried.
    """

    outcome: AttemptOutcome

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class TransportFailure(CandidateFailure):
    """Raised when a backend call fails: network error, timeout or non-2xx."""

    outcome = AttemptOutcome.TRANSPORT_FAILURE

    def __init__(self, provider: str, message: str = "Provider unavailable") -> None:
        super().__init__(message)
        self.provider = provider


class CredentialsMissingError(TransportFailure):
    """Raised when a provider's credential reference resolves to nothing."""

    def __init__(self, provider: str) -> None:
        super().__init__(provider, message="Provider credentials missing")


class MalformedEncodingError(CandidateFailure):
    """Raised when model output cannot be parsed as JSON."""

    outcome = AttemptOutcome.MALFORMED_ENCODING


class SchemaViolationError(CandidateFailure):
    """Raised when parsed output does not satisfy the target schema."""

    outcome = AttemptOutcome.SCHEMA_VIOLATION

    def __init__(self, field_path: str, message: str, violations: list[str] | None = None) -> None:
        super().__init__(f"{field_path}: {message}")
        self.field_path = field_path
        self.violations = violations or [self.message]


class GenerationError(Exception):
    """Base class for errors surfaced to the caller of a generation."""


class InsufficientCreditError(GenerationError):
    def __init__(self, user_id: str, requested: int, remaining: int) -> None:
        super().__init__(
            f"User {user_id} requested {requested} credits with {remaining} remaining"
        )
        self.user_id = user_id
        self.requested = requested
        self.remaining = remaining


class NoCandidateAvailableError(GenerationError):
    def __init__(self, capabilities: frozenset[str]) -> None:
        wanted = ", ".join(sorted(capabilities)) or "none"
        super().__init__(f"No active provider/model satisfies capabilities: {wanted}")
        self.capabilities = capabilities


@dataclass(frozen=True)
class CandidateFailureReason:
    ordinal: int
    provider: str
    model: str
    outcome: AttemptOutcome
    message: str


class AllCandidatesExhaustedError(GenerationError):
    def __init__(self, failures: list[CandidateFailureReason]) -> None:
        super().__init__(f"All {len(failures)} candidates failed")
        self.failures = failures


class UnknownReservationError(KeyError):
    """Raised when a reservation token does not exist in the ledger."""

    def __init__(self, token: str) -> None:
        super().__init__(token)
        self.token = token
