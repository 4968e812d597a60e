"""
Error taxonomy for the tenant intelligence core.

Every failure surfaced to the orchestration layer is a typed subclass of
IntelligenceError so callers can choose user-facing messaging
("not enough data yet" vs. "invalid input") without string matching.

Hierarchy:
    IntelligenceError
    ├── ValidationError            malformed caller input, never retried
    ├── PrivacyError               fails closed to protect the privacy guarantee
    │   ├── InsufficientData
    │   └── InsufficientParticipants
    ├── ModelError
    │   ├── InsufficientSimilarTenants
    │   └── BackendError
    ├── PersistenceError           raised after one local retry
    └── RequestTimeoutError
"""

from typing import Any, Dict, Optional


class IntelligenceError(Exception):
    """Base exception for all intelligence core failures."""

    code = "INTELLIGENCE_ERROR"

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        code: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        if code is not None:
            self.code = code

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a serializable error envelope."""
        return {
            "error": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "context": dict(self.context),
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, context={self.context})"


class ValidationError(IntelligenceError):
    """Caller input is malformed."""
    code = "VALIDATION_ERROR"


class PrivacyError(IntelligenceError):
    """Not enough data or participants to release a private aggregate."""
    code = "PRIVACY_VIOLATION"


class InsufficientData(PrivacyError):
    """Too few raw records in the requested window."""
    code = "INSUFFICIENT_DATA"


class InsufficientParticipants(PrivacyError):
    """Too few eligible tenants after budget gating."""
    code = "INSUFFICIENT_PARTICIPANTS"


class ModelError(IntelligenceError):
    """Prediction could not be produced."""
    code = "MODEL_ERROR"


class InsufficientSimilarTenants(ModelError):
    """Fewer qualifying peers than the prediction minimum."""
    code = "INSUFFICIENT_SIMILAR_TENANTS"


class BackendError(ModelError):
    """A prediction backend failed to train or predict."""
    code = "BACKEND_ERROR"


class PersistenceError(IntelligenceError):
    """A store read or write failed after the local retry."""
    code = "PERSISTENCE_ERROR"


class RequestTimeoutError(IntelligenceError):
    """A request exceeded the configured pipeline timeout."""
    code = "REQUEST_TIMEOUT"


def raise_if_cancelled(cancelled, operation: str) -> None:
    """
    Abort a request whose caller has already given up on it.

    Args:
        cancelled: threading.Event set by the caller on timeout, or None
        operation: Stage about to run (for the error context)
    """
    if cancelled is not None and cancelled.is_set():
        raise RequestTimeoutError(
            f"Request cancelled before {operation}",
            context={"operation": operation, "cancelled": True},
        )
