from typing import Any, Dict, Optional


class StrivioError(RuntimeError):
    """
    Base error for the task core. Carries metadata for structured logging.
    """

    category: str = "runtime"
    retryable: bool = False

    def __init__(self, message: str, *, metadata: Optional[Dict[str, Any]] = None, retryable: Optional[bool] = None) -> None:
        super().__init__(message)
        self.metadata = metadata or {}
        if retryable is not None:
            self.retryable = retryable


class AuthorizationError(StrivioError):
    """Raised when the caller's role or team does not permit the action."""

    category = "authorization"


class PreconditionError(StrivioError):
    """Raised when the record is not in a state that allows the action."""

    category = "precondition"
    retryable = True


class ConsistencyError(StrivioError):
    """Raised when a write would break a cross-record invariant."""

    category = "consistency"


class StaleRecordError(ConsistencyError):
    """Raised when a versioned row changed between read and write."""

    retryable = True


class NotFoundError(StrivioError):
    category = "not_found"


class ValidationError(StrivioError, ValueError):
    """Raised when input validation fails."""

    category = "validation"


class ConfigError(StrivioError):
    """Raised when configuration is invalid or missing."""

    category = "config"


class DeliveryError(StrivioError):
    """Raised by email senders; the outbox worker records it and moves on."""

    category = "delivery"
    retryable = True
