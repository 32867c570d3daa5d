"""Domain errors for the remote signing workflow.

Exception Hierarchy:
    SigningError (base)
    ├── InvalidConfiguration      422  bad enum or combination at form submission
    ├── OutOfOrderRequest         409  state machine precondition violated
    ├── DigestPreparationFailed   502  engine produced no usable data to sign
    ├── FinalizationFailed        502  engine could not assemble the signed document
    └── DownloadNotReady          409  document requested before finalization

Configuration errors are recovered by re-displaying the form. Every other
error is surfaced as an explicit non-success response.
"""

from __future__ import annotations

from typing import Any


class SigningError(Exception):
    """Base exception for all remote signing domain errors.

    Attributes:
        message: Descriptive error message
        error_code: Machine-readable error identifier
        details: Additional context about the error
        status_code: HTTP status used when the error reaches the API boundary
    """

    status_code: int = 500
    default_code: str = "signing_error"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details if self.details else None,
        }


class InvalidConfiguration(SigningError):
    """Raised when a configuration submission cannot be accepted.

    All problems found in one submission are collected in ``errors`` so the
    form can be re-displayed with every message at once.

    Example:
        >>> raise InvalidConfiguration(["digestAlgorithm: 'MD5' is not one of SHA1, SHA256"])
    """

    status_code = 422
    default_code = "invalid_configuration"

    def __init__(self, errors: list[str], message: str = "Invalid signing configuration") -> None:
        self.errors = list(errors)
        super().__init__(message, details={"errors": self.errors})


class OutOfOrderRequest(SigningError):
    """Raised when an operation is called in a session state that does not allow it."""

    status_code = 409
    default_code = "out_of_order_request"

    def __init__(self, operation: str, state: str | None, expected: list[str] | None = None) -> None:
        self.operation = operation
        self.state = state
        super().__init__(
            f"'{operation}' is not allowed in state {state or 'NONE'}",
            details={"operation": operation, "state": state, "expected": expected or []},
        )


class DigestPreparationFailed(SigningError):
    """Raised when the engine yields no usable data to sign or content timestamp."""

    status_code = 502
    default_code = "digest_preparation_failed"


class FinalizationFailed(SigningError):
    """Raised when the engine cannot produce the signed document.

    The cause is opaque to the coordinator: a signature that does not verify,
    an unreachable engine, or an empty result all land here.
    """

    status_code = 502
    default_code = "finalization_failed"


class DownloadNotReady(SigningError):
    """Raised when the signed document is requested before finalization."""

    status_code = 409
    default_code = "download_not_ready"
