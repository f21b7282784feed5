"""
Error taxonomy for conversation flows.

Validation and session errors are raised inside workflow transitions and
turned into re-prompts by the state machine. The transaction orchestrator
converts the remaining kinds into typed outcomes, so none of these
exceptions ever reaches the messaging transport.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Classification carried by failed outcomes."""

    VALIDATION = "validation"
    SESSION_EXPIRED = "session_expired"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    UNSUPPORTED_OPERATION = "unsupported_operation"
    EXTERNAL_FAILURE = "external_failure"
    INVALID_ACTION = "invalid_action"


class FlowError(Exception):
    """Base class for all conversation flow errors."""

    kind: ErrorKind = ErrorKind.VALIDATION
    recoverable: bool = True

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(FlowError):
    """Malformed user input. The current step is re-prompted."""

    kind = ErrorKind.VALIDATION


class SessionExpired(FlowError):
    """Data required by the current step is missing (restart, stale button)."""

    kind = ErrorKind.SESSION_EXPIRED

    def __init__(self, message: str = "Session expired. Please start again."):
        super().__init__(message)


class InsufficientFunds(FlowError):
    """Balance (plus any fee buffer) does not cover the requested amount."""

    kind = ErrorKind.INSUFFICIENT_FUNDS

    def __init__(self, message: str, shortfall=None):
        super().__init__(message)
        self.shortfall = shortfall


class UnsupportedOperation(FlowError):
    """Asset, pair or identity cannot be resolved. The flow is discarded."""

    kind = ErrorKind.UNSUPPORTED_OPERATION
    recoverable = False


class ExternalFailure(FlowError):
    """
    A capability call failed or timed out.

    Args:
        message: Human readable description
        recoverable: False when the failure happened during execution and
            side effects may already have occurred
        cause: Original exception, if any
    """

    kind = ErrorKind.EXTERNAL_FAILURE

    def __init__(self, message: str, recoverable: bool = True, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.recoverable = recoverable
        self.cause = cause


class InvalidAction(FlowError):
    """A button token was malformed, stale or does not apply to the current step."""

    kind = ErrorKind.INVALID_ACTION

    def __init__(self, message: str = "Invalid action. Please use the latest message buttons."):
        super().__init__(message)
