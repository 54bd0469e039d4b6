"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines all custom exceptions for the trade core.

- Provides clear exception hierarchy
- Enables specific error handling
- Supports error categorization for admin alerting
- Includes context for debugging

Business-rule rejections (lockout, quota, slot, duplicate) are
NOT exceptions: they are returned as result codes on TradeResult.
Everything below is raised.

============================================================
EXCEPTION HIERARCHY
============================================================
TradeCoreException (base)
├── ConfigurationError
│   ├── InvalidScheduleError
│   ├── NoUpcomingBoundaryError
│   ├── DocumentNotFoundError
│   └── InvalidDocumentError
├── PersistenceError
│   ├── StoreUnavailableError
│   ├── WriteConflictError
│   └── TransactionFailedError
└── InvariantViolation
    ├── DuplicateTradeIdError
    ├── StateTransitionError
    └── RosterInvariantError

============================================================
"""

from enum import Enum
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# ============================================================
# SEVERITY LEVELS
# ============================================================

class Severity(Enum):
    """Exception severity levels for alerting."""

    LOW = "low"
    """Minor issue, informational."""

    MEDIUM = "medium"
    """Moderate issue, requires attention."""

    HIGH = "high"
    """Serious issue, needs an administrator."""

    CRITICAL = "critical"
    """Invariant broken, requires immediate action."""


# ============================================================
# ERROR CLASSIFICATION
# ============================================================

class ErrorClassification(Enum):
    """Classification of error recoverability."""

    RECOVERABLE = "recoverable"
    """Error can be recovered from automatically."""

    TRANSIENT = "transient"
    """Temporary error, retry may succeed."""

    NON_RECOVERABLE = "non_recoverable"
    """Permanent error, requires intervention."""


# ============================================================
# BASE EXCEPTION
# ============================================================

class TradeCoreException(Exception):
    """
    Base exception for all trade core errors.

    All exceptions carry:
    - severity: for alerting
    - context: for debugging
    - classification: recoverability, reported with the error
    - timestamp: when the error occurred
    """

    default_severity: Severity = Severity.MEDIUM
    default_classification: ErrorClassification = ErrorClassification.RECOVERABLE
    error_code: str = "INT_UNEXPECTED_ERROR"

    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        classification: Optional[ErrorClassification] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)

        self.message = message
        self.severity = severity or self.default_severity
        self.context = context or {}
        self.classification = classification or self.default_classification
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging/storage."""
        return {
            "type": type(self).__name__,
            "code": self.error_code,
            "message": self.message,
            "severity": self.severity.value,
            "classification": self.classification.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }

    def to_log_format(self) -> str:
        """Format exception for structured logging."""
        ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
        line = f"[{self.severity.value.upper()}] {type(self).__name__}: {self.message}"
        if ctx_str:
            line += f" | {ctx_str}"
        return line


# ============================================================
# CONFIGURATION ERRORS
# ============================================================

class ConfigurationError(TradeCoreException):
    """League or engine configuration is unusable."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.NON_RECOVERABLE
    error_code = "CFG_INVALID"


class InvalidScheduleError(ConfigurationError):
    """Round lockout schedule is malformed (overlap, inverted or duplicate window)."""

    error_code = "CFG_INVALID_SCHEDULE"

    def __init__(
        self,
        message: str,
        round_number: Optional[int] = None,
        other_round: Optional[int] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if round_number is not None:
            context["round"] = round_number
        if other_round is not None:
            context["other_round"] = other_round

        super().__init__(message, context=context, **kwargs)


class NoUpcomingBoundaryError(ConfigurationError):
    """The lockout schedule is exhausted for the season."""

    default_severity = Severity.MEDIUM
    error_code = "CFG_SCHEDULE_EXHAUSTED"

    def __init__(self, message: str, now: Optional[datetime] = None, **kwargs):
        context = kwargs.pop("context", {})

        if now is not None:
            context["now"] = now.isoformat()

        super().__init__(message, context=context, **kwargs)


class DocumentNotFoundError(ConfigurationError):
    """A required document is missing from the store."""

    error_code = "CFG_DOCUMENT_NOT_FOUND"

    def __init__(self, key: str, **kwargs):
        context = kwargs.pop("context", {})
        context["key"] = key
        super().__init__(f"Document not found: {key}", context=context, **kwargs)
        self.key = key


class InvalidDocumentError(ConfigurationError):
    """A stored document could not be decoded."""

    error_code = "CFG_INVALID_DOCUMENT"

    def __init__(self, key: str, reason: str, **kwargs):
        context = kwargs.pop("context", {})
        context["key"] = key
        context["reason"] = reason
        super().__init__(f"Invalid document at {key}: {reason}", context=context, **kwargs)
        self.key = key


# ============================================================
# PERSISTENCE ERRORS
# ============================================================

class PersistenceError(TradeCoreException):
    """Base class for document store failures."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.TRANSIENT
    error_code = "STO_ERROR"


class StoreUnavailableError(PersistenceError):
    """The store could not be reached."""

    error_code = "STO_UNAVAILABLE"


class WriteConflictError(PersistenceError):
    """A document changed between read and write (optimistic concurrency)."""

    default_severity = Severity.LOW
    error_code = "STO_WRITE_CONFLICT"

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        expected_version: Optional[int] = None,
        actual_version: Optional[int] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if key:
            context["key"] = key
        if expected_version is not None:
            context["expected_version"] = expected_version
        if actual_version is not None:
            context["actual_version"] = actual_version

        super().__init__(message, context=context, **kwargs)
        self.key = key


class TransactionFailedError(PersistenceError):
    """Retries exhausted; nothing was applied."""

    default_classification = ErrorClassification.NON_RECOVERABLE
    error_code = "STO_TRANSACTION_FAILED"

    def __init__(self, message: str, attempts: int = 0, **kwargs):
        context = kwargs.pop("context", {})
        context["attempts"] = attempts
        super().__init__(message, context=context, **kwargs)
        self.attempts = attempts


# ============================================================
# INVARIANT VIOLATIONS
# ============================================================

class InvariantViolation(TradeCoreException):
    """A programming invariant was broken. Never user-facing."""

    default_severity = Severity.CRITICAL
    default_classification = ErrorClassification.NON_RECOVERABLE
    error_code = "INT_STATE_CORRUPTION"


class DuplicateTradeIdError(InvariantViolation):
    """A trade id already exists in the ledger."""

    error_code = "INT_DUPLICATE_TRADE_ID"

    def __init__(self, trade_id: str, **kwargs):
        context = kwargs.pop("context", {})
        context["trade_id"] = trade_id
        super().__init__(f"Duplicate trade id: {trade_id}", context=context, **kwargs)
        self.trade_id = trade_id


class StateTransitionError(InvariantViolation):
    """Invalid trade status transition."""

    error_code = "INT_INVALID_TRANSITION"

    def __init__(
        self,
        message: str,
        from_state: Optional[str] = None,
        to_state: Optional[str] = None,
        reason: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if from_state:
            context["from_state"] = from_state
        if to_state:
            context["to_state"] = to_state
        if reason:
            context["reason"] = reason

        super().__init__(message, context=context, **kwargs)


class RosterInvariantError(InvariantViolation):
    """Roster slot counts do not match the required configuration."""

    error_code = "INT_ROSTER_INVARIANT"


__all__ = [
    "Severity",
    "ErrorClassification",
    "TradeCoreException",
    "ConfigurationError",
    "InvalidScheduleError",
    "NoUpcomingBoundaryError",
    "DocumentNotFoundError",
    "InvalidDocumentError",
    "PersistenceError",
    "StoreUnavailableError",
    "WriteConflictError",
    "TransactionFailedError",
    "InvariantViolation",
    "DuplicateTradeIdError",
    "StateTransitionError",
    "RosterInvariantError",
]
