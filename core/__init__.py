"""
Core Module Package.

This package contains the infrastructure components
that the trade engine depends on.

Components:
- clock: Wall-clock abstraction (injected, never global)
- exceptions: Custom exception hierarchy
"""

from .clock import (
    ClockProtocol,
    SystemClock,
    MockClock,
    ensure_utc,
    to_iso8601,
    from_iso8601,
)
from .exceptions import (
    Severity,
    ErrorClassification,
    TradeCoreException,
    ConfigurationError,
    InvalidScheduleError,
    NoUpcomingBoundaryError,
    DocumentNotFoundError,
    InvalidDocumentError,
    PersistenceError,
    StoreUnavailableError,
    WriteConflictError,
    TransactionFailedError,
    InvariantViolation,
    DuplicateTradeIdError,
    StateTransitionError,
    RosterInvariantError,
)

__all__ = [
    "ClockProtocol",
    "SystemClock",
    "MockClock",
    "ensure_utc",
    "to_iso8601",
    "from_iso8601",
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
