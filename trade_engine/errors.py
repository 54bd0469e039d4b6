"""
Trade Engine - Error Taxonomy.

============================================================
PURPOSE
============================================================
Error classification for every non-success outcome.

ERROR CATEGORIES:
1. Rejection Errors - Business rules refused the request
2. Configuration Errors - League data is unusable
3. Persistence Errors - Store unavailable or write conflict
4. Internal Errors - Invariant violations

RETRYABLE vs NON-RETRYABLE:
- Retryable: only store write conflicts (optimistic concurrency)
- Non-retryable: everything else, rejections included

============================================================
"""

from enum import Enum
from typing import Dict, Set
from dataclasses import dataclass


# ============================================================
# ERROR CATEGORIES
# ============================================================

class ErrorCategory(Enum):
    """Error category classification."""

    REJECTION = "REJECTION"
    """Expected, user-facing business-rule outcome."""

    CONFIGURATION = "CONFIGURATION"
    """League settings or stored documents are unusable."""

    PERSISTENCE = "PERSISTENCE"
    """Document store failure."""

    INTERNAL = "INTERNAL"
    """Programming invariant violated."""


class ErrorSeverity(Enum):
    """Error severity levels."""

    INFO = "INFO"
    """Expected outcome, informational."""

    WARNING = "WARNING"
    """Non-critical, may resolve on its own."""

    ERROR = "ERROR"
    """Standard error, needs attention."""

    FATAL = "FATAL"
    """Invariant broken, requires immediate action."""


# ============================================================
# ERROR CODE REGISTRY
# ============================================================

@dataclass
class ErrorCodeInfo:
    """Information about an error code."""

    code: str
    """Error code."""

    category: ErrorCategory
    """Error category."""

    severity: ErrorSeverity
    """Error severity."""

    is_retryable: bool
    """Whether the read-evaluate-write may be retried."""

    description: str
    """Human-readable description."""

    recommended_action: str
    """Recommended action to take."""

    escalate_to_admin: bool = False
    """Whether to alert the league administrator."""


ERROR_CODES: Dict[str, ErrorCodeInfo] = {
    # ========== REJECTIONS ==========
    "REJECTED_LOCKOUT": ErrorCodeInfo(
        code="REJECTED_LOCKOUT",
        category=ErrorCategory.REJECTION,
        severity=ErrorSeverity.INFO,
        is_retryable=False,
        description="Trading is locked for the round in play",
        recommended_action="Resubmit after the lockout window closes",
    ),
    "REJECTED_QUOTA_EXCEEDED": ErrorCodeInfo(
        code="REJECTED_QUOTA_EXCEEDED",
        category=ErrorCategory.REJECTION,
        severity=ErrorSeverity.INFO,
        is_retryable=False,
        description="No trades remaining this season",
        recommended_action="None until next season",
    ),
    "REJECTED_INVALID_SLOT": ErrorCodeInfo(
        code="REJECTED_INVALID_SLOT",
        category=ErrorCategory.REJECTION,
        severity=ErrorSeverity.INFO,
        is_retryable=False,
        description="Outgoing and incoming players occupy different slots",
        recommended_action="Pick a replacement in the same position",
    ),
    "REJECTED_DUPLICATE_PLAYER": ErrorCodeInfo(
        code="REJECTED_DUPLICATE_PLAYER",
        category=ErrorCategory.REJECTION,
        severity=ErrorSeverity.INFO,
        is_retryable=False,
        description="Incoming player is already on the roster",
        recommended_action="Pick a player not already selected",
    ),
    "CANNOT_CANCEL_AFTER_LOCKOUT": ErrorCodeInfo(
        code="CANNOT_CANCEL_AFTER_LOCKOUT",
        category=ErrorCategory.REJECTION,
        severity=ErrorSeverity.INFO,
        is_retryable=False,
        description="Target round's lockout window has started",
        recommended_action="None; the trade will be applied",
    ),
    "CANNOT_CANCEL_NOT_PENDING": ErrorCodeInfo(
        code="CANNOT_CANCEL_NOT_PENDING",
        category=ErrorCategory.REJECTION,
        severity=ErrorSeverity.INFO,
        is_retryable=False,
        description="Trade is already applied or cancelled",
        recommended_action="None",
    ),
    "TRADE_NOT_FOUND": ErrorCodeInfo(
        code="TRADE_NOT_FOUND",
        category=ErrorCategory.REJECTION,
        severity=ErrorSeverity.WARNING,
        is_retryable=False,
        description="No trade with that id for this user",
        recommended_action="Check the trade id",
    ),
    "REJECTED_TRADE_ID_REUSED": ErrorCodeInfo(
        code="REJECTED_TRADE_ID_REUSED",
        category=ErrorCategory.REJECTION,
        severity=ErrorSeverity.WARNING,
        is_retryable=False,
        description="Trade id already used for a different trade",
        recommended_action="Submit with a new trade id",
    ),

    # ========== CONFIGURATION ==========
    "CFG_INVALID": ErrorCodeInfo(
        code="CFG_INVALID",
        category=ErrorCategory.CONFIGURATION,
        severity=ErrorSeverity.ERROR,
        is_retryable=False,
        description="League settings are missing fields or hold bad values",
        recommended_action="Fix league settings and republish",
        escalate_to_admin=True,
    ),
    "CFG_INVALID_SCHEDULE": ErrorCodeInfo(
        code="CFG_INVALID_SCHEDULE",
        category=ErrorCategory.CONFIGURATION,
        severity=ErrorSeverity.ERROR,
        is_retryable=False,
        description="Round lockout schedule has overlapping or inverted windows",
        recommended_action="Fix league settings and republish",
        escalate_to_admin=True,
    ),
    "CFG_SCHEDULE_EXHAUSTED": ErrorCodeInfo(
        code="CFG_SCHEDULE_EXHAUSTED",
        category=ErrorCategory.CONFIGURATION,
        severity=ErrorSeverity.WARNING,
        is_retryable=False,
        description="No upcoming lockout boundary; season schedule is over",
        recommended_action="Publish next season's schedule",
        escalate_to_admin=True,
    ),
    "CFG_DOCUMENT_NOT_FOUND": ErrorCodeInfo(
        code="CFG_DOCUMENT_NOT_FOUND",
        category=ErrorCategory.CONFIGURATION,
        severity=ErrorSeverity.ERROR,
        is_retryable=False,
        description="Required document missing from the store",
        recommended_action="Publish league settings / create the roster",
        escalate_to_admin=True,
    ),
    "CFG_INVALID_DOCUMENT": ErrorCodeInfo(
        code="CFG_INVALID_DOCUMENT",
        category=ErrorCategory.CONFIGURATION,
        severity=ErrorSeverity.ERROR,
        is_retryable=False,
        description="Stored document could not be decoded",
        recommended_action="Inspect and repair the document",
        escalate_to_admin=True,
    ),

    # ========== PERSISTENCE ==========
    "STO_WRITE_CONFLICT": ErrorCodeInfo(
        code="STO_WRITE_CONFLICT",
        category=ErrorCategory.PERSISTENCE,
        severity=ErrorSeverity.WARNING,
        is_retryable=True,
        description="Document changed between read and write",
        recommended_action="Retry read-evaluate-write",
    ),
    "STO_UNAVAILABLE": ErrorCodeInfo(
        code="STO_UNAVAILABLE",
        category=ErrorCategory.PERSISTENCE,
        severity=ErrorSeverity.ERROR,
        is_retryable=False,
        description="Document store could not be reached",
        recommended_action="Check database connectivity",
        escalate_to_admin=True,
    ),
    "STO_TRANSACTION_FAILED": ErrorCodeInfo(
        code="STO_TRANSACTION_FAILED",
        category=ErrorCategory.PERSISTENCE,
        severity=ErrorSeverity.ERROR,
        is_retryable=False,
        description="Write conflicts persisted past the retry budget",
        recommended_action="Investigate contention on the user's documents",
        escalate_to_admin=True,
    ),

    # ========== INTERNAL ==========
    "INT_DUPLICATE_TRADE_ID": ErrorCodeInfo(
        code="INT_DUPLICATE_TRADE_ID",
        category=ErrorCategory.INTERNAL,
        severity=ErrorSeverity.FATAL,
        is_retryable=False,
        description="Trade id already present in the ledger",
        recommended_action="Investigate id generation",
        escalate_to_admin=True,
    ),
    "INT_INVALID_TRANSITION": ErrorCodeInfo(
        code="INT_INVALID_TRANSITION",
        category=ErrorCategory.INTERNAL,
        severity=ErrorSeverity.FATAL,
        is_retryable=False,
        description="Trade status transition not permitted",
        recommended_action="Investigate caller",
        escalate_to_admin=True,
    ),
    "INT_ROSTER_INVARIANT": ErrorCodeInfo(
        code="INT_ROSTER_INVARIANT",
        category=ErrorCategory.INTERNAL,
        severity=ErrorSeverity.FATAL,
        is_retryable=False,
        description="Roster slot counts violate the required configuration",
        recommended_action="Repair the roster document",
        escalate_to_admin=True,
    ),
    "INT_STATE_CORRUPTION": ErrorCodeInfo(
        code="INT_STATE_CORRUPTION",
        category=ErrorCategory.INTERNAL,
        severity=ErrorSeverity.FATAL,
        is_retryable=False,
        description="Internal state corruption detected",
        recommended_action="Immediate investigation",
        escalate_to_admin=True,
    ),
}


def get_error_info(code: str) -> ErrorCodeInfo:
    """
    Get error info for a code.

    Args:
        code: Error code

    Returns:
        ErrorCodeInfo or default unknown error
    """
    return ERROR_CODES.get(code, ErrorCodeInfo(
        code=code,
        category=ErrorCategory.INTERNAL,
        severity=ErrorSeverity.ERROR,
        is_retryable=False,
        description=f"Unknown error: {code}",
        recommended_action="Investigate error",
    ))


def is_retryable(code: str) -> bool:
    """Check if an error code is retryable."""
    return get_error_info(code).is_retryable


def should_escalate(code: str) -> bool:
    """Check if an error should be escalated to the league admin."""
    return get_error_info(code).escalate_to_admin


# ============================================================
# DERIVED ERROR SETS
# ============================================================

RETRYABLE_ERROR_CODES: Set[str] = {
    code for code, info in ERROR_CODES.items() if info.is_retryable
}

ESCALATION_ERROR_CODES: Set[str] = {
    code for code, info in ERROR_CODES.items() if info.escalate_to_admin
}

REJECTION_ERROR_CODES: Set[str] = {
    code for code, info in ERROR_CODES.items()
    if info.category == ErrorCategory.REJECTION
}
