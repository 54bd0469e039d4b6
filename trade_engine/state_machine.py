"""
Trade Engine - Trade State Machine.

============================================================
PURPOSE
============================================================
Manages trade record lifecycle with strict state transitions.

STATE MACHINE:

    (created) ──► PENDING ──► APPLIED
        │            │
        │            └──────► CANCELLED
        │
        └───────────────────► APPLIED

    A trade is created PENDING when it targets a future round,
    or directly APPLIED when it targets the round currently open.

INVARIANTS:
- Terminal states are final
- Each transition has a guard
- All transitions are logged and produce an audit event
- Records are frozen; a transition returns a replacement

============================================================
"""

import logging
from datetime import datetime
from typing import Optional, Set, Dict, Callable, List, Any, Tuple

from core.exceptions import StateTransitionError

from .types import TradeStatus, TradeRecord, TradeTransitionEvent


logger = logging.getLogger(__name__)


# ============================================================
# STATE TRANSITION RULES
# ============================================================

# Valid transitions from each state
VALID_TRANSITIONS: Dict[TradeStatus, Set[TradeStatus]] = {
    TradeStatus.PENDING: {
        TradeStatus.APPLIED,
        TradeStatus.CANCELLED,
    },
    # Terminal states - no transitions out
    TradeStatus.APPLIED: set(),
    TradeStatus.CANCELLED: set(),
}

# States a record may be created in
INITIAL_STATES: Set[TradeStatus] = {
    TradeStatus.PENDING,
    TradeStatus.APPLIED,
}


# ============================================================
# STATE TRANSITION GUARD
# ============================================================

class TransitionGuard:
    """
    Guard for state transitions.

    Ensures transitions are valid and provides reason for denial.
    """

    @staticmethod
    def can_transition(
        from_state: TradeStatus,
        to_state: TradeStatus,
    ) -> Tuple[bool, str]:
        """
        Check if transition is allowed.

        A repeated transition is not a no-op: cancelling a cancelled
        trade is reported, not absorbed.

        Returns:
            Tuple of (allowed, reason)
        """
        if to_state in VALID_TRANSITIONS.get(from_state, set()):
            return True, "Valid transition"

        if from_state.is_terminal():
            return False, f"Cannot transition from terminal state {from_state.value}"

        return False, f"Invalid transition: {from_state.value} -> {to_state.value}"

    @staticmethod
    def can_create(initial_state: TradeStatus) -> Tuple[bool, str]:
        if initial_state in INITIAL_STATES:
            return True, "Valid initial state"
        return False, f"Trades cannot be created {initial_state.value}"


# ============================================================
# TRADE STATE MACHINE
# ============================================================

class TradeStateMachine:
    """
    State machine for trade record lifecycle.

    Stateless apart from listeners: each call takes a record and
    returns the replacement record together with its audit event.
    """

    def __init__(self):
        self._listeners: List[Callable[[TradeTransitionEvent], None]] = []

    def add_listener(
        self,
        listener: Callable[[TradeTransitionEvent], None],
    ) -> None:
        """Add a transition listener."""
        self._listeners.append(listener)

    def _emit(self, event: TradeTransitionEvent) -> None:
        for listener in self._listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Transition listener error: {e}")

    def created(
        self,
        record: TradeRecord,
        reason: str = "Trade submitted",
        details: Optional[Dict[str, Any]] = None,
    ) -> TradeTransitionEvent:
        """
        Audit event for a newly created record.

        Raises:
            StateTransitionError: If the record's state is not a valid initial state
        """
        allowed, guard_reason = TransitionGuard.can_create(record.status)
        if not allowed:
            raise StateTransitionError(
                f"Cannot create trade {record.trade_id}: {guard_reason}",
                to_state=record.status.value,
                reason=guard_reason,
            )

        event = TradeTransitionEvent(
            trade_id=record.trade_id,
            from_state=None,
            to_state=record.status,
            timestamp=record.timestamp,
            reason=reason,
            details=details or {},
        )
        self._emit(event)

        logger.info(f"Trade {record.trade_id}: created {record.status.value} ({reason})")
        return event

    def transition_to(
        self,
        record: TradeRecord,
        target_state: TradeStatus,
        at: datetime,
        reason: str = "",
        details: Optional[Dict[str, Any]] = None,
    ) -> Tuple[TradeRecord, TradeTransitionEvent]:
        """
        Transition a record to a new state.

        Args:
            record: Current record
            target_state: Target state
            at: Instant of the transition
            reason: Reason for transition
            details: Additional details

        Returns:
            Tuple of (replacement record, event)

        Raises:
            StateTransitionError: If transition is not allowed
        """
        allowed, guard_reason = TransitionGuard.can_transition(record.status, target_state)

        if not allowed:
            raise StateTransitionError(
                f"Cannot transition {record.trade_id} from "
                f"{record.status.value} to {target_state.value}: {guard_reason}",
                from_state=record.status.value,
                to_state=target_state.value,
                reason=guard_reason,
            )

        updated = record.with_status(target_state, at)
        event = TradeTransitionEvent(
            trade_id=record.trade_id,
            from_state=record.status,
            to_state=target_state,
            timestamp=at,
            reason=reason,
            details=details or {},
        )
        self._emit(event)

        logger.info(
            f"Trade {record.trade_id}: "
            f"{record.status.value} -> {target_state.value} ({reason})"
        )

        return updated, event

    # --------------------------------------------------------
    # CONVENIENCE METHODS
    # --------------------------------------------------------

    def mark_applied(
        self,
        record: TradeRecord,
        at: datetime,
        reason: str = "Target round reached",
    ) -> Tuple[TradeRecord, TradeTransitionEvent]:
        """Mark trade as applied."""
        return self.transition_to(record, TradeStatus.APPLIED, at, reason)

    def mark_cancelled(
        self,
        record: TradeRecord,
        at: datetime,
        reason: str = "Cancelled by user",
        details: Optional[Dict[str, Any]] = None,
    ) -> Tuple[TradeRecord, TradeTransitionEvent]:
        """Mark trade as cancelled."""
        return self.transition_to(record, TradeStatus.CANCELLED, at, reason, details)


__all__ = [
    "VALID_TRANSITIONS",
    "INITIAL_STATES",
    "TransitionGuard",
    "TradeStateMachine",
]
