"""
Trade Engine - Trade Ledger.

============================================================
PURPOSE
============================================================
Append-only trade history and the ONLY derivation of quota
consumption.

RULES:
- trades_used is always counted from history, never stored
- Entries are never deleted; a status change replaces the
  frozen record in place and appends an audit event
- Only applied trades consume quota
- Trades applied during an unlimited pre-season are free;
  every other applied trade counts, including ones before
  season_start or after season_end

============================================================
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from core.exceptions import DuplicateTradeIdError

from .state_machine import TradeStateMachine
from .types import (
    LeagueSettings,
    SeasonPhaseBoundaries,
    TradeRecord,
    TradeStatus,
    TradeTransitionEvent,
    UserTradeState,
)


logger = logging.getLogger(__name__)


class TradeLedger:
    """
    Operations over a UserTradeState's history.

    The ledger mutates the UserTradeState it is given; callers
    pass a working copy and persist it atomically.

    HISTORY VS AUDIT TRAIL:
    `history` holds one entry per trade showing its current
    status. A transition swaps in a new frozen record at the same
    index; the superseded record object is never modified.
    `transitions` is the append-only audit trail: every status a
    trade has held is recoverable from its events, in order.
    """

    def __init__(self, state_machine: Optional[TradeStateMachine] = None):
        self._state_machine = state_machine or TradeStateMachine()

    @property
    def state_machine(self) -> TradeStateMachine:
        return self._state_machine

    # --------------------------------------------------------
    # WRITES
    # --------------------------------------------------------

    def append(
        self,
        state: UserTradeState,
        record: TradeRecord,
        reason: str = "Trade submitted",
        details: Optional[Dict[str, Any]] = None,
    ) -> TradeTransitionEvent:
        """
        Append a new record and its creation event.

        Raises:
            DuplicateTradeIdError: If the trade id is already recorded
            StateTransitionError: If the record is in a non-initial state
        """
        if state.find(record.trade_id) is not None:
            logger.critical(
                f"Duplicate trade id {record.trade_id} for user {state.user_id}"
            )
            raise DuplicateTradeIdError(
                record.trade_id,
                context={"user_id": state.user_id},
            )

        event = self._state_machine.created(record, reason=reason, details=details)
        state.history.append(record)
        state.transitions.append(event)
        return event

    def transition(
        self,
        state: UserTradeState,
        trade_id: str,
        to_status: TradeStatus,
        at: datetime,
        reason: str = "",
        details: Optional[Dict[str, Any]] = None,
    ) -> TradeRecord:
        """
        Move a recorded trade to a new status.

        Returns:
            The replacement record

        Raises:
            KeyError: If the trade id is not in history
            StateTransitionError: If the transition is not allowed
        """
        for index, record in enumerate(state.history):
            if record.trade_id == trade_id:
                updated, event = self._state_machine.transition_to(
                    record, to_status, at, reason, details,
                )
                state.history[index] = updated
                state.transitions.append(event)
                return updated

        raise KeyError(trade_id)

    # --------------------------------------------------------
    # DERIVATIONS
    # --------------------------------------------------------

    @staticmethod
    def get(state: UserTradeState, trade_id: str) -> Optional[TradeRecord]:
        return state.find(trade_id)

    @staticmethod
    def count_applied_this_season(
        state: UserTradeState,
        boundaries: SeasonPhaseBoundaries,
        pre_season_unlimited: bool = False,
    ) -> int:
        """
        Count applied trades that consume the season's quota.

        Every applied trade counts, whenever it was applied. The only
        exemption is an unlimited pre-season: trades applied before
        pre_season_end are free.
        """
        return sum(
            1
            for record in state.history
            if record.status == TradeStatus.APPLIED
            and not (pre_season_unlimited and record.effective_at < boundaries.pre_season_end)
        )

    def trades_used(self, state: UserTradeState, settings: LeagueSettings) -> int:
        return self.count_applied_this_season(
            state,
            settings.season_phase_boundaries,
            settings.pre_season_unlimited,
        )

    def trades_remaining(
        self,
        state: UserTradeState,
        settings: LeagueSettings,
        now: datetime,
    ) -> Optional[int]:
        """
        Trades left this season, floored at 0.

        Returns None while the quota is suspended.
        """
        if settings.is_unlimited_at(now):
            return None
        return max(0, settings.trades_per_season - self.trades_used(state, settings))

    @staticmethod
    def pending_trades(state: UserTradeState) -> List[TradeRecord]:
        """Pending records in submission order."""
        return [r for r in state.history if r.status == TradeStatus.PENDING]

    @staticmethod
    def transitions_for(state: UserTradeState, trade_id: str) -> List[TradeTransitionEvent]:
        return [e for e in state.transitions if e.trade_id == trade_id]


__all__ = ["TradeLedger"]
