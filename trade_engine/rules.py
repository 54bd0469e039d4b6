"""
Trade Engine - Trade Rules Engine.

============================================================
PURPOSE
============================================================
Decides whether a proposed trade is allowed.

CHECK ORDER (first failure wins, nothing aggregated):
1. Lockout - trading frozen for the round in play
2. Quota - no trades remaining (skipped in unlimited pre-season)
3. Slot - outgoing player must be rostered in the incoming slot
4. Duplicate - incoming player must not already be rostered

CRITICAL PRINCIPLE:
    "Pure and side-effect free. Same inputs, same decision."

============================================================
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from .ledger import TradeLedger
from .lockout import LockoutScheduler
from .types import (
    LeagueSettings,
    Roster,
    TradeDecision,
    TradeProposal,
    UserTradeState,
)


logger = logging.getLogger(__name__)


# ============================================================
# RULE EVALUATION
# ============================================================

@dataclass
class RuleEvaluation:
    """Result of evaluating a proposal."""

    decision: TradeDecision
    """First failing check, or ALLOWED."""

    message: str = ""
    """Human-readable reason."""

    details: Dict[str, Any] = field(default_factory=dict)
    """Values the decision was based on."""

    @property
    def is_allowed(self) -> bool:
        return self.decision.is_allowed


# ============================================================
# RULES ENGINE
# ============================================================

class TradeRulesEngine:
    """
    Evaluates trade proposals against league rules.
    """

    def __init__(self, ledger: Optional[TradeLedger] = None):
        self._ledger = ledger or TradeLedger()

    def evaluate(
        self,
        settings: LeagueSettings,
        state: UserTradeState,
        roster: Roster,
        proposal: TradeProposal,
        now: datetime,
        scheduler: Optional[LockoutScheduler] = None,
        check_lockout: bool = True,
    ) -> RuleEvaluation:
        """
        Evaluate a proposal.

        Args:
            settings: League settings
            state: User's trade state
            roster: User's current roster
            proposal: Proposed trade
            now: Evaluation instant
            scheduler: Prebuilt scheduler for settings (built if omitted)
            check_lockout: False when applying an already accepted trade

        Returns:
            RuleEvaluation
        """
        # 1. Lockout
        if check_lockout:
            scheduler = scheduler or LockoutScheduler.from_settings(settings)
            window = scheduler.active_window(now)
            if window is not None:
                return self._reject(
                    TradeDecision.REJECTED_LOCKOUT,
                    f"Round {window.round} is locked until {window.end.isoformat()}",
                    {"round": window.round, "lockout_end": window.end.isoformat()},
                )

        # 2. Quota
        if not settings.is_unlimited_at(now):
            remaining = self._ledger.trades_remaining(state, settings, now)
            if remaining is not None and remaining <= 0:
                return self._reject(
                    TradeDecision.REJECTED_QUOTA_EXCEEDED,
                    f"No trades remaining ({settings.trades_per_season} per season)",
                    {"trades_per_season": settings.trades_per_season, "trades_remaining": 0},
                )

        # 3. Slot
        out_slot = roster.slot_of(proposal.player_out_id)
        if out_slot is None:
            return self._reject(
                TradeDecision.REJECTED_INVALID_SLOT,
                f"Player {proposal.player_out_id} is not on the roster",
                {"player_out_id": proposal.player_out_id},
            )
        if out_slot != proposal.player_in_slot:
            return self._reject(
                TradeDecision.REJECTED_INVALID_SLOT,
                f"Cannot swap {out_slot.value} for {proposal.player_in_slot.value}",
                {"out_slot": out_slot.value, "in_slot": proposal.player_in_slot.value},
            )

        # 4. Duplicate
        if roster.contains(proposal.player_in_id):
            return self._reject(
                TradeDecision.REJECTED_DUPLICATE_PLAYER,
                f"Player {proposal.player_in_id} is already on the roster",
                {"player_in_id": proposal.player_in_id},
            )

        return RuleEvaluation(decision=TradeDecision.ALLOWED, message="Trade allowed")

    @staticmethod
    def _reject(
        decision: TradeDecision,
        message: str,
        details: Dict[str, Any],
    ) -> RuleEvaluation:
        logger.debug(f"Rule check failed: {decision.value} - {message}")
        return RuleEvaluation(decision=decision, message=message, details=details)


__all__ = ["RuleEvaluation", "TradeRulesEngine"]
