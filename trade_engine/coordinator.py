"""
Trade Engine - Trade Coordinator.

============================================================
PURPOSE
============================================================
The single mutation entry point for trades.

SUBMIT FLOW:
1. Acquire the user's lock
2. Load league settings, trade state and roster (with versions)
3. Evaluate the proposal (lockout -> quota -> slot -> duplicate)
4. Build the record: APPLIED now, or PENDING for a future round
5. Commit state (+ roster when applied) in ONE atomic write
6. Release the lock
7. On write conflict: back off unlocked, then redo steps 1-6

CRITICAL PRINCIPLES:
    "All or nothing. Roster, ledger and audit log move together."
    "Rejections are results. Broken data is an exception."

ERROR ROUTING:
- Rule rejections -> TradeResult, logged at warning
- Write conflicts -> bounded retry, then TransactionFailedError
- Configuration / invariant / store errors -> logged, sent to
  the admin alerter, re-raised

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, Type, TypeVar

from core.clock import ClockProtocol, ensure_utc
from core.exceptions import (
    DocumentNotFoundError,
    InvalidDocumentError,
    NoUpcomingBoundaryError,
    PersistenceError,
    RosterInvariantError,
    TradeCoreException,
    TransactionFailedError,
)

from .alerting import TelegramAlerter, alert_from_exception
from .config import TradeEngineConfig
from .errors import is_retryable, should_escalate
from .ledger import TradeLedger
from .locks import KeyedLockRegistry
from .lockout import LockoutScheduler
from .rules import TradeRulesEngine
from .store import PersistentStore, StoredDocument, roster_key, settings_key, trade_state_key
from .types import (
    LeagueSettings,
    PositionSlot,
    Roster,
    TradeProposal,
    TradeRecord,
    TradeResult,
    TradeResultCode,
    TradeStatus,
    TradeStatusSnapshot,
    UserTradeState,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")

# Documents to write, keyed by store key
Writes = Dict[str, dict]

# Outcome reported when a recorded trade is resubmitted
_RESULT_FOR_STATUS = {
    TradeStatus.APPLIED: TradeResultCode.APPLIED,
    TradeStatus.PENDING: TradeResultCode.PENDING,
    TradeStatus.CANCELLED: TradeResultCode.CANCELLED,
}


# ============================================================
# LOADED CONTEXT
# ============================================================

@dataclass
class _UserContext:
    """Documents read for one attempt, plus the versions they were read at."""

    user_id: str
    settings: LeagueSettings
    scheduler: LockoutScheduler
    state: UserTradeState
    roster: Optional[Roster]
    versions: Dict[str, int] = field(default_factory=dict)


# ============================================================
# TRADE COORDINATOR
# ============================================================

class TradeCoordinator:
    """
    Orchestrates trade submission, cancellation and application.

    Collaborators are injected; the coordinator owns none of
    their lifecycles except the default alerter.
    """

    def __init__(
        self,
        store: PersistentStore,
        clock: ClockProtocol,
        config: Optional[TradeEngineConfig] = None,
        alerter: Optional[TelegramAlerter] = None,
        rules: Optional[TradeRulesEngine] = None,
    ):
        """
        Initialize coordinator.

        Args:
            store: Document store
            clock: Time source (used when callers omit `now`)
            config: Engine configuration
            alerter: Admin alerter (Telegram by default)
            rules: Rules engine override
        """
        self._store = store
        self._clock = clock
        self._config = config or TradeEngineConfig()
        self._owns_alerter = alerter is None
        self._alerter = alerter or TelegramAlerter(self._config.alerting)
        self._ledger = TradeLedger()
        self._rules = rules or TradeRulesEngine(self._ledger)
        self._locks = KeyedLockRegistry()

    @property
    def league_id(self) -> str:
        return self._config.league_id

    async def close(self) -> None:
        if self._owns_alerter:
            await self._alerter.close()

    # --------------------------------------------------------
    # PUBLIC OPERATIONS
    # --------------------------------------------------------

    async def submit_trade(
        self,
        user_id: str,
        proposal: TradeProposal,
        now: Optional[datetime] = None,
    ) -> TradeResult:
        """
        Submit a trade.

        Returns:
            TradeResult with APPLIED, PENDING or a REJECTED_* code. A
            resubmission under a recorded trade id returns that record.

        Raises:
            ConfigurationError: Settings/roster missing or unusable
            TransactionFailedError: Write conflicts outlasted the retry budget
            InvariantViolation: Roster corruption
        """
        now = self._resolve_now(now)
        return await self._guarded(
            user_id,
            "submit",
            lambda: self._with_retries(
                user_id,
                "submit",
                lambda ctx: self._submit_once(ctx, proposal, now),
            ),
        )

    async def cancel_trade(
        self,
        user_id: str,
        trade_id: str,
        now: Optional[datetime] = None,
    ) -> TradeResult:
        """
        Cancel a pending trade before its round locks out.

        Returns:
            TradeResult with CANCELLED, TRADE_NOT_FOUND,
            CANNOT_CANCEL_NOT_PENDING or CANNOT_CANCEL_AFTER_LOCKOUT
        """
        now = self._resolve_now(now)
        return await self._guarded(
            user_id,
            "cancel",
            lambda: self._with_retries(
                user_id,
                "cancel",
                lambda ctx: self._cancel_once(ctx, trade_id, now),
            ),
        )

    async def apply_due_trades(
        self,
        user_id: str,
        now: Optional[datetime] = None,
    ) -> List[TradeResult]:
        """
        Apply the user's pending trades whose round has become current.

        Called by whatever advances rounds. Each due trade is re-checked
        against the then-current quota and roster; trades that no longer
        pass are cancelled with the failing decision recorded.

        Returns:
            One result per due trade, in submission order
        """
        now = self._resolve_now(now)
        return await self._guarded(
            user_id,
            "apply-due",
            lambda: self._with_retries(
                user_id,
                "apply-due",
                lambda ctx: self._apply_due_once(ctx, now),
            ),
        )

    async def simulate_trade(
        self,
        user_id: str,
        proposal: TradeProposal,
        now: Optional[datetime] = None,
    ) -> TradeResult:
        """
        Evaluate a proposal without writing anything.

        Returns SIMULATED with the outcome a real submission would
        have in details, or the rejection code.
        """
        now = self._resolve_now(now)

        async def run() -> TradeResult:
            ctx = await self._load(user_id, include_roster=True)
            result = self._replay(ctx, proposal)
            if result is None:
                result, _ = self._evaluate_submission(ctx, proposal, now)
            if not result.is_success:
                return result

            details = {"would_be": result.result_code.value, "round": result.record.round}
            details.update(result.details)
            return TradeResult(
                result_code=TradeResultCode.SIMULATED,
                record=result.record,
                message=f"Trade would be {result.result_code.value.lower()}",
                details=details,
            )

        return await self._guarded(user_id, "simulate", run)

    async def get_trade_status(
        self,
        user_id: str,
        now: Optional[datetime] = None,
    ) -> TradeStatusSnapshot:
        """Read-only composite of quota, lockout and pending trades."""
        now = self._resolve_now(now)

        async def run() -> TradeStatusSnapshot:
            ctx = await self._load(user_id, include_roster=False)
            boundaries = ctx.settings.season_phase_boundaries

            try:
                seconds_until_next = ctx.scheduler.time_until_next_boundary(now).total_seconds()
            except NoUpcomingBoundaryError as e:
                # Status still answers; the admin is told the schedule needs publishing
                logger.warning(f"League {ctx.settings.league_id}: {e.to_log_format()}")
                if should_escalate(e.error_code):
                    await self._alerter.send_alert(
                        alert_from_exception(e, user_id=user_id, league_id=self.league_id)
                    )
                seconds_until_next = None

            return TradeStatusSnapshot(
                user_id=user_id,
                trades_used=self._ledger.trades_used(ctx.state, ctx.settings),
                trades_remaining=self._ledger.trades_remaining(ctx.state, ctx.settings, now),
                is_lockout_active=ctx.scheduler.is_lockout_active(now),
                is_pre_season=boundaries.is_pre_season(now),
                unlimited=ctx.settings.is_unlimited_at(now),
                current_round=ctx.scheduler.current_round(now),
                effective_round=ctx.scheduler.effective_round(now),
                pending_trades=self._ledger.pending_trades(ctx.state),
                seconds_until_next_boundary=seconds_until_next,
                as_of=now,
            )

        return await self._guarded(user_id, "status", run)

    async def get_trade_history(self, user_id: str) -> List[TradeRecord]:
        """All of the user's trade records in submission order."""

        async def run() -> List[TradeRecord]:
            state, _ = await self._load_state(user_id)
            return list(state.history)

        return await self._guarded(user_id, "history", run)

    # --------------------------------------------------------
    # SINGLE ATTEMPTS
    # --------------------------------------------------------

    async def _submit_once(
        self,
        ctx: _UserContext,
        proposal: TradeProposal,
        now: datetime,
    ) -> Tuple[TradeResult, Writes]:
        replayed = self._replay(ctx, proposal)
        if replayed is not None:
            return replayed, {}

        self._check_roster(ctx)

        result, new_roster = self._evaluate_submission(ctx, proposal, now)
        if not result.is_success:
            logger.warning(
                f"Trade rejected for user {ctx.user_id}: "
                f"{result.result_code.value} - {result.message}"
            )
            return result, {}

        record = result.record
        state = ctx.state.copy()
        writes: Writes = {}

        if record.status == TradeStatus.APPLIED:
            self._check_swap(ctx.roster, new_roster)
            self._ledger.append(state, record, reason="Applied immediately")
            writes[roster_key(ctx.user_id)] = new_roster.to_dict()
        else:
            self._ledger.append(state, record, reason=f"Queued for round {record.round}")

        writes[trade_state_key(ctx.user_id)] = state.to_dict()

        logger.info(
            f"Trade {record.trade_id} for user {ctx.user_id}: {record.status.value} "
            f"({record.player_out_id} -> {record.player_in_id}, {record.slot.value}, "
            f"round {record.round})"
        )
        return result, writes

    def _replay(
        self,
        ctx: _UserContext,
        proposal: TradeProposal,
    ) -> Optional[TradeResult]:
        """
        Answer a resubmission under a caller-chosen id already in the ledger.

        The same trade gets its recorded outcome back with nothing
        written; a different trade under that id is rejected.
        Returns None when the id is new or absent.
        """
        if proposal.trade_id is None:
            return None

        record = self._ledger.get(ctx.state, proposal.trade_id)
        if record is None:
            return None

        same_trade = (
            record.player_out_id == proposal.player_out_id
            and record.player_in_id == proposal.player_in_id
            and record.slot == proposal.player_in_slot
        )
        if not same_trade:
            logger.warning(
                f"Trade id {record.trade_id} for user {ctx.user_id} "
                f"already names a different trade"
            )
            return TradeResult(
                result_code=TradeResultCode.REJECTED_TRADE_ID_REUSED,
                record=record,
                message=f"Trade id {record.trade_id} is already used by another trade",
                details={"trade_id": record.trade_id},
            )

        logger.info(
            f"Trade {record.trade_id} for user {ctx.user_id} resubmitted; "
            f"already {record.status.value}"
        )
        return TradeResult(
            result_code=_RESULT_FOR_STATUS[record.status],
            record=record,
            message=f"Trade already {record.status.value.lower()}",
            details={"replayed": True},
        )

    def _evaluate_submission(
        self,
        ctx: _UserContext,
        proposal: TradeProposal,
        now: datetime,
    ) -> Tuple[TradeResult, Optional[Roster]]:
        """Run the rules and build the record a submission would create."""
        evaluation = self._rules.evaluate(
            ctx.settings, ctx.state, ctx.roster, proposal, now, ctx.scheduler,
        )
        if not evaluation.is_allowed:
            return TradeResult(
                result_code=TradeResultCode.from_decision(evaluation.decision),
                message=evaluation.message,
                details=evaluation.details,
            ), None

        effective_round = ctx.scheduler.effective_round(now)
        target_round = proposal.target_round
        is_future = (
            target_round is not None
            and target_round > effective_round
            and ctx.scheduler.window_for(target_round) is not None
        )

        trade_id = proposal.trade_id or TradeRecord.new_id()

        if is_future:
            record = TradeRecord(
                trade_id=trade_id,
                timestamp=now,
                player_out_id=proposal.player_out_id,
                player_in_id=proposal.player_in_id,
                slot=proposal.player_in_slot,
                round=target_round,
                status=TradeStatus.PENDING,
            )
            return TradeResult(
                result_code=TradeResultCode.PENDING,
                record=record,
                message=f"Trade queued for round {target_round}",
            ), None

        record = TradeRecord(
            trade_id=trade_id,
            timestamp=now,
            player_out_id=proposal.player_out_id,
            player_in_id=proposal.player_in_id,
            slot=proposal.player_in_slot,
            round=effective_round,
            status=TradeStatus.APPLIED,
            applied_at=now,
        )
        new_roster = ctx.roster.swapped(
            proposal.player_out_id, proposal.player_in_id, proposal.player_in_slot,
        )
        return TradeResult(
            result_code=TradeResultCode.APPLIED,
            record=record,
            message=f"Trade applied for round {effective_round}",
        ), new_roster

    async def _cancel_once(
        self,
        ctx: _UserContext,
        trade_id: str,
        now: datetime,
    ) -> Tuple[TradeResult, Writes]:
        record = self._ledger.get(ctx.state, trade_id)

        if record is None:
            logger.warning(f"Cancel failed: trade {trade_id} not found for user {ctx.user_id}")
            return TradeResult(
                result_code=TradeResultCode.TRADE_NOT_FOUND,
                message=f"Trade {trade_id} not found",
            ), {}

        if not record.status.allows_cancel():
            logger.warning(f"Cannot cancel trade {trade_id} in state {record.status.value}")
            return TradeResult(
                result_code=TradeResultCode.CANNOT_CANCEL_NOT_PENDING,
                record=record,
                message=f"Trade is already {record.status.value}",
            ), {}

        if ctx.scheduler.has_round_started(record.round, now):
            logger.warning(
                f"Cannot cancel trade {trade_id}: round {record.round} lockout has started"
            )
            return TradeResult(
                result_code=TradeResultCode.CANNOT_CANCEL_AFTER_LOCKOUT,
                record=record,
                message=f"Round {record.round} lockout has started",
            ), {}

        state = ctx.state.copy()
        updated = self._ledger.transition(
            state, trade_id, TradeStatus.CANCELLED, now, reason="Cancelled by user",
        )

        return TradeResult(
            result_code=TradeResultCode.CANCELLED,
            record=updated,
            message="Trade cancelled",
        ), {trade_state_key(ctx.user_id): state.to_dict()}

    async def _apply_due_once(
        self,
        ctx: _UserContext,
        now: datetime,
    ) -> Tuple[List[TradeResult], Writes]:
        current_round = ctx.scheduler.current_round(now)
        if current_round is None:
            return [], {}

        due = [
            r for r in self._ledger.pending_trades(ctx.state)
            if r.round <= current_round
        ]
        if not due:
            return [], {}

        self._check_roster(ctx)

        state = ctx.state.copy()
        roster = ctx.roster
        roster_changed = False
        results: List[TradeResult] = []

        for record in due:
            proposal = TradeProposal(
                player_out_id=record.player_out_id,
                player_in_id=record.player_in_id,
                player_in_slot=record.slot,
                target_round=record.round,
                trade_id=record.trade_id,
            )
            evaluation = self._rules.evaluate(
                ctx.settings, state, roster, proposal, now, ctx.scheduler,
                check_lockout=False,
            )

            if evaluation.is_allowed:
                new_roster = roster.swapped(record.player_out_id, record.player_in_id, record.slot)
                self._check_swap(roster, new_roster)
                updated = self._ledger.transition(
                    state, record.trade_id, TradeStatus.APPLIED, now,
                    reason=f"Round {record.round} reached",
                )
                roster = new_roster
                roster_changed = True
                results.append(TradeResult(
                    result_code=TradeResultCode.APPLIED,
                    record=updated,
                    message=f"Trade applied for round {record.round}",
                ))
            else:
                updated = self._ledger.transition(
                    state, record.trade_id, TradeStatus.CANCELLED, now,
                    reason=f"Auto-cancelled: {evaluation.decision.value}",
                    details={"decision": evaluation.decision.value, "message": evaluation.message},
                )
                logger.warning(
                    f"Pending trade {record.trade_id} for user {ctx.user_id} auto-cancelled: "
                    f"{evaluation.decision.value} - {evaluation.message}"
                )
                results.append(TradeResult(
                    result_code=TradeResultCode.CANCELLED,
                    record=updated,
                    message=evaluation.message,
                    details={"auto_cancelled": True, "decision": evaluation.decision.value},
                ))

        writes: Writes = {trade_state_key(ctx.user_id): state.to_dict()}
        if roster_changed:
            writes[roster_key(ctx.user_id)] = roster.to_dict()

        return results, writes

    # --------------------------------------------------------
    # TRANSACTION / RETRY
    # --------------------------------------------------------

    async def _with_retries(
        self,
        user_id: str,
        operation: str,
        attempt_fn: Callable[[_UserContext], Awaitable[Tuple[T, Writes]]],
    ) -> T:
        """
        Run read-evaluate-write with bounded retries on write conflicts.

        Each attempt holds the user's lock from the first read to the
        commit. The lock is released before backing off, so other
        operations for the user can run during the delay.

        Only error codes the registry marks retryable (write conflicts)
        are retried; the whole sequence is re-run from fresh reads.
        """
        retry_config = self._config.retry
        delay = retry_config.initial_delay_seconds
        max_attempts = retry_config.max_retries + 1
        last_conflict: Optional[PersistenceError] = None

        for attempt in range(1, max_attempts + 1):
            try:
                async with self._locks.hold(user_id):
                    ctx = await self._load(user_id, include_roster=True)
                    result, writes = await attempt_fn(ctx)
                    if writes:
                        await self._store.commit(writes, dict(ctx.versions))
            except PersistenceError as e:
                if not is_retryable(e.error_code):
                    raise
                last_conflict = e
                if attempt < max_attempts:
                    logger.warning(
                        f"{operation} for user {user_id} hit a write conflict "
                        f"(attempt {attempt}/{max_attempts}): {e.message}. "
                        f"Retrying in {delay:.2f}s..."
                    )
                    await asyncio.sleep(delay)
                    delay = min(
                        delay * retry_config.backoff_multiplier,
                        retry_config.max_delay_seconds,
                    )
                    continue
                break

            self._set_attempts(result, attempt)
            return result

        logger.error(f"{operation} for user {user_id} failed after {max_attempts} attempts")
        raise TransactionFailedError(
            f"{operation} for user {user_id} failed after {max_attempts} attempts",
            attempts=max_attempts,
            context={"user_id": user_id, "operation": operation},
            cause=last_conflict,
        )

    @staticmethod
    def _set_attempts(result, attempt: int) -> None:
        results = result if isinstance(result, list) else [result]
        for item in results:
            if isinstance(item, TradeResult):
                item.attempts = attempt

    async def _guarded(
        self,
        user_id: str,
        operation: str,
        run: Callable[[], Awaitable[T]],
    ) -> T:
        """Log and escalate raised trade core errors, then re-raise."""
        try:
            return await run()
        except TradeCoreException as e:
            logger.error(f"{operation} for user {user_id} failed: {e.to_log_format()}")
            if should_escalate(e.error_code):
                await self._alerter.send_alert(
                    alert_from_exception(e, user_id=user_id, league_id=self.league_id)
                )
            raise

    # --------------------------------------------------------
    # LOADING
    # --------------------------------------------------------

    async def _load(self, user_id: str, include_roster: bool) -> _UserContext:
        versions: Dict[str, int] = {}

        key = settings_key(self.league_id)
        doc = await self._store.get(key)
        if doc is None:
            raise DocumentNotFoundError(key)
        settings = self._decode(doc, LeagueSettings)
        versions[key] = doc.version

        scheduler = LockoutScheduler.from_settings(settings)

        state, state_version = await self._load_state(user_id)
        versions[trade_state_key(user_id)] = state_version

        roster = None
        if include_roster:
            key = roster_key(user_id)
            doc = await self._store.get(key)
            if doc is None:
                raise DocumentNotFoundError(key)
            roster = self._decode(doc, Roster)
            versions[key] = doc.version

        return _UserContext(
            user_id=user_id,
            settings=settings,
            scheduler=scheduler,
            state=state,
            roster=roster,
            versions=versions,
        )

    async def _load_state(self, user_id: str) -> Tuple[UserTradeState, int]:
        """Trade state and its version; a user with no trades yet gets an empty state."""
        doc = await self._store.get(trade_state_key(user_id))
        if doc is None:
            return UserTradeState.empty(user_id, self.league_id), 0
        return self._decode(doc, UserTradeState), doc.version

    @staticmethod
    def _decode(doc: StoredDocument, model: Type[T]) -> T:
        try:
            return model.from_dict(doc.data)
        except (KeyError, ValueError, TypeError) as e:
            raise InvalidDocumentError(doc.key, f"{type(e).__name__}: {e}", cause=e) from e

    # --------------------------------------------------------
    # INVARIANTS
    # --------------------------------------------------------

    def _check_roster(self, ctx: _UserContext) -> None:
        """Loaded roster must match the required slot counts."""
        if not self._config.roster.enforce_slot_counts:
            return

        required = self._config.roster.required_slots
        counts = ctx.roster.slot_counts()
        mismatched = {
            slot.value: counts[slot]
            for slot in PositionSlot
            if counts[slot] != required.get(slot, 0)
        }
        if mismatched:
            raise RosterInvariantError(
                f"Roster for user {ctx.user_id} violates slot counts",
                context={"user_id": ctx.user_id, "counts": mismatched},
            )

    @staticmethod
    def _check_swap(before: Roster, after: Roster) -> None:
        if before.slot_counts() != after.slot_counts():
            raise RosterInvariantError(
                f"Trade changed slot counts for user {before.user_id}",
                context={"user_id": before.user_id},
            )

    def _resolve_now(self, now: Optional[datetime]) -> datetime:
        return ensure_utc(now) if now is not None else self._clock.now()


__all__ = ["TradeCoordinator"]
