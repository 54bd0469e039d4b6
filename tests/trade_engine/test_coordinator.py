"""
Tests for the trade coordinator.

============================================================
PURPOSE
============================================================
End-to-end behaviour of submit / cancel / apply / status
against the in-memory store.

TEST PRINCIPLES:
- Rejections leave every document untouched
- Quota figures always match the ledger
- Roster slot counts hold after every trade
- Concurrent calls for one user are serialized

============================================================
"""

import asyncio
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from core.clock import MockClock
from core.exceptions import (
    DocumentNotFoundError,
    InvalidDocumentError,
    RosterInvariantError,
    StoreUnavailableError,
    TransactionFailedError,
)
from trade_engine.alerting import AlertSeverity, AlertType
from trade_engine import coordinator as coordinator_module
from trade_engine.config import AdminAlertingConfig, RetryConfig, TradeEngineConfig
from trade_engine.coordinator import TradeCoordinator
from trade_engine.ledger import TradeLedger
from trade_engine.store import InMemoryDocumentStore, roster_key, trade_state_key
from trade_engine.types import (
    PositionSlot,
    Roster,
    TradeProposal,
    TradeResultCode,
    TradeStatus,
    UserTradeState,
)

from tests.factories import (
    SEASON_END,
    SEASON_START,
    USER_ID,
    ConflictingStore,
    make_roster,
    make_settings,
    open_time,
    round_window,
    seed,
)


async def _snapshot(store, user_id=USER_ID):
    state = await store.get(trade_state_key(user_id))
    roster = await store.get(roster_key(user_id))
    return (
        state.data if state else None,
        roster.data if roster else None,
    )


async def _roster(store, user_id=USER_ID) -> Roster:
    return Roster.from_dict((await store.get(roster_key(user_id))).data)


async def _state(store, user_id=USER_ID) -> UserTradeState:
    return UserTradeState.from_dict((await store.get(trade_state_key(user_id))).data)


async def _coordinator_for(settings, clock=None, store=None, alerter=None, config=None):
    store = store or InMemoryDocumentStore()
    await seed(store, settings, make_roster())
    coordinator = TradeCoordinator(
        store,
        clock or MockClock(open_time(1)),
        config or TradeEngineConfig.for_testing(),
        alerter=alerter or AsyncMock(),
    )
    return coordinator, store


# ============================================================
# QUOTA
# ============================================================

class TestQuota:
    @pytest.mark.asyncio
    async def test_quota_counts_down_then_rejects(self, coordinator, seeded_store):
        status = await coordinator.get_trade_status(USER_ID)
        assert status.trades_remaining == 2

        a = await coordinator.submit_trade(USER_ID, TradeProposal("d1", "nd1", PositionSlot.DEF))
        assert a.result_code == TradeResultCode.APPLIED
        assert (await coordinator.get_trade_status(USER_ID)).trades_remaining == 1

        b = await coordinator.submit_trade(USER_ID, TradeProposal("m1", "nm1", PositionSlot.MID))
        assert b.result_code == TradeResultCode.APPLIED
        assert (await coordinator.get_trade_status(USER_ID)).trades_remaining == 0

        before = await _snapshot(seeded_store)
        c = await coordinator.submit_trade(USER_ID, TradeProposal("f1", "nf1", PositionSlot.FWD))

        assert c.result_code == TradeResultCode.REJECTED_QUOTA_EXCEEDED
        assert (await coordinator.get_trade_status(USER_ID)).trades_remaining == 0
        assert await _snapshot(seeded_store) == before

    @pytest.mark.asyncio
    async def test_unlimited_pre_season_does_not_consume_quota(self):
        settings = make_settings(trades_per_season=2, pre_season_unlimited=True)
        coordinator, store = await _coordinator_for(settings, clock=MockClock(SEASON_START))

        out_player = "d1"
        for i in range(10):
            result = await coordinator.submit_trade(
                USER_ID, TradeProposal(out_player, f"pre-{i}", PositionSlot.DEF),
            )
            assert result.result_code == TradeResultCode.APPLIED
            out_player = f"pre-{i}"

        status = await coordinator.get_trade_status(USER_ID)
        assert status.trades_used == 0
        assert status.unlimited is True
        assert status.trades_remaining is None

        after_pre_season = await coordinator.get_trade_status(USER_ID, now=open_time(1))
        assert after_pre_season.trades_used == 0
        assert after_pre_season.trades_remaining == 2

    @pytest.mark.asyncio
    async def test_trades_before_season_start_consume_limited_quota(self):
        settings = make_settings(trades_per_season=1, pre_season_unlimited=False)
        coordinator, store = await _coordinator_for(
            settings, clock=MockClock(SEASON_START - timedelta(days=1)),
        )

        codes = []
        out_player = "d1"
        for i in range(3):
            result = await coordinator.submit_trade(
                USER_ID, TradeProposal(out_player, f"early-{i}", PositionSlot.DEF),
            )
            codes.append(result.result_code)
            if result.result_code == TradeResultCode.APPLIED:
                out_player = f"early-{i}"

        assert codes == [
            TradeResultCode.APPLIED,
            TradeResultCode.REJECTED_QUOTA_EXCEEDED,
            TradeResultCode.REJECTED_QUOTA_EXCEEDED,
        ]
        status = await coordinator.get_trade_status(USER_ID)
        assert status.trades_used == 1
        assert status.trades_remaining == 0

    @pytest.mark.asyncio
    async def test_trades_after_season_end_consume_quota(self):
        settings = make_settings(trades_per_season=1)
        coordinator, store = await _coordinator_for(
            settings, clock=MockClock(SEASON_END + timedelta(days=1)),
        )

        first = await coordinator.submit_trade(USER_ID, TradeProposal("d1", "nd1", PositionSlot.DEF))
        second = await coordinator.submit_trade(USER_ID, TradeProposal("m1", "nm1", PositionSlot.MID))

        assert first.result_code == TradeResultCode.APPLIED
        assert second.result_code == TradeResultCode.REJECTED_QUOTA_EXCEEDED

    @pytest.mark.asyncio
    async def test_trades_used_always_matches_ledger(self, coordinator, seeded_store, settings):
        await coordinator.submit_trade(USER_ID, TradeProposal("d1", "nd1", PositionSlot.DEF))
        await coordinator.submit_trade(
            USER_ID, TradeProposal("m1", "nm1", PositionSlot.MID, target_round=4),
        )

        state = await _state(seeded_store)
        status = await coordinator.get_trade_status(USER_ID)

        assert status.trades_used == TradeLedger.count_applied_this_season(
            state, settings.season_phase_boundaries, settings.pre_season_unlimited,
        )
        assert status.trades_used == 1


# ============================================================
# VALIDATION
# ============================================================

class TestSubmitRejections:
    @pytest.mark.asyncio
    async def test_def_for_mid_rejected_without_changes(self, coordinator, seeded_store):
        before = await _snapshot(seeded_store)

        result = await coordinator.submit_trade(USER_ID, TradeProposal("d1", "nm1", PositionSlot.MID))

        assert result.result_code == TradeResultCode.REJECTED_INVALID_SLOT
        assert result.record is None
        assert await _snapshot(seeded_store) == before

    @pytest.mark.asyncio
    async def test_duplicate_player_rejected(self, coordinator):
        result = await coordinator.submit_trade(USER_ID, TradeProposal("d1", "d2", PositionSlot.DEF))
        assert result.result_code == TradeResultCode.REJECTED_DUPLICATE_PLAYER

    @pytest.mark.asyncio
    async def test_lockout_boundary_is_half_open(self, coordinator, seeded_store):
        window = round_window(2)
        proposal = TradeProposal("d1", "nd1", PositionSlot.DEF, target_round=2)
        before = await _snapshot(seeded_store)

        locked = await coordinator.submit_trade(USER_ID, proposal, now=window.start)
        assert locked.result_code == TradeResultCode.REJECTED_LOCKOUT
        assert await _snapshot(seeded_store) == before

        released = await coordinator.submit_trade(USER_ID, proposal, now=window.end)
        assert released.result_code == TradeResultCode.APPLIED


# ============================================================
# APPLY / ROSTER
# ============================================================

class TestImmediateApplication:
    @pytest.mark.asyncio
    async def test_roster_and_ledger_written_together(self, coordinator, seeded_store):
        result = await coordinator.submit_trade(USER_ID, TradeProposal("d1", "nd1", PositionSlot.DEF))

        roster = await _roster(seeded_store)
        state = await _state(seeded_store)

        assert seeded_store.commit_count == 1
        assert not roster.contains("d1")
        assert roster.slot_of("nd1") == PositionSlot.DEF
        assert state.history == [result.record]
        assert result.record.round == 2
        assert result.record.applied_at == open_time(1)

    @pytest.mark.asyncio
    async def test_slot_counts_preserved(self, coordinator, seeded_store, config):
        await coordinator.submit_trade(USER_ID, TradeProposal("r1", "nr1", PositionSlot.RUC))
        await coordinator.submit_trade(USER_ID, TradeProposal("f3", "nf3", PositionSlot.FWD))

        counts = (await _roster(seeded_store)).slot_counts()
        assert counts == config.roster.required_slots

    @pytest.mark.asyncio
    async def test_caller_supplied_trade_id(self, coordinator):
        result = await coordinator.submit_trade(
            USER_ID, TradeProposal("d1", "nd1", PositionSlot.DEF, trade_id="my-trade"),
        )
        assert result.record.trade_id == "my-trade"

    @pytest.mark.asyncio
    async def test_resubmitted_trade_id_returns_recorded_trade(self, coordinator, seeded_store, alerter):
        proposal = TradeProposal("d1", "nd1", PositionSlot.DEF, trade_id="client-key")
        first = await coordinator.submit_trade(USER_ID, proposal)
        commits = seeded_store.commit_count
        before = await _snapshot(seeded_store)

        second = await coordinator.submit_trade(USER_ID, proposal)

        assert second.result_code == TradeResultCode.APPLIED
        assert second.record == first.record
        assert second.details == {"replayed": True}
        assert seeded_store.commit_count == commits
        assert await _snapshot(seeded_store) == before
        alerter.send_alert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_resubmitted_pending_trade_stays_queued_once(self, coordinator, seeded_store):
        proposal = TradeProposal("d1", "nd1", PositionSlot.DEF, target_round=3, trade_id="client-key")
        await coordinator.submit_trade(USER_ID, proposal)

        again = await coordinator.submit_trade(USER_ID, proposal)

        assert again.result_code == TradeResultCode.PENDING
        assert len((await _state(seeded_store)).history) == 1

    @pytest.mark.asyncio
    async def test_trade_id_reused_for_different_trade_rejected(self, coordinator, seeded_store, alerter):
        await coordinator.submit_trade(
            USER_ID, TradeProposal("d1", "nd1", PositionSlot.DEF, trade_id="same"),
        )
        before = await _snapshot(seeded_store)

        result = await coordinator.submit_trade(
            USER_ID, TradeProposal("m1", "nm1", PositionSlot.MID, trade_id="same"),
        )

        assert result.result_code == TradeResultCode.REJECTED_TRADE_ID_REUSED
        assert result.record.player_out_id == "d1"
        assert await _snapshot(seeded_store) == before
        alerter.send_alert.assert_not_awaited()


# ============================================================
# PENDING / CANCEL
# ============================================================

class TestPendingTrades:
    @pytest.mark.asyncio
    async def test_future_round_creates_pending_trade(self, coordinator, seeded_store):
        before_roster = (await seeded_store.get(roster_key(USER_ID))).data

        result = await coordinator.submit_trade(
            USER_ID, TradeProposal("d1", "nd1", PositionSlot.DEF, target_round=3),
        )

        assert result.result_code == TradeResultCode.PENDING
        assert result.record.status == TradeStatus.PENDING
        assert result.record.round == 3
        assert (await seeded_store.get(roster_key(USER_ID))).data == before_roster

        status = await coordinator.get_trade_status(USER_ID)
        assert [r.trade_id for r in status.pending_trades] == [result.record.trade_id]
        assert status.trades_used == 0

    @pytest.mark.asyncio
    async def test_past_target_round_applies_now(self, coordinator):
        result = await coordinator.submit_trade(
            USER_ID, TradeProposal("d1", "nd1", PositionSlot.DEF, target_round=1),
        )
        assert result.result_code == TradeResultCode.APPLIED
        assert result.record.round == 2

    @pytest.mark.asyncio
    async def test_cancel_before_window_opens(self, coordinator, seeded_store):
        submitted = await coordinator.submit_trade(
            USER_ID, TradeProposal("d1", "nd1", PositionSlot.DEF, target_round=3),
        )
        trade_id = submitted.record.trade_id

        result = await coordinator.cancel_trade(
            USER_ID, trade_id, now=round_window(3).start - timedelta(seconds=1),
        )

        assert result.result_code == TradeResultCode.CANCELLED
        assert result.record.status == TradeStatus.CANCELLED
        state = await _state(seeded_store)
        assert state.find(trade_id).status == TradeStatus.CANCELLED
        assert [e.to_state for e in state.transitions] == [
            TradeStatus.PENDING,
            TradeStatus.CANCELLED,
        ]

    @pytest.mark.asyncio
    async def test_cancel_after_window_opens_rejected(self, coordinator, seeded_store):
        submitted = await coordinator.submit_trade(
            USER_ID, TradeProposal("d1", "nd1", PositionSlot.DEF, target_round=3),
        )
        before = await _snapshot(seeded_store)

        result = await coordinator.cancel_trade(
            USER_ID, submitted.record.trade_id, now=round_window(3).start,
        )

        assert result.result_code == TradeResultCode.CANNOT_CANCEL_AFTER_LOCKOUT
        assert await _snapshot(seeded_store) == before

    @pytest.mark.asyncio
    async def test_second_cancel_is_rejected_without_changes(self, coordinator, seeded_store):
        submitted = await coordinator.submit_trade(
            USER_ID, TradeProposal("d1", "nd1", PositionSlot.DEF, target_round=3),
        )
        trade_id = submitted.record.trade_id
        await coordinator.cancel_trade(USER_ID, trade_id)
        before = await _snapshot(seeded_store)

        again = await coordinator.cancel_trade(USER_ID, trade_id)

        assert again.result_code == TradeResultCode.CANNOT_CANCEL_NOT_PENDING
        assert not again.is_success
        assert await _snapshot(seeded_store) == before
        assert (await coordinator.get_trade_status(USER_ID)).trades_remaining == 2

    @pytest.mark.asyncio
    async def test_cancel_applied_trade_rejected(self, coordinator):
        applied = await coordinator.submit_trade(USER_ID, TradeProposal("d1", "nd1", PositionSlot.DEF))
        result = await coordinator.cancel_trade(USER_ID, applied.record.trade_id)
        assert result.result_code == TradeResultCode.CANNOT_CANCEL_NOT_PENDING

    @pytest.mark.asyncio
    async def test_cancel_unknown_trade(self, coordinator):
        result = await coordinator.cancel_trade(USER_ID, "missing")
        assert result.result_code == TradeResultCode.TRADE_NOT_FOUND


class TestApplyDueTrades:
    @pytest.mark.asyncio
    async def test_nothing_due_before_round_starts(self, coordinator, seeded_store):
        await coordinator.submit_trade(
            USER_ID, TradeProposal("d1", "nd1", PositionSlot.DEF, target_round=3),
        )
        commits = seeded_store.commit_count

        results = await coordinator.apply_due_trades(USER_ID, now=open_time(2))

        assert results == []
        assert seeded_store.commit_count == commits

    @pytest.mark.asyncio
    async def test_due_trade_applied_when_round_starts(self, coordinator, seeded_store):
        submitted = await coordinator.submit_trade(
            USER_ID, TradeProposal("d1", "nd1", PositionSlot.DEF, target_round=3),
        )
        at = round_window(3).start

        results = await coordinator.apply_due_trades(USER_ID, now=at)

        assert [r.result_code for r in results] == [TradeResultCode.APPLIED]
        assert results[0].record.trade_id == submitted.record.trade_id
        assert results[0].record.applied_at == at
        roster = await _roster(seeded_store)
        assert roster.contains("nd1") and not roster.contains("d1")
        assert (await coordinator.get_trade_status(USER_ID, now=at)).trades_used == 1

    @pytest.mark.asyncio
    async def test_due_trade_auto_cancelled_when_quota_gone(self):
        coordinator, store = await _coordinator_for(make_settings(trades_per_season=1))
        pending = await coordinator.submit_trade(
            USER_ID, TradeProposal("d1", "nd1", PositionSlot.DEF, target_round=3),
        )
        await coordinator.submit_trade(USER_ID, TradeProposal("m1", "nm1", PositionSlot.MID))

        results = await coordinator.apply_due_trades(USER_ID, now=round_window(3).start)

        assert results[0].result_code == TradeResultCode.CANCELLED
        assert results[0].details["decision"] == "REJECTED_QUOTA_EXCEEDED"
        state = await _state(store)
        assert state.find(pending.record.trade_id).status == TradeStatus.CANCELLED
        assert state.transitions[-1].details["decision"] == "REJECTED_QUOTA_EXCEEDED"
        assert (await _roster(store)).contains("d1")

    @pytest.mark.asyncio
    async def test_conflicting_pending_trades_resolved_in_order(self, coordinator, seeded_store):
        first = await coordinator.submit_trade(
            USER_ID, TradeProposal("d1", "nd1", PositionSlot.DEF, target_round=3),
        )
        second = await coordinator.submit_trade(
            USER_ID, TradeProposal("d1", "nd2", PositionSlot.DEF, target_round=3),
        )

        results = await coordinator.apply_due_trades(USER_ID, now=round_window(3).start)

        assert [r.record.trade_id for r in results] == [
            first.record.trade_id,
            second.record.trade_id,
        ]
        assert [r.result_code for r in results] == [
            TradeResultCode.APPLIED,
            TradeResultCode.CANCELLED,
        ]
        assert results[1].details["decision"] == "REJECTED_INVALID_SLOT"
        assert seeded_store.commit_count == 3


# ============================================================
# STATUS / READS
# ============================================================

class TestStatus:
    @pytest.mark.asyncio
    async def test_status_during_lockout(self, coordinator):
        window = round_window(2)
        status = await coordinator.get_trade_status(USER_ID, now=window.start + timedelta(hours=1))

        assert status.is_lockout_active is True
        assert status.current_round == 2
        assert status.effective_round == 3
        assert status.seconds_until_next_boundary == (window.end - window.start).total_seconds() - 3600

    @pytest.mark.asyncio
    async def test_status_after_schedule_exhausted_alerts_admin(self, coordinator, alerter):
        status = await coordinator.get_trade_status(USER_ID, now=open_time(5))

        assert status.seconds_until_next_boundary is None
        alerter.send_alert.assert_awaited_once()
        alert = alerter.send_alert.await_args.args[0]
        assert alert.alert_type == AlertType.SCHEDULE_EXHAUSTED
        assert alert.severity == AlertSeverity.WARNING
        assert alert.league_id == coordinator.league_id

    @pytest.mark.asyncio
    async def test_status_for_user_without_trades(self, coordinator):
        status = await coordinator.get_trade_status("someone-new")
        assert status.trades_used == 0
        assert status.pending_trades == []

    @pytest.mark.asyncio
    async def test_history_in_submission_order(self, coordinator):
        a = await coordinator.submit_trade(USER_ID, TradeProposal("d1", "nd1", PositionSlot.DEF))
        b = await coordinator.submit_trade(
            USER_ID, TradeProposal("m1", "nm1", PositionSlot.MID, target_round=4),
        )
        history = await coordinator.get_trade_history(USER_ID)
        assert [r.trade_id for r in history] == [a.record.trade_id, b.record.trade_id]


class TestSimulate:
    @pytest.mark.asyncio
    async def test_simulation_writes_nothing(self, coordinator, seeded_store):
        result = await coordinator.simulate_trade(USER_ID, TradeProposal("d1", "nd1", PositionSlot.DEF))

        assert result.result_code == TradeResultCode.SIMULATED
        assert result.details["would_be"] == "APPLIED"
        assert seeded_store.commit_count == 0
        assert await seeded_store.get(trade_state_key(USER_ID)) is None

    @pytest.mark.asyncio
    async def test_simulation_reports_rejection(self, coordinator):
        result = await coordinator.simulate_trade(USER_ID, TradeProposal("d1", "nm1", PositionSlot.MID))
        assert result.result_code == TradeResultCode.REJECTED_INVALID_SLOT

    @pytest.mark.asyncio
    async def test_simulation_of_future_trade(self, coordinator):
        result = await coordinator.simulate_trade(
            USER_ID, TradeProposal("d1", "nd1", PositionSlot.DEF, target_round=4),
        )
        assert result.details == {"would_be": "PENDING", "round": 4}

    @pytest.mark.asyncio
    async def test_simulation_of_recorded_trade_id(self, coordinator, seeded_store):
        proposal = TradeProposal("d1", "nd1", PositionSlot.DEF, trade_id="client-key")
        await coordinator.submit_trade(USER_ID, proposal)
        commits = seeded_store.commit_count

        result = await coordinator.simulate_trade(USER_ID, proposal)

        assert result.result_code == TradeResultCode.SIMULATED
        assert result.details["would_be"] == "APPLIED"
        assert result.details["replayed"] is True
        assert seeded_store.commit_count == commits


# ============================================================
# CONCURRENCY / RETRIES
# ============================================================

class TestConcurrency:
    @pytest.mark.asyncio
    async def test_concurrent_submits_never_exceed_quota(self, coordinator, seeded_store):
        proposals = [TradeProposal(f"d{i}", f"nd{i}", PositionSlot.DEF) for i in range(1, 6)]

        results = await asyncio.gather(
            *(coordinator.submit_trade(USER_ID, p) for p in proposals)
        )

        codes = [r.result_code for r in results]
        assert codes.count(TradeResultCode.APPLIED) == 2
        assert codes.count(TradeResultCode.REJECTED_QUOTA_EXCEEDED) == 3
        assert len((await _state(seeded_store)).history) == 2

    @pytest.mark.asyncio
    async def test_lock_released_while_backing_off(self, monkeypatch):
        store = ConflictingStore(conflicts=2)
        coordinator, _ = await _coordinator_for(make_settings(), store=store)
        held_during_backoff = []

        async def fake_sleep(delay):
            held_during_backoff.append(coordinator._locks.is_locked(USER_ID))

        monkeypatch.setattr(coordinator_module, "asyncio", SimpleNamespace(sleep=fake_sleep))

        result = await coordinator.submit_trade(USER_ID, TradeProposal("d1", "nd1", PositionSlot.DEF))

        assert result.attempts == 3
        assert held_during_backoff == [False, False]

    @pytest.mark.asyncio
    async def test_other_submit_runs_during_backoff(self):
        store = ConflictingStore(conflicts=1)
        config = TradeEngineConfig(
            retry=RetryConfig(max_retries=2, initial_delay_seconds=0.05, max_delay_seconds=0.05),
            alerting=AdminAlertingConfig(enabled=False),
            league_id="test-league",
        )
        coordinator, _ = await _coordinator_for(make_settings(), store=store, config=config)

        first, second = await asyncio.gather(
            coordinator.submit_trade(USER_ID, TradeProposal("d1", "nd1", PositionSlot.DEF)),
            coordinator.submit_trade(USER_ID, TradeProposal("m1", "nm1", PositionSlot.MID)),
        )

        assert first.attempts == 2
        assert second.attempts == 1
        history = (await _state(store)).history
        assert [r.trade_id for r in history] == [second.record.trade_id, first.record.trade_id]

    @pytest.mark.asyncio
    async def test_users_are_independent(self, coordinator, seeded_store):
        await seeded_store.set(roster_key("user-2"), make_roster("user-2").to_dict())

        first, second = await asyncio.gather(
            coordinator.submit_trade(USER_ID, TradeProposal("d1", "nd1", PositionSlot.DEF)),
            coordinator.submit_trade("user-2", TradeProposal("d1", "nd1", PositionSlot.DEF)),
        )

        assert first.result_code == TradeResultCode.APPLIED
        assert second.result_code == TradeResultCode.APPLIED

    @pytest.mark.asyncio
    async def test_write_conflict_retried(self):
        store = ConflictingStore(conflicts=1)
        coordinator, _ = await _coordinator_for(make_settings(), store=store)

        result = await coordinator.submit_trade(USER_ID, TradeProposal("d1", "nd1", PositionSlot.DEF))

        assert result.result_code == TradeResultCode.APPLIED
        assert result.attempts == 2
        assert store.commit_attempts == 2

    @pytest.mark.asyncio
    async def test_exhausted_retries_leave_state_untouched(self):
        store = ConflictingStore(conflicts=10)
        alerter = AsyncMock()
        coordinator, _ = await _coordinator_for(make_settings(), store=store, alerter=alerter)
        before = await _snapshot(store)

        with pytest.raises(TransactionFailedError) as exc_info:
            await coordinator.submit_trade(USER_ID, TradeProposal("d1", "nd1", PositionSlot.DEF))

        assert exc_info.value.attempts == 3
        assert store.commit_attempts == 3
        assert await _snapshot(store) == before
        alerter.send_alert.assert_awaited_once()
        assert alerter.send_alert.await_args.args[0].alert_type == AlertType.PERSISTENCE_ERROR


# ============================================================
# CONFIGURATION / INVARIANT ERRORS
# ============================================================

class TestRaisedErrors:
    @pytest.mark.asyncio
    async def test_missing_settings_alerts_admin(self, store, clock, config, alerter):
        await store.set(roster_key(USER_ID), make_roster().to_dict())
        coordinator = TradeCoordinator(store, clock, config, alerter=alerter)

        with pytest.raises(DocumentNotFoundError) as exc_info:
            await coordinator.submit_trade(USER_ID, TradeProposal("d1", "nd1", PositionSlot.DEF))

        assert exc_info.value.key == "league/test-league/settings"
        alert = alerter.send_alert.await_args.args[0]
        assert alert.alert_type == AlertType.CONFIGURATION_ERROR
        assert alert.user_id == USER_ID

    @pytest.mark.asyncio
    async def test_missing_roster(self, coordinator):
        with pytest.raises(DocumentNotFoundError):
            await coordinator.submit_trade("no-roster", TradeProposal("d1", "nd1", PositionSlot.DEF))

    @pytest.mark.asyncio
    async def test_corrupt_trade_state(self, coordinator, seeded_store):
        await seeded_store.set(trade_state_key(USER_ID), {"user_id": USER_ID, "history": "oops"})

        with pytest.raises(InvalidDocumentError):
            await coordinator.get_trade_status(USER_ID)

    @pytest.mark.asyncio
    async def test_short_roster_is_invariant_violation(self, coordinator, seeded_store):
        roster = make_roster()
        del roster.players["f6"]
        await seeded_store.set(roster_key(USER_ID), roster.to_dict())

        with pytest.raises(RosterInvariantError):
            await coordinator.submit_trade(USER_ID, TradeProposal("d1", "nd1", PositionSlot.DEF))

    @pytest.mark.asyncio
    async def test_rejections_do_not_alert(self, coordinator, alerter):
        await coordinator.submit_trade(USER_ID, TradeProposal("d1", "nm1", PositionSlot.MID))
        alerter.send_alert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_store_outage_is_not_retried(self, alerter):
        class UnavailableStore(InMemoryDocumentStore):
            commit_attempts = 0

            async def commit(self, writes, expected_versions):
                self.commit_attempts += 1
                raise StoreUnavailableError("database unreachable")

        store = UnavailableStore()
        coordinator, _ = await _coordinator_for(make_settings(), store=store, alerter=alerter)

        with pytest.raises(StoreUnavailableError):
            await coordinator.submit_trade(USER_ID, TradeProposal("d1", "nd1", PositionSlot.DEF))

        assert store.commit_attempts == 1
        assert alerter.send_alert.await_args.args[0].alert_type == AlertType.PERSISTENCE_ERROR
