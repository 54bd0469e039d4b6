"""
Trade Engine - Types.

============================================================
PURPOSE
============================================================
All type definitions for the Trade Engine.

CRITICAL PRINCIPLE:
    "The ledger is the source of truth for quota consumption."
    "Trade records are immutable; status changes replace them."

DOCUMENT ENCODING:
    Every persisted type has to_dict()/from_dict() producing
    JSON-safe dictionaries. Datetimes are ISO 8601 UTC strings.

============================================================
"""

from datetime import datetime
from typing import Optional, Dict, Any, List, Tuple
from dataclasses import dataclass, field, replace
from enum import Enum
import uuid

from core.clock import ensure_utc, from_iso8601, to_iso8601


def _opt_iso(value: Optional[datetime]) -> Optional[str]:
    return to_iso8601(value) if value is not None else None


def _opt_dt(value: Optional[str]) -> Optional[datetime]:
    return from_iso8601(value) if value else None


# ============================================================
# ROSTER SLOTS
# ============================================================

class PositionSlot(Enum):
    """Roster position category."""

    DEF = "DEF"
    """Defender."""

    MID = "MID"
    """Midfielder."""

    RUC = "RUC"
    """Ruck."""

    FWD = "FWD"
    """Forward."""


# ============================================================
# TRADE LIFECYCLE STATES
# ============================================================

class TradeStatus(Enum):
    """
    Trade record lifecycle state.

    State Machine:

        PENDING ──► APPLIED
           │
           └──────► CANCELLED

    APPLIED and CANCELLED are terminal.
    """

    PENDING = "pending"
    """Waiting for its target round to become current."""

    APPLIED = "applied"
    """Roster mutated, counts toward quota."""

    CANCELLED = "cancelled"
    """Withdrawn before the target round locked out."""

    def is_terminal(self) -> bool:
        """Check if this is a terminal state."""
        return self in {TradeStatus.APPLIED, TradeStatus.CANCELLED}

    def allows_cancel(self) -> bool:
        """Check if a trade in this state can be cancelled."""
        return self == TradeStatus.PENDING


# ============================================================
# DECISION / RESULT CODES
# ============================================================

class TradeDecision(Enum):
    """Outcome of the rules engine. First failing check wins."""

    ALLOWED = "ALLOWED"
    REJECTED_LOCKOUT = "REJECTED_LOCKOUT"
    REJECTED_QUOTA_EXCEEDED = "REJECTED_QUOTA_EXCEEDED"
    REJECTED_INVALID_SLOT = "REJECTED_INVALID_SLOT"
    REJECTED_DUPLICATE_PLAYER = "REJECTED_DUPLICATE_PLAYER"

    @property
    def is_allowed(self) -> bool:
        return self == TradeDecision.ALLOWED


class TradeResultCode(Enum):
    """Result codes returned by the coordinator."""

    # Success
    APPLIED = "APPLIED"
    """Trade applied to the roster immediately."""

    PENDING = "PENDING"
    """Trade queued for a future round."""

    CANCELLED = "CANCELLED"
    """Pending trade cancelled."""

    SIMULATED = "SIMULATED"
    """Dry-run evaluation passed; nothing written."""

    # Rejections
    REJECTED_LOCKOUT = "REJECTED_LOCKOUT"
    """Trading is frozen for the current round."""

    REJECTED_QUOTA_EXCEEDED = "REJECTED_QUOTA_EXCEEDED"
    """No trades remaining this season."""

    REJECTED_INVALID_SLOT = "REJECTED_INVALID_SLOT"
    """Outgoing and incoming players occupy different slots."""

    REJECTED_DUPLICATE_PLAYER = "REJECTED_DUPLICATE_PLAYER"
    """Incoming player is already on the roster."""

    CANNOT_CANCEL_AFTER_LOCKOUT = "CANNOT_CANCEL_AFTER_LOCKOUT"
    """Target round's lockout window has started."""

    CANNOT_CANCEL_NOT_PENDING = "CANNOT_CANCEL_NOT_PENDING"
    """Trade is already applied or cancelled."""

    TRADE_NOT_FOUND = "TRADE_NOT_FOUND"
    """No trade with that id in the user's ledger."""

    REJECTED_TRADE_ID_REUSED = "REJECTED_TRADE_ID_REUSED"
    """Caller-chosen trade id already names a different trade."""

    def is_success(self) -> bool:
        """Check if result is successful."""
        return self in {
            TradeResultCode.APPLIED,
            TradeResultCode.PENDING,
            TradeResultCode.CANCELLED,
            TradeResultCode.SIMULATED,
        }

    @classmethod
    def from_decision(cls, decision: TradeDecision) -> "TradeResultCode":
        """Map a rejecting rules-engine decision to a result code."""
        if decision.is_allowed:
            raise ValueError("ALLOWED has no rejection result code")
        return cls(decision.value)


# ============================================================
# LEAGUE SETTINGS
# ============================================================

@dataclass(frozen=True)
class LockoutWindow:
    """Half-open interval [start, end) during which a round is frozen."""

    round: int
    start: datetime
    end: datetime

    def contains(self, now: datetime) -> bool:
        """Check if now falls within [start, end)."""
        return self.start <= now < self.end

    def to_dict(self) -> Dict[str, Any]:
        return {
            "round": self.round,
            "start": to_iso8601(self.start),
            "end": to_iso8601(self.end),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LockoutWindow":
        return cls(
            round=int(data["round"]),
            start=from_iso8601(data["start"]),
            end=from_iso8601(data["end"]),
        )


@dataclass(frozen=True)
class SeasonPhaseBoundaries:
    """
    Season phases.

    Pre-season is [season_start, pre_season_end); the competitive
    season runs from pre_season_end until season_end.
    """

    season_start: datetime
    pre_season_end: datetime
    season_end: datetime

    def is_pre_season(self, now: datetime) -> bool:
        """Check if now precedes the end of pre-season."""
        return now < self.pre_season_end

    def to_dict(self) -> Dict[str, Any]:
        return {
            "season_start": to_iso8601(self.season_start),
            "pre_season_end": to_iso8601(self.pre_season_end),
            "season_end": to_iso8601(self.season_end),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SeasonPhaseBoundaries":
        return cls(
            season_start=from_iso8601(data["season_start"]),
            pre_season_end=from_iso8601(data["pre_season_end"]),
            season_end=from_iso8601(data["season_end"]),
        )


@dataclass(frozen=True)
class LeagueSettings:
    """
    League-wide trade configuration.

    Created by the league admin, read-only to the trade core.
    """

    league_id: str
    """League identifier."""

    trades_per_season: int
    """Season quota of applied trades."""

    season_phase_boundaries: SeasonPhaseBoundaries
    """Pre-season and season instants."""

    round_lockout_schedule: Tuple[LockoutWindow, ...] = ()
    """Ordered round lockout windows."""

    pre_season_unlimited: bool = False
    """Whether pre-season trades bypass the quota."""

    def __post_init__(self):
        if self.trades_per_season < 0:
            raise ValueError("trades_per_season must be >= 0")

    def is_unlimited_at(self, now: datetime) -> bool:
        """Check if the quota is suspended at this instant."""
        return self.pre_season_unlimited and self.season_phase_boundaries.is_pre_season(now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "league_id": self.league_id,
            "trades_per_season": self.trades_per_season,
            "pre_season_unlimited": self.pre_season_unlimited,
            "round_lockout_schedule": [w.to_dict() for w in self.round_lockout_schedule],
            "season_phase_boundaries": self.season_phase_boundaries.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LeagueSettings":
        return cls(
            league_id=str(data["league_id"]),
            trades_per_season=int(data["trades_per_season"]),
            pre_season_unlimited=bool(data.get("pre_season_unlimited", False)),
            round_lockout_schedule=tuple(
                LockoutWindow.from_dict(w) for w in data.get("round_lockout_schedule", [])
            ),
            season_phase_boundaries=SeasonPhaseBoundaries.from_dict(
                data["season_phase_boundaries"]
            ),
        )


# ============================================================
# ROSTER
# ============================================================

@dataclass
class Roster:
    """A user's selected players, keyed by player id."""

    user_id: str
    players: Dict[str, PositionSlot] = field(default_factory=dict)

    def contains(self, player_id: str) -> bool:
        return player_id in self.players

    def slot_of(self, player_id: str) -> Optional[PositionSlot]:
        return self.players.get(player_id)

    def slot_counts(self) -> Dict[PositionSlot, int]:
        """Number of players per slot (every slot present, possibly 0)."""
        counts = {slot: 0 for slot in PositionSlot}
        for slot in self.players.values():
            counts[slot] += 1
        return counts

    def swapped(self, player_out_id: str, player_in_id: str, slot: PositionSlot) -> "Roster":
        """Return a copy with player_out replaced by player_in."""
        players = dict(self.players)
        del players[player_out_id]
        players[player_in_id] = slot
        return Roster(user_id=self.user_id, players=players)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "players": {pid: slot.value for pid, slot in sorted(self.players.items())},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Roster":
        return cls(
            user_id=str(data["user_id"]),
            players={
                str(pid): PositionSlot(slot)
                for pid, slot in (data.get("players") or {}).items()
            },
        )


# ============================================================
# TRADE PROPOSAL
# ============================================================

@dataclass(frozen=True)
class TradeProposal:
    """A user's request to swap one roster player for another."""

    player_out_id: str
    """Player leaving the roster."""

    player_in_id: str
    """Player joining the roster."""

    player_in_slot: PositionSlot
    """Slot the incoming player plays in."""

    target_round: Optional[int] = None
    """Round the trade should take effect for (None = next available)."""

    trade_id: Optional[str] = None
    """
    Caller-chosen idempotency key; generated when omitted.

    Resubmitting the same trade under an id already in the ledger
    returns the recorded trade instead of creating another.
    """


# ============================================================
# TRADE RECORD
# ============================================================

@dataclass(frozen=True)
class TradeRecord:
    """
    Ledger entry for one trade.

    Frozen: status transitions produce a replacement via with_status().
    """

    trade_id: str
    timestamp: datetime
    player_out_id: str
    player_in_id: str
    slot: PositionSlot
    round: int
    status: TradeStatus = TradeStatus.PENDING
    applied_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @staticmethod
    def new_id() -> str:
        return str(uuid.uuid4())

    @property
    def effective_at(self) -> datetime:
        """Instant the trade consumed quota (application time, else creation)."""
        return self.applied_at or self.timestamp

    def with_status(self, status: TradeStatus, at: datetime) -> "TradeRecord":
        """Return a copy in the new status, stamping the matching instant."""
        if status == TradeStatus.APPLIED:
            return replace(self, status=status, applied_at=at)
        if status == TradeStatus.CANCELLED:
            return replace(self, status=status, cancelled_at=at)
        return replace(self, status=status)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trade_id": self.trade_id,
            "timestamp": to_iso8601(self.timestamp),
            "player_out_id": self.player_out_id,
            "player_in_id": self.player_in_id,
            "slot": self.slot.value,
            "round": self.round,
            "status": self.status.value,
            "applied_at": _opt_iso(self.applied_at),
            "cancelled_at": _opt_iso(self.cancelled_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TradeRecord":
        return cls(
            trade_id=str(data["trade_id"]),
            timestamp=from_iso8601(data["timestamp"]),
            player_out_id=str(data["player_out_id"]),
            player_in_id=str(data["player_in_id"]),
            slot=PositionSlot(data["slot"]),
            round=int(data["round"]),
            status=TradeStatus(data["status"]),
            applied_at=_opt_dt(data.get("applied_at")),
            cancelled_at=_opt_dt(data.get("cancelled_at")),
        )


@dataclass(frozen=True)
class TradeTransitionEvent:
    """Audit entry for a trade status change."""

    trade_id: str
    from_state: Optional[TradeStatus]
    to_state: TradeStatus
    timestamp: datetime
    reason: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trade_id": self.trade_id,
            "from_state": self.from_state.value if self.from_state else None,
            "to_state": self.to_state.value,
            "timestamp": to_iso8601(self.timestamp),
            "reason": self.reason,
            "details": dict(self.details),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TradeTransitionEvent":
        from_state = data.get("from_state")
        return cls(
            trade_id=str(data["trade_id"]),
            from_state=TradeStatus(from_state) if from_state else None,
            to_state=TradeStatus(data["to_state"]),
            timestamp=from_iso8601(data["timestamp"]),
            reason=data.get("reason", ""),
            details=dict(data.get("details") or {}),
        )


# ============================================================
# USER TRADE STATE
# ============================================================

@dataclass
class UserTradeState:
    """
    Per-user trade state.

    Quota figures are never stored here; TradeLedger derives them
    from history on every read.
    """

    user_id: str
    league_id: str
    history: List[TradeRecord] = field(default_factory=list)
    transitions: List[TradeTransitionEvent] = field(default_factory=list)

    @classmethod
    def empty(cls, user_id: str, league_id: str) -> "UserTradeState":
        return cls(user_id=user_id, league_id=league_id)

    def find(self, trade_id: str) -> Optional[TradeRecord]:
        for record in self.history:
            if record.trade_id == trade_id:
                return record
        return None

    def copy(self) -> "UserTradeState":
        """Shallow copy; records and events are immutable."""
        return UserTradeState(
            user_id=self.user_id,
            league_id=self.league_id,
            history=list(self.history),
            transitions=list(self.transitions),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "league_id": self.league_id,
            "history": [r.to_dict() for r in self.history],
            "transitions": [e.to_dict() for e in self.transitions],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserTradeState":
        return cls(
            user_id=str(data["user_id"]),
            league_id=str(data["league_id"]),
            history=[TradeRecord.from_dict(r) for r in data.get("history", [])],
            transitions=[
                TradeTransitionEvent.from_dict(e) for e in data.get("transitions", [])
            ],
        )


# ============================================================
# RESULTS
# ============================================================

@dataclass
class TradeResult:
    """
    Result of a coordinator operation.

    Rejections are results, not exceptions.
    """

    result_code: TradeResultCode
    """Outcome."""

    record: Optional[TradeRecord] = None
    """Record created or changed (None on rejection)."""

    message: str = ""
    """Human-readable detail."""

    details: Dict[str, Any] = field(default_factory=dict)
    """Additional context for the caller."""

    attempts: int = 1
    """Read-evaluate-write attempts used."""

    @property
    def is_success(self) -> bool:
        """Check if operation was successful."""
        return self.result_code.is_success()


@dataclass
class TradeStatusSnapshot:
    """Read-only composite for display purposes."""

    user_id: str
    trades_used: int
    trades_remaining: Optional[int]
    """None while the quota is suspended (unlimited pre-season)."""

    is_lockout_active: bool
    is_pre_season: bool
    unlimited: bool
    current_round: Optional[int]
    effective_round: int
    pending_trades: List[TradeRecord] = field(default_factory=list)
    seconds_until_next_boundary: Optional[float] = None
    """None once the lockout schedule is exhausted."""

    as_of: Optional[datetime] = None

    def __post_init__(self):
        if self.as_of is not None:
            self.as_of = ensure_utc(self.as_of)
