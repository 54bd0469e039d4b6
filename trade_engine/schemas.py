"""
Pydantic Schemas for the trade engine's caller-facing surface.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from enum import Enum

from .types import (
    PositionSlot,
    TradeProposal,
    TradeRecord,
    TradeResult,
    TradeStatusSnapshot,
)


# =============================================================
# ENUMS
# =============================================================

class PositionSlotEnum(str, Enum):
    DEF = "DEF"
    MID = "MID"
    RUC = "RUC"
    FWD = "FWD"


class TradeStatusEnum(str, Enum):
    PENDING = "pending"
    APPLIED = "applied"
    CANCELLED = "cancelled"


# =============================================================
# REQUEST SCHEMAS
# =============================================================

class TradeProposalSchema(BaseModel):
    """Trade request as sent by the UI layer."""
    model_config = ConfigDict(str_strip_whitespace=True)

    player_out_id: str = Field(..., min_length=1)
    player_in_id: str = Field(..., min_length=1)
    player_in_slot: PositionSlotEnum
    target_round: Optional[int] = Field(None, ge=0)
    trade_id: Optional[str] = Field(None, min_length=1)

    @field_validator("player_in_id")
    @classmethod
    def players_differ(cls, value: str, info: ValidationInfo) -> str:
        if value == info.data.get("player_out_id"):
            raise ValueError("player_in_id must differ from player_out_id")
        return value

    def to_proposal(self) -> TradeProposal:
        return TradeProposal(
            player_out_id=self.player_out_id,
            player_in_id=self.player_in_id,
            player_in_slot=PositionSlot(self.player_in_slot.value),
            target_round=self.target_round,
            trade_id=self.trade_id,
        )


# =============================================================
# RESPONSE SCHEMAS
# =============================================================

class TradeRecordSchema(BaseModel):
    """A trade ledger entry."""
    trade_id: str
    timestamp: datetime
    player_out_id: str
    player_in_id: str
    slot: PositionSlotEnum
    round: int
    status: TradeStatusEnum
    applied_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: TradeRecord) -> "TradeRecordSchema":
        return cls(
            trade_id=record.trade_id,
            timestamp=record.timestamp,
            player_out_id=record.player_out_id,
            player_in_id=record.player_in_id,
            slot=PositionSlotEnum(record.slot.value),
            round=record.round,
            status=TradeStatusEnum(record.status.value),
            applied_at=record.applied_at,
            cancelled_at=record.cancelled_at,
        )


class TradeResultSchema(BaseModel):
    """Outcome of submit/cancel/simulate."""
    result_code: str
    success: bool
    message: str = ""
    record: Optional[TradeRecordSchema] = None

    @classmethod
    def from_result(cls, result: TradeResult) -> "TradeResultSchema":
        return cls(
            result_code=result.result_code.value,
            success=result.is_success,
            message=result.message,
            record=TradeRecordSchema.from_record(result.record) if result.record else None,
        )


class TradeStatusSchema(BaseModel):
    """Display composite for a user's trade status."""
    user_id: str
    trades_used: int
    trades_remaining: Optional[int] = None
    unlimited: bool
    is_lockout_active: bool
    is_pre_season: bool
    current_round: Optional[int] = None
    effective_round: int
    seconds_until_next_boundary: Optional[float] = None
    pending_trades: List[TradeRecordSchema] = Field(default_factory=list)
    as_of: Optional[datetime] = None

    @classmethod
    def from_snapshot(cls, snapshot: TradeStatusSnapshot) -> "TradeStatusSchema":
        return cls(
            user_id=snapshot.user_id,
            trades_used=snapshot.trades_used,
            trades_remaining=snapshot.trades_remaining,
            unlimited=snapshot.unlimited,
            is_lockout_active=snapshot.is_lockout_active,
            is_pre_season=snapshot.is_pre_season,
            current_round=snapshot.current_round,
            effective_round=snapshot.effective_round,
            seconds_until_next_boundary=snapshot.seconds_until_next_boundary,
            pending_trades=[TradeRecordSchema.from_record(r) for r in snapshot.pending_trades],
            as_of=snapshot.as_of,
        )
