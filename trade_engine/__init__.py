"""
Trade Engine Package.

============================================================
PURPOSE
============================================================
Governs which trade actions a fantasy league user may take,
when, and how many times, with every consequence recorded to
persistent history.

CRITICAL PRINCIPLE:
    "The ledger is the only source of quota state."
    "A trade is applied completely or not at all."

AUTHORITY BOUNDARIES:
    CAN:
        - Accept, queue, cancel and apply trades
        - Mutate a user's roster as part of an applied trade
        - Report quota and lockout status

    MUST NOT:
        - Modify league settings during trade evaluation
        - Keep a separate trade counter
        - Apply a trade while its round is locked

============================================================
MODULES
============================================================
- types: Slots, statuses, settings, records, results
- config: Engine configuration
- errors: Error taxonomy and codes
- lockout: Round lockout schedule queries
- state_machine: Trade record lifecycle
- ledger: Append-only history and quota derivation
- rules: Trade rules engine
- locks: Per-user async locks
- store: Document store contract and in-memory store
- models: ORM model for documents
- repository: SQL document store
- alerting: Admin alerts via Telegram
- schemas: Pydantic schemas for callers
- settings_loader: YAML league settings
- coordinator: Single mutation entry point
- cli: Command-line interface

============================================================
"""

# ============================================================
# TYPES
# ============================================================
from .types import (
    # Enums
    PositionSlot,
    TradeStatus,
    TradeDecision,
    TradeResultCode,
    # Dataclasses
    LockoutWindow,
    SeasonPhaseBoundaries,
    LeagueSettings,
    Roster,
    TradeProposal,
    TradeRecord,
    TradeTransitionEvent,
    UserTradeState,
    TradeResult,
    TradeStatusSnapshot,
)

# ============================================================
# CONFIGURATION
# ============================================================
from .config import (
    RetryConfig,
    RosterConfig,
    StoreConfig,
    AdminAlertingConfig,
    TradeEngineConfig,
)

# ============================================================
# ERRORS
# ============================================================
from .errors import (
    ErrorCategory,
    ErrorSeverity,
    ErrorCodeInfo,
    ERROR_CODES,
    get_error_info,
    is_retryable,
    should_escalate,
)

# ============================================================
# COMPONENTS
# ============================================================
from .lockout import LockoutScheduler
from .state_machine import VALID_TRANSITIONS, TransitionGuard, TradeStateMachine
from .ledger import TradeLedger
from .rules import RuleEvaluation, TradeRulesEngine
from .locks import KeyedLockRegistry
from .store import (
    StoredDocument,
    PersistentStore,
    InMemoryDocumentStore,
    settings_key,
    trade_state_key,
    roster_key,
)
from .repository import SqlDocumentStore
from .alerting import Alert, AlertSeverity, AlertType, TelegramAlerter
from .settings_loader import (
    parse_league_settings,
    load_league_settings,
    publish_league_settings,
)
from .coordinator import TradeCoordinator


__all__ = [
    # Types
    "PositionSlot",
    "TradeStatus",
    "TradeDecision",
    "TradeResultCode",
    "LockoutWindow",
    "SeasonPhaseBoundaries",
    "LeagueSettings",
    "Roster",
    "TradeProposal",
    "TradeRecord",
    "TradeTransitionEvent",
    "UserTradeState",
    "TradeResult",
    "TradeStatusSnapshot",
    # Config
    "RetryConfig",
    "RosterConfig",
    "StoreConfig",
    "AdminAlertingConfig",
    "TradeEngineConfig",
    # Errors
    "ErrorCategory",
    "ErrorSeverity",
    "ErrorCodeInfo",
    "ERROR_CODES",
    "get_error_info",
    "is_retryable",
    "should_escalate",
    # Components
    "LockoutScheduler",
    "VALID_TRANSITIONS",
    "TransitionGuard",
    "TradeStateMachine",
    "TradeLedger",
    "RuleEvaluation",
    "TradeRulesEngine",
    "KeyedLockRegistry",
    "StoredDocument",
    "PersistentStore",
    "InMemoryDocumentStore",
    "settings_key",
    "trade_state_key",
    "roster_key",
    "SqlDocumentStore",
    "Alert",
    "AlertSeverity",
    "AlertType",
    "TelegramAlerter",
    "parse_league_settings",
    "load_league_settings",
    "publish_league_settings",
    "TradeCoordinator",
]
