"""
Trade Engine - Configuration.

============================================================
PURPOSE
============================================================
All configuration for the Trade Engine.

League rules (quota, lockout schedule, season phases) are NOT
here: they live in LeagueSettings, published by the league
admin. This module configures the engine itself.

CRITICAL CONSTRAINTS:
- No blind retries (write conflicts only)
- No infinite loops (bounded attempts)
- Deterministic behavior

============================================================
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Optional

from dotenv import load_dotenv

from .types import PositionSlot


# ============================================================
# RETRY CONFIGURATION
# ============================================================

@dataclass
class RetryConfig:
    """
    Retry configuration for the read-evaluate-write sequence.

    Only store write conflicts are retried.
    """

    max_retries: int = 3
    """Maximum number of retry attempts after the first try."""

    initial_delay_seconds: float = 0.05
    """Initial delay before first retry."""

    max_delay_seconds: float = 1.0
    """Maximum delay between retries."""

    backoff_multiplier: float = 2.0
    """Exponential backoff multiplier."""


# ============================================================
# ROSTER CONFIGURATION
# ============================================================

def _default_required_slots() -> Dict[PositionSlot, int]:
    return {
        PositionSlot.DEF: 6,
        PositionSlot.MID: 5,
        PositionSlot.RUC: 1,
        PositionSlot.FWD: 6,
    }


@dataclass
class RosterConfig:
    """
    Roster slot configuration.
    """

    required_slots: Dict[PositionSlot, int] = field(default_factory=_default_required_slots)
    """Exact player count per slot."""

    enforce_slot_counts: bool = True
    """Whether loaded rosters must match required_slots exactly."""


# ============================================================
# STORE CONFIGURATION
# ============================================================

@dataclass
class StoreConfig:
    """
    Document store configuration.
    """

    backend: str = "memory"
    """'memory' or 'sql'."""

    database_url_env: str = "TRADE_DATABASE_URL"
    """Environment variable holding the SQLAlchemy async URL."""

    default_database_url: str = "postgresql+asyncpg://localhost:5432/fantasy_trades"
    """Used when the environment variable is unset."""

    echo_sql: bool = False
    """Log SQL statements."""

    @property
    def database_url(self) -> str:
        return os.environ.get(self.database_url_env) or self.default_database_url


# ============================================================
# ALERTING CONFIGURATION
# ============================================================

@dataclass
class AdminAlertingConfig:
    """
    Alerting configuration for administrator-facing events.
    """

    enabled: bool = True
    """Whether alerting is enabled."""

    telegram_bot_token_env: str = "TELEGRAM_BOT_TOKEN"
    """Environment variable for Telegram bot token."""

    telegram_chat_id_env: str = "TELEGRAM_CHAT_ID"
    """Environment variable for Telegram chat ID."""

    max_alerts_per_minute: int = 10
    """Maximum alerts per minute."""

    min_severity: str = "WARNING"
    """Minimum severity to alert (INFO, WARNING, ERROR, CRITICAL)."""


# ============================================================
# MASTER CONFIGURATION
# ============================================================

@dataclass
class TradeEngineConfig:
    """
    Master configuration for the Trade Engine.
    """

    retry: RetryConfig = field(default_factory=RetryConfig)
    """Retry configuration."""

    roster: RosterConfig = field(default_factory=RosterConfig)
    """Roster configuration."""

    store: StoreConfig = field(default_factory=StoreConfig)
    """Store configuration."""

    alerting: AdminAlertingConfig = field(default_factory=AdminAlertingConfig)
    """Alerting configuration."""

    league_id: str = "default"
    """League the coordinator serves."""

    log_level: str = "INFO"
    """Logging level."""

    @classmethod
    def for_testing(cls) -> "TradeEngineConfig":
        """Get configuration for testing."""
        return cls(
            retry=RetryConfig(max_retries=2, initial_delay_seconds=0.0, max_delay_seconds=0.0),
            alerting=AdminAlertingConfig(enabled=False),
            league_id="test-league",
            log_level="DEBUG",
        )

    @classmethod
    def for_production(cls) -> "TradeEngineConfig":
        """Get configuration for production."""
        return cls(
            retry=RetryConfig(max_retries=5),
            store=StoreConfig(backend="sql"),
            alerting=AdminAlertingConfig(enabled=True, min_severity="ERROR"),
        )

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "TradeEngineConfig":
        """
        Create config from environment variables (and an optional .env file).

        Recognized variables:
            TRADE_LEAGUE_ID, TRADE_LOG_LEVEL, TRADE_STORE_BACKEND,
            TRADE_MAX_RETRIES, TRADE_RETRY_DELAY_SECONDS,
            TRADE_ALERTS_ENABLED
        """
        load_dotenv(env_file)

        config = cls()
        config.league_id = os.environ.get("TRADE_LEAGUE_ID", config.league_id)
        config.log_level = os.environ.get("TRADE_LOG_LEVEL", config.log_level).upper()
        config.store.backend = os.environ.get("TRADE_STORE_BACKEND", config.store.backend)

        if "TRADE_MAX_RETRIES" in os.environ:
            config.retry.max_retries = int(os.environ["TRADE_MAX_RETRIES"])
        if "TRADE_RETRY_DELAY_SECONDS" in os.environ:
            config.retry.initial_delay_seconds = float(os.environ["TRADE_RETRY_DELAY_SECONDS"])
        if "TRADE_ALERTS_ENABLED" in os.environ:
            config.alerting.enabled = os.environ["TRADE_ALERTS_ENABLED"].lower() in ("1", "true", "yes")

        return config
