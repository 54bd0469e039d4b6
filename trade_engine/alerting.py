"""
Trade Engine - Admin Alerting.

============================================================
PURPOSE
============================================================
Surfaces configuration problems and invariant violations to
the league administrator via Telegram.

ALERT TYPES:
- Invalid or missing league configuration
- Exhausted lockout schedule
- Store unavailable / retries exhausted
- Invariant violations (duplicate ids, bad transitions)

SAFETY REQUIREMENTS:
- Administrator-facing problems are never silently swallowed:
  when Telegram is not configured the alert is logged
- Rate limiting to prevent spam
- Sending an alert never raises into the trade path

============================================================
"""

import asyncio
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field
from enum import Enum

import aiohttp

from core.clock import to_iso8601
from core.exceptions import (
    ConfigurationError,
    InvariantViolation,
    NoUpcomingBoundaryError,
    PersistenceError,
    Severity,
    TradeCoreException,
)

from .config import AdminAlertingConfig


logger = logging.getLogger(__name__)


# ============================================================
# ALERT TYPES
# ============================================================

class AlertSeverity(Enum):
    """How urgently the league admin needs to look."""

    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    AlertSeverity.INFO: 0,
    AlertSeverity.WARNING: 1,
    AlertSeverity.ERROR: 2,
    AlertSeverity.CRITICAL: 3,
}


class AlertType(Enum):
    """Types of alerts."""

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    """League settings or documents unusable."""

    SCHEDULE_EXHAUSTED = "SCHEDULE_EXHAUSTED"
    """No upcoming lockout boundary."""

    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"
    """Store unavailable or retries exhausted."""

    INVARIANT_VIOLATION = "INVARIANT_VIOLATION"
    """Programming invariant broken."""


@dataclass
class Alert:
    """One admin-facing notification."""

    alert_type: AlertType
    """Type of alert."""

    severity: AlertSeverity
    """Severity level."""

    message: str
    """Alert message."""

    details: Dict[str, Any] = field(default_factory=dict)
    """Additional details."""

    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    """Creation instant (UTC)."""

    user_id: Optional[str] = None
    """Related user."""

    league_id: Optional[str] = None
    """Related league."""


# ============================================================
# TELEGRAM ALERTER
# ============================================================

class TelegramAlerter:
    """
    Sends admin alerts via Telegram.

    Features:
    - Rate limiting
    - Severity filtering
    - Log fallback when credentials are missing
    """

    def __init__(self, config: AdminAlertingConfig):
        self._config = config
        self._min_severity = AlertSeverity(config.min_severity.upper())

        self._bot_token = os.environ.get(config.telegram_bot_token_env, "")
        self._chat_id = os.environ.get(config.telegram_chat_id_env, "")

        self._recent_sends: List[datetime] = []
        self._session: Optional[aiohttp.ClientSession] = None

        self._history: List[Alert] = []
        self._max_history = 100

    @property
    def is_configured(self) -> bool:
        """Both the bot token and chat id are present in the environment."""
        return bool(self._bot_token and self._chat_id)

    async def send_alert(self, alert: Alert) -> bool:
        """
        Send an alert.

        Returns:
            Whether the alert reached Telegram
        """
        if not self._config.enabled:
            return False

        if alert.severity.rank < self._min_severity.rank:
            return False

        self._history.append(alert)
        if len(self._history) > self._max_history:
            self._history.pop(0)

        if not self.is_configured:
            logger.error(f"ADMIN ALERT [{alert.alert_type.value}] {alert.message} {alert.details}")
            return False

        if not self._can_send():
            logger.warning(f"Admin alert suppressed by rate limit: {alert.message}")
            return False

        return await self._send_telegram(alert)

    async def _send_telegram(self, alert: Alert) -> bool:
        """POST to the Bot API sendMessage endpoint."""
        message = self._format_message(alert)

        try:
            if self._session is None:
                self._session = aiohttp.ClientSession()

            url = f"https://api.telegram.org/bot{self._bot_token}/sendMessage"
            payload = {
                "chat_id": self._chat_id,
                "text": message,
                "parse_mode": "HTML",
            }

            async with self._session.post(url, json=payload) as response:
                if response.status == 200:
                    self._record_sent()
                    logger.info(f"Admin alert delivered: {alert.alert_type.value}")
                    return True
                body = await response.text()
                logger.error(f"Telegram API error {response.status}: {body}")
                return False

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Admin alert not delivered ({type(e).__name__}): {e}")
            return False

    def _format_message(self, alert: Alert) -> str:
        """HTML body: headline, scope (league / user), then context keys."""
        scope = " / ".join(
            part for part in (
                f"league <b>{alert.league_id}</b>" if alert.league_id else "",
                f"user <code>{alert.user_id}</code>" if alert.user_id else "",
            ) if part
        )
        lines = [
            f"[{alert.severity.value}] <b>{alert.alert_type.value}</b>",
            alert.message,
        ]
        if scope:
            lines.append(scope)
        lines.extend(f"{key} = {value}" for key, value in sorted(alert.details.items()))
        lines.append(f"<i>{to_iso8601(alert.timestamp)}</i>")
        return "\n".join(lines)

    def _can_send(self) -> bool:
        """Check the per-minute rate limit."""
        minute_ago = datetime.now(timezone.utc) - timedelta(minutes=1)
        self._recent_sends = [
            t for t in self._recent_sends if t > minute_ago
        ]
        return len(self._recent_sends) < self._config.max_alerts_per_minute

    def _record_sent(self) -> None:
        self._recent_sends.append(datetime.now(timezone.utc))

    def get_history(self, limit: int = 10) -> List[Alert]:
        """Most recent alerts that passed filtering, oldest first."""
        return self._history[-limit:]

    async def close(self) -> None:
        """Close HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None


# ============================================================
# ALERT HELPER FUNCTIONS
# ============================================================

def alert_from_exception(
    exc: TradeCoreException,
    user_id: Optional[str] = None,
    league_id: Optional[str] = None,
) -> Alert:
    """Build an admin alert describing a raised trade core exception."""
    if isinstance(exc, NoUpcomingBoundaryError):
        alert_type = AlertType.SCHEDULE_EXHAUSTED
    elif isinstance(exc, ConfigurationError):
        alert_type = AlertType.CONFIGURATION_ERROR
    elif isinstance(exc, PersistenceError):
        alert_type = AlertType.PERSISTENCE_ERROR
    elif isinstance(exc, InvariantViolation):
        alert_type = AlertType.INVARIANT_VIOLATION
    else:
        alert_type = AlertType.CONFIGURATION_ERROR

    severity = {
        Severity.LOW: AlertSeverity.INFO,
        Severity.MEDIUM: AlertSeverity.WARNING,
        Severity.HIGH: AlertSeverity.ERROR,
        Severity.CRITICAL: AlertSeverity.CRITICAL,
    }[exc.severity]

    return Alert(
        alert_type=alert_type,
        severity=severity,
        message=f"{exc.error_code}: {exc.message}",
        details=dict(exc.context),
        user_id=user_id,
        league_id=league_id,
    )


__all__ = [
    "AlertSeverity",
    "AlertType",
    "Alert",
    "TelegramAlerter",
    "alert_from_exception",
]
