"""
Trade Engine - Lockout Scheduler.

============================================================
PURPOSE
============================================================
Answers "is trading open right now?" from the round lockout
schedule and a supplied instant.

RULES:
- Windows are half-open [start, end): at exactly `end` the
  lockout has been released
- Overlapping, inverted or duplicate-round windows are rejected
  when the scheduler is built, never at query time
- The scheduler never reads the clock; callers pass `now`

============================================================
"""

import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from core.exceptions import InvalidScheduleError, NoUpcomingBoundaryError

from .types import LeagueSettings, LockoutWindow


logger = logging.getLogger(__name__)


class LockoutScheduler:
    """
    Computes lockout state from a validated round schedule.
    """

    def __init__(self, windows: Iterable[LockoutWindow]):
        """
        Initialize scheduler.

        Args:
            windows: Round lockout windows in any order

        Raises:
            InvalidScheduleError: If the schedule is malformed
        """
        self._windows: List[LockoutWindow] = sorted(windows, key=lambda w: w.start)
        self._validate()

    @classmethod
    def from_settings(cls, settings: LeagueSettings) -> "LockoutScheduler":
        return cls(settings.round_lockout_schedule)

    @property
    def windows(self) -> List[LockoutWindow]:
        return list(self._windows)

    def _validate(self) -> None:
        seen_rounds = set()
        previous: Optional[LockoutWindow] = None

        for window in self._windows:
            if window.start.tzinfo is None or window.end.tzinfo is None:
                raise InvalidScheduleError(
                    f"Round {window.round} window uses naive datetimes",
                    round_number=window.round,
                )
            if window.start >= window.end:
                raise InvalidScheduleError(
                    f"Round {window.round} window starts at or after it ends",
                    round_number=window.round,
                )
            if window.round in seen_rounds:
                raise InvalidScheduleError(
                    f"Round {window.round} appears more than once",
                    round_number=window.round,
                )
            if previous is not None:
                if window.start < previous.end:
                    raise InvalidScheduleError(
                        f"Round {window.round} window overlaps round {previous.round}",
                        round_number=window.round,
                        other_round=previous.round,
                    )
                if window.round < previous.round:
                    raise InvalidScheduleError(
                        f"Round {window.round} is scheduled after round {previous.round}",
                        round_number=window.round,
                        other_round=previous.round,
                    )
            seen_rounds.add(window.round)
            previous = window

        logger.debug(f"Lockout schedule validated: {len(self._windows)} windows")

    # --------------------------------------------------------
    # QUERIES
    # --------------------------------------------------------

    def active_window(self, now: datetime) -> Optional[LockoutWindow]:
        """Window containing now, if any."""
        for window in self._windows:
            if window.contains(now):
                return window
        return None

    def is_lockout_active(self, now: datetime) -> bool:
        """Check if now falls within any lockout window."""
        return self.active_window(now) is not None

    def current_round(self, now: datetime) -> Optional[int]:
        """
        Round whose window contains or most recently preceded now.

        Returns None before the first window opens.
        """
        current = None
        for window in self._windows:
            if window.start <= now:
                current = window.round
            else:
                break
        return current

    def effective_round(self, now: datetime) -> int:
        """
        Round a trade submitted now takes effect for.

        The next round whose window has not started; once the
        schedule is exhausted, the last round; 0 for an empty schedule.
        """
        for window in self._windows:
            if window.start > now:
                return window.round
        if self._windows:
            return self._windows[-1].round
        return 0

    def window_for(self, round_number: int) -> Optional[LockoutWindow]:
        for window in self._windows:
            if window.round == round_number:
                return window
        return None

    def has_round_started(self, round_number: int, now: datetime) -> bool:
        """Check if the round's lockout window has begun (rounds off-schedule never start)."""
        window = self.window_for(round_number)
        return window is not None and now >= window.start

    def next_boundary(self, now: datetime) -> datetime:
        """
        Earliest window start or end strictly after now.

        Raises:
            NoUpcomingBoundaryError: If the schedule is exhausted
        """
        for window in self._windows:
            if window.start > now:
                return window.start
            if window.end > now:
                return window.end
        raise NoUpcomingBoundaryError("Lockout schedule exhausted", now=now)

    def time_until_next_boundary(self, now: datetime) -> timedelta:
        """
        Time remaining until lockout state next changes.

        Raises:
            NoUpcomingBoundaryError: If the schedule is exhausted
        """
        return self.next_boundary(now) - now
