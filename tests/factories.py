"""
Shared builders for trade engine tests.

Season timeline used throughout:

    2026-02-01  season start (pre-season)
    2026-03-01  pre-season end
    2026-03-05  round 1 lockout opens, 3 days long, one round per week
    2026-10-01  season end
"""

import textwrap
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from core.exceptions import WriteConflictError
from trade_engine.store import (
    InMemoryDocumentStore,
    roster_key,
    settings_key,
)
from trade_engine.types import (
    LeagueSettings,
    LockoutWindow,
    PositionSlot,
    Roster,
    SeasonPhaseBoundaries,
)


UTC = timezone.utc

SEASON_START = datetime(2026, 2, 1, tzinfo=UTC)
PRE_SEASON_END = datetime(2026, 3, 1, tzinfo=UTC)
SEASON_END = datetime(2026, 10, 1, tzinfo=UTC)
ROUND_1_START = datetime(2026, 3, 5, 8, 30, tzinfo=UTC)
LOCKOUT_LENGTH = timedelta(days=3)

LEAGUE_ID = "test-league"
USER_ID = "user-1"


SETTINGS_YAML = textwrap.dedent("""
    league_id: main-league
    trades_per_season: 30
    pre_season_unlimited: true
    season_phase_boundaries:
      season_start: 2026-02-01T00:00:00Z
      pre_season_end: 2026-03-05T00:00:00Z
      season_end: 2026-09-30T00:00:00Z
    round_lockout_schedule:
      - {round: 1, start: 2026-03-05T08:30:00Z, end: 2026-03-08T12:00:00Z}
      - {round: 2, start: 2026-03-12T08:30:00Z, end: 2026-03-15T12:00:00Z}
""")


def round_window(round_number: int) -> LockoutWindow:
    start = ROUND_1_START + timedelta(weeks=round_number - 1)
    return LockoutWindow(round=round_number, start=start, end=start + LOCKOUT_LENGTH)


def open_time(after_round: int) -> datetime:
    """An instant with trading open: a day after the given round's lockout ends."""
    if after_round == 0:
        return PRE_SEASON_END + timedelta(days=1)
    return round_window(after_round).end + timedelta(days=1)


def make_settings(
    trades_per_season: int = 2,
    pre_season_unlimited: bool = False,
    rounds: int = 5,
    league_id: str = LEAGUE_ID,
) -> LeagueSettings:
    return LeagueSettings(
        league_id=league_id,
        trades_per_season=trades_per_season,
        pre_season_unlimited=pre_season_unlimited,
        round_lockout_schedule=tuple(round_window(r) for r in range(1, rounds + 1)),
        season_phase_boundaries=SeasonPhaseBoundaries(
            season_start=SEASON_START,
            pre_season_end=PRE_SEASON_END,
            season_end=SEASON_END,
        ),
    )


def make_roster(user_id: str = USER_ID) -> Roster:
    """Full 18-player roster: d1-d6, m1-m5, r1, f1-f6."""
    players: Dict[str, PositionSlot] = {}
    players.update({f"d{i}": PositionSlot.DEF for i in range(1, 7)})
    players.update({f"m{i}": PositionSlot.MID for i in range(1, 6)})
    players["r1"] = PositionSlot.RUC
    players.update({f"f{i}": PositionSlot.FWD for i in range(1, 7)})
    return Roster(user_id=user_id, players=players)


async def seed(
    store: InMemoryDocumentStore,
    settings: LeagueSettings,
    roster: Optional[Roster] = None,
) -> None:
    await store.set(settings_key(settings.league_id), settings.to_dict())
    if roster is not None:
        await store.set(roster_key(roster.user_id), roster.to_dict())


class ConflictingStore(InMemoryDocumentStore):
    """In-memory store whose first `conflicts` commits report a write conflict."""

    def __init__(self, conflicts: int):
        super().__init__()
        self.remaining_conflicts = conflicts
        self.commit_attempts = 0

    async def commit(self, writes, expected_versions):
        self.commit_attempts += 1
        if self.remaining_conflicts > 0:
            self.remaining_conflicts -= 1
            raise WriteConflictError("Simulated concurrent writer", key="user/user-1/tradeState")
        return await super().commit(writes, expected_versions)
