"""
Trade Engine - League Settings Loader.

============================================================
PURPOSE
============================================================
Loads league settings authored as YAML, validates them, and
publishes them to the document store.

Validation happens here, at load time, so a bad schedule is
rejected before any trade is evaluated against it.

EXAMPLE:

    league_id: main-league
    trades_per_season: 30
    pre_season_unlimited: true
    season_phase_boundaries:
      season_start: 2026-02-01T00:00:00Z
      pre_season_end: 2026-03-05T00:00:00Z
      season_end: 2026-09-30T00:00:00Z
    round_lockout_schedule:
      - {round: 1, start: 2026-03-05T08:30:00Z, end: 2026-03-08T12:00:00Z}

============================================================
"""

import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Union

import yaml

from core.clock import to_iso8601
from core.exceptions import ConfigurationError

from .lockout import LockoutScheduler
from .store import PersistentStore, StoredDocument, settings_key
from .types import LeagueSettings


logger = logging.getLogger(__name__)


def _normalize(value: Any) -> Any:
    """Turn YAML-native timestamps back into ISO strings."""
    if isinstance(value, datetime):
        return to_iso8601(value)
    if isinstance(value, date):
        return to_iso8601(datetime(value.year, value.month, value.day))
    if isinstance(value, dict):
        return {k: _normalize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_normalize(v) for v in value]
    return value


def parse_league_settings(data: Dict[str, Any]) -> LeagueSettings:
    """
    Build and validate LeagueSettings from a plain mapping.

    Raises:
        ConfigurationError: Missing fields, bad values or season phases out of order
        InvalidScheduleError: Overlapping or inverted lockout windows
    """
    if not isinstance(data, dict):
        raise ConfigurationError("League settings must be a mapping")

    try:
        settings = LeagueSettings.from_dict(_normalize(data))
    except KeyError as e:
        raise ConfigurationError(f"League settings missing field {e}", cause=e) from e
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"League settings invalid: {e}", cause=e) from e

    phases = settings.season_phase_boundaries
    if not (phases.season_start <= phases.pre_season_end <= phases.season_end):
        raise ConfigurationError(
            "Season phases out of order",
            context={
                "season_start": phases.season_start.isoformat(),
                "pre_season_end": phases.pre_season_end.isoformat(),
                "season_end": phases.season_end.isoformat(),
            },
        )

    LockoutScheduler.from_settings(settings)

    logger.info(
        f"League settings {settings.league_id} valid: "
        f"{settings.trades_per_season} trades/season, "
        f"{len(settings.round_lockout_schedule)} rounds"
    )
    return settings


def load_league_settings(path: Union[str, Path]) -> LeagueSettings:
    """Load and validate league settings from a YAML file."""
    path = Path(path)
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"Cannot read {path}: {e}", cause=e) from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}", cause=e) from e

    return parse_league_settings(data)


async def publish_league_settings(
    store: PersistentStore,
    settings: LeagueSettings,
) -> StoredDocument:
    """Validate and write league settings to the store."""
    LockoutScheduler.from_settings(settings)
    doc = await store.set(settings_key(settings.league_id), settings.to_dict())
    logger.info(f"Published settings for league {settings.league_id} (version {doc.version})")
    return doc


__all__ = [
    "parse_league_settings",
    "load_league_settings",
    "publish_league_settings",
]
