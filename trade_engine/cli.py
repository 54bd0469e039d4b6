"""
Trade Engine - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line interface for league administrators and the
round-advance job.

- Validates and publishes league settings
- Prints a user's trade status
- Applies pending trades whose round has become current

============================================================
USAGE
============================================================
python app.py validate-settings league.yaml
python app.py publish-settings league.yaml
python app.py status user-123
python app.py apply-due user-123 user-456 --at 2026-04-02T08:00:00Z

============================================================
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime
from typing import List, Optional

from core.clock import SystemClock, from_iso8601
from core.exceptions import TradeCoreException

from .config import TradeEngineConfig
from .coordinator import TradeCoordinator
from .repository import SqlDocumentStore
from .schemas import TradeResultSchema, TradeStatusSchema
from .settings_loader import load_league_settings, publish_league_settings
from .store import InMemoryDocumentStore, PersistentStore


logger = logging.getLogger(__name__)


# ============================================================
# LOGGING
# ============================================================

def setup_logging(level: str = "INFO", log_format: str = "text") -> None:
    """
    Set up logging on the root logger.

    Args:
        level: Log level
        log_format: Output format (json or text)
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps({
                "timestamp": "%(asctime)s",
                "level": "%(levelname)s",
                "logger": "%(name)s",
                "message": "%(message)s",
            })
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="fantasy-trade-core",
        description="Fantasy league trade management core",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # --------------------------------------------------------
    # Global Options
    # --------------------------------------------------------
    parser.add_argument(
        "--env-file",
        type=str,
        metavar="PATH",
        help="Load environment variables from this .env file",
    )

    logging_group = parser.add_argument_group("Logging Options")

    logging_group.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Logging level (default: TRADE_LOG_LEVEL or INFO)",
    )

    logging_group.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        default="text",
        help="Logging format (default: text)",
    )

    # --------------------------------------------------------
    # Commands
    # --------------------------------------------------------
    commands = parser.add_subparsers(dest="command", required=True)

    validate = commands.add_parser("validate-settings", help="Validate a league settings YAML file")
    validate.add_argument("path", help="League settings YAML")

    publish = commands.add_parser("publish-settings", help="Validate and publish league settings")
    publish.add_argument("path", help="League settings YAML")

    status = commands.add_parser("status", help="Show a user's trade status")
    status.add_argument("user_id")
    status.add_argument("--at", metavar="ISO8601", help="Evaluate at this instant instead of now")

    apply_due = commands.add_parser("apply-due", help="Apply pending trades whose round is current")
    apply_due.add_argument("user_ids", nargs="+", metavar="USER_ID")
    apply_due.add_argument("--at", metavar="ISO8601", help="Evaluate at this instant instead of now")

    return parser


# ============================================================
# STORE
# ============================================================

async def build_store(config: TradeEngineConfig) -> PersistentStore:
    """Create the configured document store."""
    if config.store.backend == "sql":
        store = SqlDocumentStore.from_config(config.store)
        await store.create_tables()
        return store

    logger.warning("Using in-memory store; nothing will outlive this process")
    return InMemoryDocumentStore()


def _parse_at(value: Optional[str]) -> Optional[datetime]:
    return from_iso8601(value) if value else None


# ============================================================
# COMMANDS
# ============================================================

async def _publish(args: argparse.Namespace, config: TradeEngineConfig) -> int:
    settings = load_league_settings(args.path)
    store = await build_store(config)
    try:
        doc = await publish_league_settings(store, settings)
    finally:
        await store.close()
    print(f"Published {doc.key} (version {doc.version})")
    return 0


async def _status(args: argparse.Namespace, config: TradeEngineConfig) -> int:
    store = await build_store(config)
    coordinator = TradeCoordinator(store, SystemClock(), config)
    try:
        snapshot = await coordinator.get_trade_status(args.user_id, _parse_at(args.at))
    finally:
        await coordinator.close()
        await store.close()
    print(TradeStatusSchema.from_snapshot(snapshot).model_dump_json(indent=2))
    return 0


async def _apply_due(args: argparse.Namespace, config: TradeEngineConfig) -> int:
    store = await build_store(config)
    coordinator = TradeCoordinator(store, SystemClock(), config)
    at = _parse_at(args.at)
    try:
        for user_id in args.user_ids:
            results = await coordinator.apply_due_trades(user_id, at)
            logger.info(f"User {user_id}: {len(results)} due trades processed")
            for result in results:
                print(f"{user_id} {TradeResultSchema.from_result(result).model_dump_json()}")
    finally:
        await coordinator.close()
        await store.close()
    return 0


async def async_main(args: argparse.Namespace, config: TradeEngineConfig) -> int:
    """
    Async main entry point.

    Returns:
        Exit code
    """
    try:
        if args.command == "publish-settings":
            return await _publish(args, config)
        if args.command == "status":
            return await _status(args, config)
        if args.command == "apply-due":
            return await _apply_due(args, config)
    except TradeCoreException as e:
        logger.error(e.to_log_format())
        return 1

    logger.error(f"Unknown command: {args.command}")
    return 2


# ============================================================
# MAIN ENTRY POINT
# ============================================================

def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    config = TradeEngineConfig.from_env(args.env_file)
    setup_logging(args.log_level or config.log_level, args.log_format)

    if args.command == "validate-settings":
        try:
            settings = load_league_settings(args.path)
        except TradeCoreException as e:
            print(f"Error: {e.to_log_format()}", file=sys.stderr)
            return 1
        print(f"OK: league {settings.league_id}, {len(settings.round_lockout_schedule)} rounds")
        return 0

    return asyncio.run(async_main(args, config))
