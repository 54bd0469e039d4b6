#!/usr/bin/env python3
"""
Fantasy Trade Core - Main Application Entry Point.

============================================================
SINGLE ENTRYPOINT
============================================================
This is the ONE executable entry point for admin tasks and
the round-advance job.

============================================================
USAGE
============================================================
Validate a league settings file:
    python app.py validate-settings league.yaml

Publish it (TRADE_STORE_BACKEND=sql, TRADE_DATABASE_URL set):
    python app.py publish-settings league.yaml

Round-advance job (cron or scheduler):
    python app.py apply-due user-1 user-2

Environment-based configuration:
    TRADE_LEAGUE_ID=main-league TRADE_LOG_LEVEL=DEBUG python app.py status user-1

============================================================
"""

import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.absolute()
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from trade_engine.cli import main


# ============================================================
# ENTRY POINT
# ============================================================

if __name__ == "__main__":
    sys.exit(main())
