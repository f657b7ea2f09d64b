"""
Run one pass of the scheduled Smartsheet sync.

Every enabled sync config whose interval has elapsed is fetched and upserted.
Meant to be invoked from cron or a job scheduler.

Usage:
    python scripts/run_smartsheet_sync.py [--all]
"""
import sys
import os
import argparse
import asyncio

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

from fleetcommand.db import SessionLocal
from fleetcommand.logging import setup_logging
from fleetcommand.services.smartsheet_client import SmartsheetClient, SmartsheetError
from fleetcommand.services.smartsheet_sync import list_configs, run_scheduled_sync, sync_sheets


def main():
    parser = argparse.ArgumentParser(description="Sync configured Smartsheet sheets")
    parser.add_argument("--all", action="store_true", help="Sync every enabled config, ignoring intervals")
    args = parser.parse_args()

    setup_logging()
    try:
        client = SmartsheetClient()
    except SmartsheetError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    db = SessionLocal()
    try:
        if args.all:
            sheet_ids = [c.sheet_id for c in list_configs(db) if c.sync_enabled]
            results = asyncio.run(sync_sheets(db, client, sheet_ids)) if sheet_ids else []
        else:
            results = asyncio.run(run_scheduled_sync(db, client))
    finally:
        db.close()

    failed = [r for r in results if r["status"] == "error"]
    for r in results:
        detail = f"{r['rows_synced']} rows" if r["status"] == "success" else r["error"]
        print(f"  {r['sheet_id']}: {r['status']} ({detail})")
    print(f"Synced {len(results) - len(failed)} of {len(results)} sheets")
    if failed:
        sys.exit(2)


if __name__ == "__main__":
    main()
