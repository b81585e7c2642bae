#!/usr/bin/env python3
"""
Bulk subscribe or unsubscribe every recipient of an account.
Run: python scripts/set_subscriptions.py --account <uuid> --subscribe true [--dry-run]

Metrics are refreshed afterwards so snapshots match the new state.
"""

import asyncio
import argparse
import sys
import os
import uuid

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import asyncpg

from lastcall.config import settings
from lastcall.core.store import PostgresStore
from lastcall.services.metrics_service import refresh_metrics


def _parse_bool(value: str) -> bool:
    if value.lower() in ("true", "yes", "1"):
        return True
    if value.lower() in ("false", "no", "0"):
        return False
    raise argparse.ArgumentTypeError("expected true or false")


async def run(account_id: uuid.UUID, subscribe: bool, dry_run: bool) -> bool:
    pool = await asyncpg.create_pool(settings.database_url, min_size=1, max_size=2)
    store = PostgresStore(pool)
    try:
        account = await store.get_account(account_id)
        if account is None:
            print(f"❌ Account {account_id} not found")
            return False

        recipients = await store.list_recipients(account_id)
        to_change = [r for r in recipients if r.subscribe != subscribe]
        print(f"{account.slug}: {len(recipients)} recipients, {len(to_change)} would change to subscribe={subscribe}")

        if dry_run:
            print("ℹ️  Dry run, nothing written")
            return True

        changed = await store.set_all_subscribe(account_id, subscribe)
        await refresh_metrics(store, account_id)
        print(f"✅ Updated {changed} recipients, metrics refreshed")
        return True
    finally:
        await pool.close()


def main():
    parser = argparse.ArgumentParser(description="Bulk set recipient subscriptions")
    parser.add_argument("--account", type=uuid.UUID, required=True, help="Account id")
    parser.add_argument("--subscribe", type=_parse_bool, required=True, help="true or false")
    parser.add_argument("--dry-run", action="store_true", help="Only report what would change")

    args = parser.parse_args()
    success = asyncio.run(run(args.account, args.subscribe, args.dry_run))
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
