#!/usr/bin/env python3
"""
Compare stored metrics snapshots with live recipient data.
Run: python scripts/audit_metrics.py [--account <uuid>] [--fix]

Without --account every account is audited. --fix recomputes drifted snapshots.
"""

import asyncio
import argparse
import json
import sys
import os
import uuid

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import asyncpg

from lastcall.config import settings
from lastcall.core.store import PostgresStore
from lastcall.services.metrics_service import audit_metrics, refresh_metrics


async def run(account_id, fix: bool) -> bool:
    pool = await asyncpg.create_pool(settings.database_url, min_size=1, max_size=2)
    store = PostgresStore(pool)
    consistent = True
    try:
        if account_id:
            accounts = [await store.get_account(account_id)]
            if accounts[0] is None:
                print(f"❌ Account {account_id} not found")
                return False
        else:
            accounts = await store.list_accounts(include_locked=True)

        for account in accounts:
            discrepancies = await audit_metrics(store, account.id)
            if not discrepancies:
                print(f"✅ {account.slug}: metrics consistent")
                continue

            consistent = False
            print(f"⚠️  {account.slug}: {len(discrepancies)} snapshot(s) drifted")
            for d in discrepancies:
                print(f"   - {d['name']}")
                print(f"     stored: {json.dumps(d['stored'], sort_keys=True)}")
                print(f"     actual: {json.dumps(d['actual'], sort_keys=True)}")

            if fix:
                await refresh_metrics(store, account.id)
                print(f"✅ {account.slug}: metrics refreshed")
    finally:
        await pool.close()
    return consistent or fix


def main():
    parser = argparse.ArgumentParser(description="Audit metrics snapshots")
    parser.add_argument("--account", type=uuid.UUID, help="Account id (default: all accounts)")
    parser.add_argument("--fix", action="store_true", help="Recompute drifted snapshots")

    args = parser.parse_args()
    success = asyncio.run(run(args.account, args.fix))
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
