#!/usr/bin/env python3
"""
List an account's recipients with their opt-in state.
Run: python scripts/list_recipients.py --account <uuid> [--limit 100]
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
from lastcall.services.targeting import calculate_age, normalize_gender


async def run(account_id: uuid.UUID, limit: int) -> bool:
    pool = await asyncpg.create_pool(settings.database_url, min_size=1, max_size=2)
    store = PostgresStore(pool)
    try:
        account = await store.get_account(account_id)
        if account is None:
            print(f"❌ Account {account_id} not found")
            return False

        recipients = await store.list_recipients(account_id, limit=limit)
        print(f"{account.name} ({account.slug}): {len(recipients)} recipients")
        print(f"{'phone':<16} {'name':<24} {'gender':<18} {'age':>4}  consent subscribe verified")
        for r in recipients:
            age = calculate_age(r.birthdate)
            print(
                f"{r.phone_number or '-':<16} {(r.name or '-')[:24]:<24} "
                f"{normalize_gender(r.gender):<18} {age if age is not None else '-':>4}  "
                f"{'yes' if r.consent else 'no':<7} {'yes' if r.subscribe else 'no':<9} "
                f"{'yes' if r.birthdate_confirmed else 'no'}"
            )

        eligible = sum(1 for r in recipients if r.is_eligible)
        print(f"\nEligible for blasts: {eligible}/{len(recipients)}")
        return True
    finally:
        await pool.close()


def main():
    parser = argparse.ArgumentParser(description="List recipients of an account")
    parser.add_argument("--account", type=uuid.UUID, required=True, help="Account id")
    parser.add_argument("--limit", type=int, default=500, help="Maximum rows to show")

    args = parser.parse_args()
    success = asyncio.run(run(args.account, args.limit))
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
