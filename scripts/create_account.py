#!/usr/bin/env python3
"""
Create a venue account and print an API token for it.
Run: python scripts/create_account.py --name "Joe's Bar" --phone +15551234567

Accounts are created locked; pass --activate to unlock immediately.
"""

import asyncio
import argparse
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import asyncpg
from fastapi import HTTPException

from lastcall.config import settings
from lastcall.core.security import create_access_token, ROLE_ACCOUNT
from lastcall.core.store import PostgresStore
from lastcall.services.account_service import create_account, set_account_locked


async def run(args) -> bool:
    pool = await asyncpg.create_pool(settings.database_url, min_size=1, max_size=2)
    store = PostgresStore(pool)
    try:
        account = await create_account(
            store,
            name=args.name,
            phone_number=args.phone,
            messaging_profile_id=args.profile,
            email=args.email,
            coupons_enabled=args.coupons,
            include_membership_question=args.membership,
        )
        print(f"✅ Account created: {account.name} ({account.slug}) id={account.id}")

        if args.activate:
            await set_account_locked(store, account.id, False)
            print("✅ Account activated")
        else:
            print("ℹ️  Account is locked; activate it once reviewed")

        print(f"Token: {create_access_token(account.id, ROLE_ACCOUNT)}")
        return True
    except HTTPException as e:
        print(f"❌ {e.detail}")
        return False
    finally:
        await pool.close()


def main():
    parser = argparse.ArgumentParser(description="Create a venue account")
    parser.add_argument("--name", required=True, help="Venue name (slug is derived from it)")
    parser.add_argument("--phone", required=True, help="Sender phone number")
    parser.add_argument("--profile", help="Telnyx messaging profile id")
    parser.add_argument("--email", help="Contact email")
    parser.add_argument("--coupons", action="store_true", help="Enable promo codes over SMS")
    parser.add_argument("--membership", action="store_true", help="Ask the membership question on signup")
    parser.add_argument("--activate", action="store_true", help="Unlock the account right away")

    args = parser.parse_args()
    success = asyncio.run(run(args))
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
