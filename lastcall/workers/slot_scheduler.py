"""
Slot Scheduler Worker

Fires scheduled blasts at the three daily time slots (morning, afternoon,
evening in the scheduler timezone). Runs inside the API process by default;
run this module directly to host it in a dedicated process instead and set
SCHEDULER_ENABLED=false on the API.
"""

import asyncio
import logging

from ..core.database import get_db_pool, close_pool
from ..core.logger import setup_logging
from ..core.redis import create_redis_client, close_redis_client
from ..core.store import PostgresStore
from ..services.scheduler_service import run_slot_scheduler
from ..services.telnyx_service import get_telnyx_service, close_telnyx_service

logger = logging.getLogger(__name__)


async def run_scheduler_worker():
    """Wire real dependencies into the slot scheduler loop"""
    pool = await get_db_pool()
    redis_client = await create_redis_client()
    store = PostgresStore(pool)
    await run_slot_scheduler(store, get_telnyx_service(), redis_client)


async def main():
    """Entry point for running worker standalone"""
    try:
        await run_scheduler_worker()
    except KeyboardInterrupt:
        logger.info("Slot scheduler worker stopped")
    finally:
        await close_telnyx_service()
        await close_redis_client()
        await close_pool()


if __name__ == "__main__":
    setup_logging()
    asyncio.run(main())
