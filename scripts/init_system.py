"""
One-time system setup: create tables and the default donor groups.

Usage: python scripts/init_system.py [--actor ACTOR_ID]
"""
import argparse
import asyncio
import logging
import sys
import os
sys.path.append(os.getcwd())

from hundi.database import get_db_context, init_db, close_db
from hundi.logging_config import configure_logging
from hundi.services.group_service import GroupService

configure_logging()
logger = logging.getLogger(__name__)


async def init_system(actor_id: str):
    await init_db()
    
    async with get_db_context() as db:
        created = await GroupService(db).ensure_default_groups(actor_id)
        logger.info(f"Default groups created: {len(created)}")
    
    await close_db()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Initialize hundi database")
    parser.add_argument("--actor", default="system", help="User id recorded as creator")
    args = parser.parse_args()
    asyncio.run(init_system(args.actor))
