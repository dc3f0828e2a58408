"""
Run a reconciliation sweep by hand, outside the Celery schedule.

Usage:
    python scripts/run_reconciliation.py reconcile [--now 2024-03-05T00:00:00+05:30]
    python scripts/run_reconciliation.py initialize [--now ...]
"""
import argparse
import asyncio
import json
import logging
import sys
import os
sys.path.append(os.getcwd())
from datetime import datetime

from hundi.database import get_db_context, close_db
from hundi.logging_config import configure_logging
from hundi.services.reconciliation_service import ReconciliationService

configure_logging()
logger = logging.getLogger(__name__)


async def run(job: str, now):
    async with get_db_context() as db:
        service = ReconciliationService(db)
        if job == "reconcile":
            result = await service.reconcile_overdue_donors(now)
        else:
            result = await service.initialize_cycle_records(now)
    
    await close_db()
    print(json.dumps(result.as_dict(), indent=2))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run a hundi reconciliation job")
    parser.add_argument("job", choices=["reconcile", "initialize"])
    parser.add_argument("--now", type=datetime.fromisoformat, default=None)
    args = parser.parse_args()
    asyncio.run(run(args.job, args.now))
