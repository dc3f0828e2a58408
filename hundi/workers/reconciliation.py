"""
Reconciliation Workers.
Thin Celery adapters around ReconciliationService.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from hundi.workers.celery_app import celery_app
from hundi.database import close_db, get_db_context
from hundi.services.reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)


def _parse_now(now: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(now) if now else None


@celery_app.task(bind=True, max_retries=3)
def reconcile_overdue_donors(self, now: Optional[str] = None):
    """
    Celery task for the daily overdue sweep.

    Args:
        now: Optional ISO timestamp to reconcile against (defaults to now)
    """
    try:
        result = asyncio.run(_reconcile(_parse_now(now)))
        logger.info(f"Overdue reconciliation finished: {result}")
        return result
    except Exception as e:
        logger.error(f"Overdue reconciliation failed: {e}", exc_info=True)
        raise self.retry(exc=e, countdown=60 * (2 ** self.request.retries))


@celery_app.task(bind=True, max_retries=3)
def initialize_cycle_records(self, now: Optional[str] = None):
    """
    Celery task creating the cycle's placeholder records.

    Args:
        now: Optional ISO timestamp inside the target cycle (defaults to now)
    """
    try:
        result = asyncio.run(_initialize(_parse_now(now)))
        logger.info(f"Cycle initialization finished: {result}")
        return result
    except Exception as e:
        logger.error(f"Cycle initialization failed: {e}", exc_info=True)
        raise self.retry(exc=e, countdown=60 * (2 ** self.request.retries))


async def _reconcile(now: Optional[datetime]) -> dict:
    """Async implementation of the overdue sweep."""
    try:
        async with get_db_context() as db:
            service = ReconciliationService(db)
            result = await service.reconcile_overdue_donors(now)
            return result.as_dict()
    finally:
        # Pooled connections are bound to this event loop
        await close_db()


async def _initialize(now: Optional[datetime]) -> dict:
    """Async implementation of cycle initialization."""
    try:
        async with get_db_context() as db:
            service = ReconciliationService(db)
            result = await service.initialize_cycle_records(now)
            return result.as_dict()
    finally:
        await close_db()
