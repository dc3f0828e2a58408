"""
Job Endpoints.
Manual triggers for the reconciliation sweeps.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from hundi.api.deps import get_admin_user
from hundi.database import get_db
from hundi.services.reconciliation_service import ReconciliationService

router = APIRouter()
logger = logging.getLogger(__name__)


class JobRequest(BaseModel):
    """Optional reference moment for a sweep (defaults to now)."""
    now: Optional[datetime] = None


@router.post("/jobs/reconcile")
async def trigger_reconciliation(
    request: JobRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_admin_user),
):
    """Run the overdue sweep synchronously."""
    logger.info(f"Manual reconciliation triggered by {actor_id}")
    result = await ReconciliationService(db).reconcile_overdue_donors(request.now)
    return {"status": "success", **result.as_dict()}


@router.post("/jobs/initialize-cycle")
async def trigger_cycle_initialization(
    request: JobRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_admin_user),
):
    """Create placeholder records for the cycle containing `now`."""
    logger.info(f"Manual cycle initialization triggered by {actor_id}")
    result = await ReconciliationService(db).initialize_cycle_records(request.now)
    return {"status": "success", **result.as_dict()}
