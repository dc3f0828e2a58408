"""
Donation Endpoints.
Record corrections and the monthly status report.
"""

import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from hundi.api.deps import get_admin_user
from hundi.api.serializers import donation_payload, donor_payload
from hundi.database import get_db
from hundi.services.lifecycle_service import LifecycleService
from hundi.services.report_service import ReportService

router = APIRouter()
logger = logging.getLogger(__name__)


class UpdateDonationRequest(BaseModel):
    """Request body for editing a donation record."""
    amount: Optional[Decimal] = None
    notes: Optional[str] = None
    collection_date: Optional[datetime] = None


@router.get("/donations/monthly-status")
async def get_monthly_status(
    year: int = Query(ge=2000, le=9999),
    month: int = Query(ge=1, le=12),
    db: AsyncSession = Depends(get_db),
    _: str = Depends(get_admin_user),
):
    """Outcome of every active donor for one cycle."""
    report = await ReportService(db).monthly_status(year, month)
    stats = report["stats"]
    
    return {
        "status": "success",
        "year": report["year"],
        "month": report["month"],
        "cycle_key": report["cycle_key"],
        "starts_at": report["starts_at"].isoformat(),
        "ends_at": report["ends_at"].isoformat(),
        "stats": {**stats, "total_amount": float(stats["total_amount"])},
        "status_report": [
            {
                **row,
                "donor_id": str(row["donor_id"]),
                "donation_id": str(row["donation_id"]) if row["donation_id"] else None,
                "amount": float(row["amount"]),
            }
            for row in report["status_report"]
        ],
    }


@router.patch("/donations/{donation_id}")
async def update_donation(
    donation_id: uuid.UUID,
    request: UpdateDonationRequest,
    db: AsyncSession = Depends(get_db),
    _: str = Depends(get_admin_user),
):
    """Edit amount, notes or collection moment of a record."""
    donation = await LifecycleService(db).update_donation(
        donation_id=donation_id,
        amount=request.amount,
        notes=request.notes,
        collection_timestamp=request.collection_date,
    )
    return {"status": "success", "donation": donation_payload(donation)}


@router.delete("/donations/{donation_id}")
async def delete_donation(
    donation_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_admin_user),
):
    """Administrative removal. Re-opens the donor if it was this cycle's record."""
    donor = await LifecycleService(db).delete_donation(donation_id, actor_id)
    return {
        "status": "success",
        "reopened_donor": donor_payload(donor) if donor else None,
    }
