"""
Donor Endpoints.
Registration and collection outcomes for a single donor.
"""

import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from hundi.api.deps import get_admin_user
from hundi.api.serializers import donation_payload, donor_payload
from hundi.database import get_db
from hundi.lifecycle.states import DonorStatus
from hundi.services.donor_service import DonorService
from hundi.services.lifecycle_service import LifecycleService

router = APIRouter()
logger = logging.getLogger(__name__)


class CreateDonorRequest(BaseModel):
    """Request body for registering a donor."""
    hundi_no: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=2, max_length=255)
    mobile_number: str = Field(pattern=r"^[0-9]{10}$")
    address: str = Field(min_length=1)
    google_map_link: Optional[str] = None
    group_id: Optional[uuid.UUID] = None
    collection_date: Optional[datetime] = None


class RecordCollectionRequest(BaseModel):
    """Request body for recording a collection."""
    amount: Optional[Decimal] = None
    collection_date: datetime
    notes: Optional[str] = None


class RecordSkipRequest(BaseModel):
    """Request body for skipping the current cycle."""
    notes: Optional[str] = None


class UpdateStatusRequest(BaseModel):
    """Request body for a manual status override."""
    status: DonorStatus
    notes: Optional[str] = None


@router.post("/donors", status_code=201)
async def create_donor(
    request: CreateDonorRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_admin_user),
):
    """Register a donor. Without a collection date the first one is due in a month."""
    service = DonorService(db)
    donor = await service.create_donor(
        hundi_no=request.hundi_no,
        name=request.name,
        mobile_number=request.mobile_number,
        address=request.address,
        created_by=actor_id,
        group_id=request.group_id,
        collection_date=request.collection_date,
        google_map_link=request.google_map_link,
    )
    return {"status": "success", "donor": donor_payload(donor)}


@router.get("/donors/{donor_id}/status")
async def get_donor_status(
    donor_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    _: str = Depends(get_admin_user),
):
    """Current status, next collection date and audit trail."""
    donor = await DonorService(db).get_donor(donor_id)
    return {"status": "success", "donor": donor_payload(donor, with_history=True)}


@router.post("/donors/{donor_id}/collections", status_code=201)
async def record_collection(
    donor_id: uuid.UUID,
    request: RecordCollectionRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_admin_user),
):
    """Record the cycle's collection for a donor."""
    result = await LifecycleService(db).record_collection(
        donor_id=donor_id,
        amount=request.amount,
        collection_timestamp=request.collection_date,
        notes=request.notes,
        actor_id=actor_id,
    )
    return {
        "status": "success",
        "donation": donation_payload(result.donation),
        "donor": donor_payload(result.donor),
    }


@router.post("/donors/{donor_id}/skips", status_code=201)
async def record_skip(
    donor_id: uuid.UUID,
    request: RecordSkipRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_admin_user),
):
    """Skip the current cycle for a donor. Notes are mandatory."""
    result = await LifecycleService(db).record_skip(
        donor_id=donor_id,
        notes=request.notes,
        actor_id=actor_id,
    )
    return {
        "status": "success",
        "donation": donation_payload(result.donation),
        "donor": donor_payload(result.donor),
    }


@router.patch("/donors/{donor_id}/status")
async def update_donor_status(
    donor_id: uuid.UUID,
    request: UpdateStatusRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_admin_user),
):
    """Administrative status correction."""
    donor = await LifecycleService(db).update_status(
        donor_id=donor_id,
        new_status=request.status,
        notes=request.notes,
        actor_id=actor_id,
    )
    return {"status": "success", "donor": donor_payload(donor, with_history=True)}


@router.post("/donors/{donor_id}/deactivate")
async def deactivate_donor(
    donor_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    _: str = Depends(get_admin_user),
):
    """Exclude a donor from reconciliation and new collections."""
    donor = await DonorService(db).deactivate_donor(donor_id)
    return {"status": "success", "donor": donor_payload(donor)}
