"""
Donor Service - donor registration and deactivation.
"""

import uuid
import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from hundi.config import settings
from hundi.database import utc_now
from hundi.errors import (
    DefaultGroupMissing,
    DonorNotFound,
    DuplicateHundiNumber,
    GroupNotFound,
)
from hundi.lifecycle.cycles import add_months, localize
from hundi.lifecycle.states import DonorStatus
from hundi.models.donor import Donor
from hundi.repositories.donor_repository import DonorRepository
from hundi.services.group_service import GroupService

logger = logging.getLogger(__name__)


class DonorService:
    """Service for donor registration."""
    
    def __init__(
        self,
        db: AsyncSession,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.clock = clock
        self.donors = DonorRepository(db)
        self.groups = GroupService(db)
    
    async def create_donor(
        self,
        hundi_no: str,
        name: str,
        mobile_number: str,
        address: str,
        created_by: str,
        group_id: Optional[uuid.UUID] = None,
        collection_date: Optional[datetime] = None,
        google_map_link: Optional[str] = None,
    ) -> Donor:
        """
        Register a donor as pending.

        Without an explicit collection date the first collection is due one
        calendar month after registration.
        """
        hundi_no = hundi_no.strip()
        if await self.donors.find_by_hundi_no(hundi_no):
            raise DuplicateHundiNumber(hundi_no)
        
        if group_id is None:
            group = await self.groups.get_default_group()
            if group is None:
                raise DefaultGroupMissing(settings.default_group_names[0])
            group_id = group.id
        elif await self.groups.get_group_by_id(group_id) is None:
            raise GroupNotFound(group_id)
        
        now = self.clock()
        first_collection = localize(collection_date) if collection_date else add_months(now, 1)
        
        donor = Donor(
            hundi_no=hundi_no,
            name=name.strip(),
            mobile_number=mobile_number.strip(),
            address=address.strip(),
            google_map_link=google_map_link,
            group_id=group_id,
            status=DonorStatus.PENDING.value,
            collection_date=first_collection,
            is_active=True,
            created_by=created_by,
            history=[],
        )
        donor.append_history(DonorStatus.PENDING, now, "Donor registered")
        await self.donors.add(donor)
        
        logger.info(f"Created donor {hundi_no}, first collection {first_collection.isoformat()}")
        return donor
    
    async def deactivate_donor(self, donor_id: uuid.UUID) -> Donor:
        """Exclude a donor from reconciliation and new collections."""
        donor = await self.donors.find_by_id_for_update(donor_id)
        if donor is None:
            raise DonorNotFound(donor_id)
        
        donor.is_active = False
        await self.donors.update(donor)
        
        logger.info(f"Donor {donor.hundi_no} deactivated")
        return donor
    
    async def get_donor(self, donor_id: uuid.UUID) -> Donor:
        """Get donor by ID or raise DonorNotFound."""
        donor = await self.donors.find_by_id(donor_id)
        if donor is None:
            raise DonorNotFound(donor_id)
        return donor
