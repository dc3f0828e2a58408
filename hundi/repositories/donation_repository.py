"""
Donation Repository - donation records keyed by donor and cycle key.
"""

import uuid
import logging
from typing import Optional, List

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hundi.errors import DuplicateCycleRecord, RepositoryFailure
from hundi.models.donation import Donation

logger = logging.getLogger(__name__)


class DonationRepository:
    """Donation storage. (donor_id, cycle_key) is unique."""
    
    def __init__(self, db: AsyncSession):
        self.db = db
    
    async def find_by_id(self, donation_id: uuid.UUID) -> Optional[Donation]:
        """Get donation by ID."""
        try:
            result = await self.db.execute(
                select(Donation).where(Donation.id == donation_id)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise RepositoryFailure("donation lookup", e) from e
    
    async def find_by_donor_and_cycle(
        self,
        donor_id: uuid.UUID,
        cycle_key: str,
    ) -> Optional[Donation]:
        """Get the donation record of a donor for a cycle, if any."""
        try:
            result = await self.db.execute(
                select(Donation)
                .where(Donation.donor_id == donor_id)
                .where(Donation.cycle_key == cycle_key)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise RepositoryFailure("donation lookup", e) from e
    
    async def list_for_cycle(self, cycle_key: str) -> List[Donation]:
        """All donation records of a cycle."""
        try:
            result = await self.db.execute(
                select(Donation).where(Donation.cycle_key == cycle_key)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise RepositoryFailure("cycle donation scan", e) from e
    
    async def create(self, donation: Donation) -> Donation:
        """Insert a donation record; a unique-key clash is a duplicate."""
        self.db.add(donation)
        return await self._flush(donation)
    
    async def update(self, donation: Donation) -> Donation:
        """Flush changes of an existing donation record."""
        return await self._flush(donation)
    
    async def delete(self, donation: Donation) -> None:
        """Remove a donation record."""
        try:
            await self.db.delete(donation)
            await self.db.flush()
        except SQLAlchemyError as e:
            raise RepositoryFailure("donation delete", e) from e
    
    async def _flush(self, donation: Donation) -> Donation:
        try:
            await self.db.flush()
        except IntegrityError as e:
            message = str(e.orig)
            if "uq_donation_donor_cycle" in message or "donations.cycle_key" in message:
                raise DuplicateCycleRecord(donation.donor_id, donation.cycle_key) from e
            raise RepositoryFailure("donation write", e) from e
        except SQLAlchemyError as e:
            raise RepositoryFailure("donation write", e) from e
        return donation
