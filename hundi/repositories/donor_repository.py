"""
Donor Repository - donor lookups and writes for the lifecycle engine.
"""

import uuid
import logging
from datetime import datetime
from typing import Optional, List

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hundi.errors import RepositoryFailure
from hundi.lifecycle.states import DonorStatus
from hundi.models.donor import Donor

logger = logging.getLogger(__name__)


class DonorRepository:
    """Donor storage keyed by donor id."""
    
    def __init__(self, db: AsyncSession):
        self.db = db
    
    async def find_by_id(self, donor_id: uuid.UUID) -> Optional[Donor]:
        """Get donor by ID."""
        try:
            result = await self.db.execute(
                select(Donor).where(Donor.id == donor_id)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise RepositoryFailure("donor lookup", e) from e
    
    async def find_by_id_for_update(self, donor_id: uuid.UUID) -> Optional[Donor]:
        """Get donor by ID, locking the row for the rest of the transaction."""
        try:
            result = await self.db.execute(
                select(Donor)
                .where(Donor.id == donor_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise RepositoryFailure("donor lock", e) from e
    
    async def find_by_hundi_no(self, hundi_no: str) -> Optional[Donor]:
        """Get donor by hundi number."""
        try:
            result = await self.db.execute(
                select(Donor).where(Donor.hundi_no == hundi_no)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise RepositoryFailure("donor lookup", e) from e
    
    async def find_active_overdue(
        self,
        before: datetime,
        after_id: Optional[uuid.UUID] = None,
        limit: int = 200,
    ) -> List[Donor]:
        """
        Active, non-pending donors whose collection date is before `before`.
        Keyset-paginated on id.
        """
        stmt = (
            select(Donor)
            .where(Donor.is_active.is_(True))
            .where(Donor.status != DonorStatus.PENDING.value)
            .where(Donor.collection_date < before)
            .order_by(Donor.id)
            .limit(limit)
        )
        if after_id is not None:
            stmt = stmt.where(Donor.id > after_id)
        
        try:
            result = await self.db.execute(stmt)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise RepositoryFailure("overdue donor scan", e) from e
    
    async def find_active(
        self,
        after_id: Optional[uuid.UUID] = None,
        limit: int = 200,
    ) -> List[Donor]:
        """All active donors, keyset-paginated on id."""
        stmt = (
            select(Donor)
            .where(Donor.is_active.is_(True))
            .order_by(Donor.id)
            .limit(limit)
        )
        if after_id is not None:
            stmt = stmt.where(Donor.id > after_id)
        
        try:
            result = await self.db.execute(stmt)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise RepositoryFailure("active donor scan", e) from e
    
    async def count_active(self) -> int:
        """Number of active donors."""
        try:
            result = await self.db.execute(
                select(func.count(Donor.id)).where(Donor.is_active.is_(True))
            )
            return result.scalar() or 0
        except SQLAlchemyError as e:
            raise RepositoryFailure("active donor count", e) from e
    
    async def add(self, donor: Donor) -> Donor:
        """Persist a new donor."""
        self.db.add(donor)
        return await self.update(donor)
    
    async def update(self, donor: Donor) -> Donor:
        """Flush pending changes of a donor (and its new history rows)."""
        try:
            await self.db.flush()
        except SQLAlchemyError as e:
            raise RepositoryFailure("donor write", e) from e
        return donor
