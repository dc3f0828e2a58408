"""
Reconciliation Service - time-driven sweeps over the active roster.

reconcile_overdue_donors() re-opens donors who let their collection date pass
without a recorded outcome for the current cycle. initialize_cycle_records()
materializes a placeholder record for every active donor so a cycle's roster
can be enumerated from the donation table.

Both sweeps page through donors in keyset batches, isolate each donor in its
own savepoint and commit after every batch. They are idempotent, so a killed
run can simply be started again.
"""

import uuid
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from hundi.config import settings
from hundi.database import utc_now
from hundi.errors import DuplicateCycleRecord
from hundi.lifecycle.cycles import cycle_key, localize
from hundi.lifecycle.states import DonationOutcome, DonorStatus, validate_transition
from hundi.models.donation import Donation
from hundi.models.donor import Donor
from hundi.repositories.donation_repository import DonationRepository
from hundi.repositories.donor_repository import DonorRepository

logger = logging.getLogger(__name__)

MISSED_COLLECTION_NOTE = "Collection date missed and no record for current cycle"
PLACEHOLDER_NOTE = "Awaiting collection"


@dataclass
class DonorFailure:
    """A donor the sweep could not process."""
    donor_id: uuid.UUID
    code: str
    message: str
    
    def as_dict(self) -> Dict[str, str]:
        return {
            "donor_id": str(self.donor_id),
            "code": self.code,
            "message": self.message,
        }


@dataclass
class ReconciliationResult:
    """Outcome of reconcile_overdue_donors()."""
    cycle_key: str
    # Size of the active roster when the sweep started
    active_donors: int = 0
    updated_count: int = 0
    total_checked: int = 0
    failures: List[DonorFailure] = field(default_factory=list)
    
    @property
    def error_count(self) -> int:
        return len(self.failures)
    
    def as_dict(self) -> Dict[str, Any]:
        return {
            "cycle_key": self.cycle_key,
            "active_donors": self.active_donors,
            "updated_count": self.updated_count,
            "total_checked": self.total_checked,
            "error_count": self.error_count,
            "failures": [f.as_dict() for f in self.failures],
        }


@dataclass
class CycleInitResult:
    """Outcome of initialize_cycle_records()."""
    cycle_key: str
    initialized: int = 0
    skipped: int = 0
    total: int = 0
    failures: List[DonorFailure] = field(default_factory=list)
    
    @property
    def error_count(self) -> int:
        return len(self.failures)
    
    def as_dict(self) -> Dict[str, Any]:
        return {
            "cycle_key": self.cycle_key,
            "initialized": self.initialized,
            "skipped": self.skipped,
            "total": self.total,
            "error_count": self.error_count,
            "failures": [f.as_dict() for f in self.failures],
        }


def _failure(donor_id: uuid.UUID, error: Exception) -> DonorFailure:
    return DonorFailure(
        donor_id=donor_id,
        code=getattr(error, "code", type(error).__name__),
        message=str(error),
    )


class ReconciliationService:
    """Service for the daily reconciliation and the cycle-start initialization."""
    
    def __init__(
        self,
        db: AsyncSession,
        batch_size: Optional[int] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.batch_size = batch_size or settings.reconcile_batch_size
        self.clock = clock
        self.donors = DonorRepository(db)
        self.donations = DonationRepository(db)
    
    async def reconcile_overdue_donors(self, now: Optional[datetime] = None) -> ReconciliationResult:
        """
        Move overdue donors back to pending.

        Scans active, non-pending donors whose collection date is before `now`.
        Donors with a recorded outcome for cycle_key(now) are left alone;
        the rest get a pending history entry. Collection dates never change.
        """
        now = localize(now) if now else self.clock()
        key = cycle_key(now)
        result = ReconciliationResult(cycle_key=key)
        result.active_donors = await self.donors.count_active()
        
        logger.info(
            f"Starting overdue reconciliation for {key} at {now.isoformat()} "
            f"({result.active_donors} active donors)"
        )
        
        after_id: Optional[uuid.UUID] = None
        while True:
            batch = await self.donors.find_active_overdue(
                before=now, after_id=after_id, limit=self.batch_size
            )
            if not batch:
                break
            
            donor_ids = [donor.id for donor in batch]
            for donor_id in donor_ids:
                result.total_checked += 1
                try:
                    async with self.db.begin_nested():
                        if await self._reopen_if_missed(donor_id, key, now):
                            result.updated_count += 1
                except Exception as e:
                    logger.error(f"Reconciliation failed for donor {donor_id}: {e}")
                    result.failures.append(_failure(donor_id, e))
            
            await self.db.commit()
            after_id = donor_ids[-1]
            if len(batch) < self.batch_size:
                break
        
        logger.info(
            f"Reconciliation {key} complete. Updated: {result.updated_count}, "
            f"Checked: {result.total_checked}, Errors: {result.error_count}",
            extra={"context": result.as_dict()},
        )
        return result
    
    async def initialize_cycle_records(self, now: Optional[datetime] = None) -> CycleInitResult:
        """
        Create a placeholder donation record for every active donor that has
        no record in cycle_key(now). Status and collection dates are untouched.
        """
        now = localize(now) if now else self.clock()
        key = cycle_key(now)
        result = CycleInitResult(cycle_key=key)
        
        logger.info(f"Initializing cycle records for {key}")
        
        after_id: Optional[uuid.UUID] = None
        while True:
            batch = await self.donors.find_active(after_id=after_id, limit=self.batch_size)
            if not batch:
                break
            
            donor_ids = [donor.id for donor in batch]
            for donor_id, donor in zip(donor_ids, batch):
                result.total += 1
                try:
                    async with self.db.begin_nested():
                        created = await self._create_placeholder(donor, key, now)
                    if created:
                        result.initialized += 1
                    else:
                        result.skipped += 1
                except DuplicateCycleRecord:
                    # Someone recorded an outcome between the lookup and the insert
                    result.skipped += 1
                except Exception as e:
                    logger.error(f"Cycle initialization failed for donor {donor_id}: {e}")
                    result.failures.append(_failure(donor_id, e))
            
            await self.db.commit()
            after_id = donor_ids[-1]
            if len(batch) < self.batch_size:
                break
        
        logger.info(
            f"Cycle {key} initialized. Created: {result.initialized}, "
            f"Skipped: {result.skipped}, Total: {result.total}, Errors: {result.error_count}",
            extra={"context": result.as_dict()},
        )
        return result
    
    async def _reopen_if_missed(self, donor_id: uuid.UUID, key: str, now: datetime) -> bool:
        # The batch scan is unlocked; decide on a fresh, locked copy
        donor = await self.donors.find_by_id_for_update(donor_id)
        if (
            donor is None
            or not donor.is_active
            or donor.status_enum is DonorStatus.PENDING
            or donor.collection_date >= now
        ):
            return False
        
        existing = await self.donations.find_by_donor_and_cycle(donor.id, key)
        if existing is not None and not existing.is_placeholder:
            return False
        
        validate_transition(donor.status_enum, DonorStatus.PENDING)
        donor.append_history(DonorStatus.PENDING, now, MISSED_COLLECTION_NOTE)
        await self.donors.update(donor)
        logger.debug(f"Donor {donor.hundi_no} set to pending for {key}")
        return True
    
    async def _create_placeholder(self, donor: Donor, key: str, now: datetime) -> bool:
        existing = await self.donations.find_by_donor_and_cycle(donor.id, key)
        if existing is not None:
            return False
        
        await self.donations.create(
            Donation(
                donor_id=donor.id,
                outcome=DonationOutcome.PENDING.value,
                amount=Decimal("0"),
                collection_date=now,
                cycle_key=key,
                notes=PLACEHOLDER_NOTE,
                collected_by=donor.created_by,
            )
        )
        return True
