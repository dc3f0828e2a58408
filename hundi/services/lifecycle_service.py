"""
Lifecycle Service - records collection outcomes and moves donors through
their status cycle.

Each public operation is one unit of work: the donor row is locked, the
donation record and the donor update are written inside a savepoint, and any
failure rolls both back.
"""

import uuid
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import AsyncIterator, Callable, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hundi.database import utc_now
from hundi.errors import (
    AmountNotAllowed,
    DonationNotFound,
    DonorNotFound,
    HundiError,
    RepositoryFailure,
)
from hundi.lifecycle.cycles import add_months, cycle_key, localize
from hundi.lifecycle.states import DonationOutcome, DonorStatus, validate_transition
from hundi.models.donation import Donation
from hundi.models.donor import Donor
from hundi.repositories.donation_repository import DonationRepository
from hundi.repositories.donor_repository import DonorRepository
from hundi.services.donation_rules import DonationRules, normalize_amount, normalize_notes

logger = logging.getLogger(__name__)


@dataclass
class OutcomeResult:
    """Donation record written by an operation and the donor after it."""
    donation: Donation
    donor: Donor


class LifecycleService:
    """Service for recording collections, skips and manual status changes."""
    
    def __init__(
        self,
        db: AsyncSession,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.clock = clock
        self.donors = DonorRepository(db)
        self.donations = DonationRepository(db)
        self.rules = DonationRules(self.donors, self.donations)
    
    async def record_collection(
        self,
        donor_id: uuid.UUID,
        amount: Union[Decimal, int, float, str, None],
        collection_timestamp: datetime,
        notes: Optional[str],
        actor_id: str,
    ) -> OutcomeResult:
        """
        Record a collected donation.

        The next collection date is one calendar month after the declared
        collection moment.
        """
        async with self._unit_of_work("record_collection", donor_id):
            value = normalize_amount(DonationOutcome.COLLECTED, amount)
            note = normalize_notes(DonationOutcome.COLLECTED, notes)
            collected_at = localize(collection_timestamp)
            key = cycle_key(collected_at)
            
            donor = await self.rules.load_active_donor(donor_id)
            placeholder = await self.rules.check_new_record(donor.id, key)
            validate_transition(donor.status_enum, DonorStatus.COLLECTED)
            
            donation = await self._write_outcome(
                placeholder,
                donor,
                outcome=DonationOutcome.COLLECTED,
                amount=value,
                collected_at=collected_at,
                key=key,
                notes=note,
                actor_id=actor_id,
            )
            
            donor.append_history(
                DonorStatus.COLLECTED,
                self.clock(),
                note or f"Collected {value} for {key}",
            )
            donor.collection_date = add_months(collected_at, 1)
            await self.donors.update(donor)
        
        logger.info(
            f"Donor {donor.hundi_no} collected {value} for {key}, "
            f"next collection {donor.collection_date.isoformat()}"
        )
        return OutcomeResult(donation=donation, donor=donor)
    
    async def record_skip(
        self,
        donor_id: uuid.UUID,
        notes: Optional[str],
        actor_id: str,
    ) -> OutcomeResult:
        """
        Record a skipped collection for the current cycle.

        Rescheduling starts from the moment of the decision, not from the
        donor's previous collection date.
        """
        async with self._unit_of_work("record_skip", donor_id):
            note = normalize_notes(DonationOutcome.SKIPPED, notes)
            now = self.clock()
            key = cycle_key(now)
            
            donor = await self.rules.load_active_donor(donor_id)
            placeholder = await self.rules.check_new_record(donor.id, key)
            validate_transition(donor.status_enum, DonorStatus.SKIPPED)
            
            donation = await self._write_outcome(
                placeholder,
                donor,
                outcome=DonationOutcome.SKIPPED,
                amount=Decimal("0"),
                collected_at=now,
                key=key,
                notes=note,
                actor_id=actor_id,
            )
            
            donor.append_history(DonorStatus.SKIPPED, now, note)
            donor.collection_date = add_months(now, 1)
            await self.donors.update(donor)
        
        logger.info(f"Donor {donor.hundi_no} skipped {key}: {note}")
        return OutcomeResult(donation=donation, donor=donor)
    
    async def update_status(
        self,
        donor_id: uuid.UUID,
        new_status: Union[DonorStatus, str],
        notes: Optional[str],
        actor_id: str,
    ) -> Donor:
        """
        Manual status override for administrative corrections.

        Does not write a donation record. Moving into collected or skipped
        reschedules one month from now; moving into pending keeps the date.
        """
        async with self._unit_of_work("update_status", donor_id):
            target = DonorStatus(new_status)
            
            donor = await self.donors.find_by_id_for_update(donor_id)
            if donor is None:
                raise DonorNotFound(donor_id)
            
            previous = donor.status_enum
            validate_transition(previous, target)
            
            now = self.clock()
            note = notes.strip() if notes and notes.strip() else f"Status changed to {target.value}"
            donor.append_history(target, now, note)
            if target in (DonorStatus.COLLECTED, DonorStatus.SKIPPED):
                donor.collection_date = add_months(now, 1)
            await self.donors.update(donor)
        
        logger.info(f"Donor {donor.hundi_no} status: {previous.value} -> {target.value} by {actor_id}")
        return donor
    
    async def update_donation(
        self,
        donation_id: uuid.UUID,
        amount: Union[Decimal, int, float, str, None] = None,
        notes: Optional[str] = None,
        collection_timestamp: Optional[datetime] = None,
    ) -> Donation:
        """
        Edit the non-identity fields of a donation record.

        Only collected records carry an amount; passing one for a skipped
        record or a placeholder raises AmountNotAllowed.

        A new timestamp may move the record into another cycle only when the
        donor has no record there yet.
        """
        async with self._unit_of_work("update_donation", donation_id):
            donation = await self.donations.find_by_id(donation_id)
            if donation is None:
                raise DonationNotFound(donation_id)
            
            # Serialize with other writes on the same donor
            await self.donors.find_by_id_for_update(donation.donor_id)
            
            outcome = donation.outcome_enum
            if amount is not None and outcome is not DonationOutcome.COLLECTED:
                raise AmountNotAllowed(outcome)
            new_amount = normalize_amount(
                outcome, amount if amount is not None else donation.amount
            )
            new_notes = normalize_notes(
                outcome, notes if notes is not None else donation.notes
            )
            
            if collection_timestamp is not None:
                moved_to = localize(collection_timestamp)
                new_key = cycle_key(moved_to)
                await self.rules.check_cycle_move(donation, new_key)
                donation.collection_date = moved_to
                donation.cycle_key = new_key
            
            donation.amount = new_amount
            donation.notes = new_notes
            await self.donations.update(donation)
        
        logger.info(f"Donation {donation.id} updated ({donation.cycle_key}, {donation.amount})")
        return donation
    
    async def delete_donation(
        self,
        donation_id: uuid.UUID,
        actor_id: str,
    ) -> Optional[Donor]:
        """
        Administrative removal of a donation record.

        Removing the donor's current-cycle outcome re-opens the donor as
        pending; removing a placeholder leaves the status alone. Returns the
        donor when its status was re-derived.
        """
        async with self._unit_of_work("delete_donation", donation_id):
            donation = await self.donations.find_by_id(donation_id)
            if donation is None:
                raise DonationNotFound(donation_id)
            
            donor = await self.donors.find_by_id_for_update(donation.donor_id)
            now = self.clock()
            removed_key = donation.cycle_key
            removed_outcome = not donation.is_placeholder
            await self.donations.delete(donation)
            
            reopened = (
                donor is not None
                and removed_outcome
                and removed_key == cycle_key(now)
                and donor.status_enum is not DonorStatus.PENDING
            )
            if reopened:
                validate_transition(donor.status_enum, DonorStatus.PENDING)
                donor.append_history(
                    DonorStatus.PENDING,
                    now,
                    f"Donation record for {removed_key} removed by {actor_id}",
                )
                await self.donors.update(donor)
        
        logger.info(f"Donation {donation_id} for {removed_key} deleted by {actor_id}")
        return donor if reopened else None
    
    async def _write_outcome(
        self,
        placeholder: Optional[Donation],
        donor: Donor,
        outcome: DonationOutcome,
        amount: Decimal,
        collected_at: datetime,
        key: str,
        notes: Optional[str],
        actor_id: str,
    ) -> Donation:
        """Fill in the cycle's placeholder, or insert a new record."""
        if placeholder is not None:
            placeholder.outcome = outcome.value
            placeholder.amount = amount
            placeholder.collection_date = collected_at
            placeholder.notes = notes
            placeholder.collected_by = actor_id
            return await self.donations.update(placeholder)
        
        donation = Donation(
            donor_id=donor.id,
            outcome=outcome.value,
            amount=amount,
            collection_date=collected_at,
            cycle_key=key,
            notes=notes,
            collected_by=actor_id,
        )
        return await self.donations.create(donation)
    
    @asynccontextmanager
    async def _unit_of_work(self, operation: str, subject_id: uuid.UUID) -> AsyncIterator[None]:
        """Savepoint around one operation; storage errors become RepositoryFailure."""
        try:
            async with self.db.begin_nested():
                yield
        except RepositoryFailure as e:
            logger.error(
                f"{operation} failed for {subject_id}: {e}",
                exc_info=True,
                extra={"context": {"operation": operation, "subject_id": str(subject_id)}},
            )
            raise
        except HundiError as e:
            logger.info(f"{operation} rejected for {subject_id}: {e.code}")
            raise
        except SQLAlchemyError as e:
            logger.error(f"{operation} failed for {subject_id}: {e}", exc_info=True)
            raise RepositoryFailure(operation, e) from e
