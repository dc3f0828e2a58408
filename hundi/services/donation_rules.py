"""
Donation Rules - field and uniqueness validation for donation records.
"""

import uuid
import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

from hundi.errors import (
    AmountRequired,
    DonorNotFound,
    DuplicateCycleRecord,
    InactiveDonor,
    NotesRequired,
)
from hundi.lifecycle.states import DonationOutcome
from hundi.models.donation import Donation
from hundi.models.donor import Donor
from hundi.repositories.donation_repository import DonationRepository
from hundi.repositories.donor_repository import DonorRepository

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
CENT = Decimal("0.01")

# Largest value the Numeric(12, 2) amount column holds
MAX_AMOUNT = Decimal("9999999999.99")


def normalize_amount(outcome: DonationOutcome, amount: Any) -> Decimal:
    """
    Validate the amount against the outcome.

    Collections need an amount that is still strictly positive once rounded
    to the stored two decimal places, and that fits the column. Every other
    outcome is stored as zero whatever was passed.
    """
    if DonationOutcome(outcome) is not DonationOutcome.COLLECTED:
        return ZERO
    
    if amount is None or isinstance(amount, bool):
        raise AmountRequired(amount)
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise AmountRequired(amount)
    if not value.is_finite() or value <= 0 or value > MAX_AMOUNT:
        raise AmountRequired(amount)
    value = value.quantize(CENT, rounding=ROUND_HALF_UP)
    if value <= 0:
        raise AmountRequired(amount)
    return value


def normalize_notes(outcome: DonationOutcome, notes: Optional[str]) -> Optional[str]:
    """Skips must be explained; blank notes are dropped otherwise."""
    cleaned = notes.strip() if notes else ""
    if DonationOutcome(outcome) is DonationOutcome.SKIPPED and not cleaned:
        raise NotesRequired()
    return cleaned or None


class DonationRules:
    """Checks a candidate donation record before it is written."""
    
    def __init__(self, donors: DonorRepository, donations: DonationRepository):
        self.donors = donors
        self.donations = donations
    
    async def load_active_donor(self, donor_id: uuid.UUID, lock: bool = True) -> Donor:
        """Fetch the donor (row-locked by default) and require it to be active."""
        if lock:
            donor = await self.donors.find_by_id_for_update(donor_id)
        else:
            donor = await self.donors.find_by_id(donor_id)
        
        if donor is None:
            raise DonorNotFound(donor_id)
        if not donor.is_active:
            raise InactiveDonor(donor_id)
        return donor
    
    async def check_new_record(
        self,
        donor_id: uuid.UUID,
        cycle_key: str,
    ) -> Optional[Donation]:
        """
        Make sure the cycle has no recorded outcome for this donor yet.

        Returns the cycle's placeholder record when one exists, so the caller
        can fill it in instead of inserting a second row.
        """
        existing = await self.donations.find_by_donor_and_cycle(donor_id, cycle_key)
        if existing is None:
            return None
        if existing.is_placeholder:
            return existing
        
        logger.info(f"Duplicate record rejected for donor {donor_id} in {cycle_key}")
        raise DuplicateCycleRecord(donor_id, cycle_key)
    
    async def check_cycle_move(self, donation: Donation, new_cycle_key: str) -> None:
        """An edited record may only move into a cycle the donor has no record for."""
        if new_cycle_key == donation.cycle_key:
            return
        
        existing = await self.donations.find_by_donor_and_cycle(
            donation.donor_id, new_cycle_key
        )
        if existing is not None and existing.id != donation.id:
            raise DuplicateCycleRecord(donation.donor_id, new_cycle_key)
