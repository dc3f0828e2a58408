"""
Report Service - per-cycle collection status across the active roster.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hundi.lifecycle.cycles import cycle_bounds
from hundi.lifecycle.states import DonationOutcome
from hundi.models.donor import Donor
from hundi.repositories.donation_repository import DonationRepository

logger = logging.getLogger(__name__)


class ReportService:
    """Service for monthly collection reports."""
    
    def __init__(self, db: AsyncSession):
        self.db = db
        self.donations = DonationRepository(db)
    
    async def monthly_status(self, year: int, month: int) -> Dict[str, Any]:
        """
        Status of every active donor for one cycle.

        Donors without a record, or with only a placeholder, count as pending.
        """
        if not 1 <= month <= 12:
            raise ValueError(f"Invalid month: {month}")
        key = f"{year:04d}-{month:02d}"
        starts_at, ends_at = cycle_bounds(key)
        
        result = await self.db.execute(
            select(Donor)
            .where(Donor.is_active.is_(True))
            .order_by(Donor.hundi_no)
        )
        donors = list(result.scalars().all())
        
        by_donor = {d.donor_id: d for d in await self.donations.list_for_cycle(key)}
        
        report: List[Dict[str, Any]] = []
        stats = {
            "total": len(donors),
            "collected": 0,
            "skipped": 0,
            "pending": 0,
            "total_amount": Decimal("0"),
        }
        
        for donor in donors:
            donation = by_donor.get(donor.id)
            outcome = donation.outcome_enum if donation else DonationOutcome.PENDING
            stats[outcome.value] += 1
            if outcome is DonationOutcome.COLLECTED:
                stats["total_amount"] += donation.amount
            
            report.append({
                "donor_id": donor.id,
                "hundi_no": donor.hundi_no,
                "name": donor.name,
                "status": outcome.value,
                "donation_id": donation.id if donation else None,
                "amount": donation.amount if donation else Decimal("0"),
            })
        
        logger.debug(f"Monthly status {key}: {stats}")
        return {
            "year": year,
            "month": month,
            "cycle_key": key,
            "starts_at": starts_at,
            "ends_at": ends_at,
            "stats": stats,
            "status_report": report,
        }
