"""Services package."""

from hundi.services.donation_rules import DonationRules
from hundi.services.lifecycle_service import LifecycleService, OutcomeResult
from hundi.services.reconciliation_service import (
    ReconciliationService,
    ReconciliationResult,
    CycleInitResult,
)
from hundi.services.donor_service import DonorService
from hundi.services.group_service import GroupService
from hundi.services.report_service import ReportService

__all__ = [
    "DonationRules",
    "LifecycleService",
    "OutcomeResult",
    "ReconciliationService",
    "ReconciliationResult",
    "CycleInitResult",
    "DonorService",
    "GroupService",
    "ReportService",
]
