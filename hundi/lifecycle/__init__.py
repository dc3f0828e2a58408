"""Collection lifecycle primitives: statuses, transitions and cycle arithmetic."""

from hundi.lifecycle.states import (
    DonorStatus,
    DonationOutcome,
    VALID_TRANSITIONS,
    is_valid_transition,
    validate_transition,
)
from hundi.lifecycle.cycles import cycle_key, add_months, cycle_bounds, localize

__all__ = [
    "DonorStatus",
    "DonationOutcome",
    "VALID_TRANSITIONS",
    "is_valid_transition",
    "validate_transition",
    "cycle_key",
    "add_months",
    "cycle_bounds",
    "localize",
]
