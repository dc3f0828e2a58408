"""
Donor status definitions and the single transition table.

Every status change in the system goes through validate_transition().
"""

from enum import Enum

from hundi.errors import InvalidStatusTransition


class DonorStatus(str, Enum):
    """
    Where a donor stands in the current collection cycle.
    Flat states, no substates.
    """
    
    PENDING = "pending"
    COLLECTED = "collected"
    SKIPPED = "skipped"


class DonationOutcome(str, Enum):
    """
    Outcome carried by a donation record.
    PENDING marks a placeholder created by cycle initialization.
    """
    
    PENDING = "pending"
    COLLECTED = "collected"
    SKIPPED = "skipped"
    
    @property
    def is_placeholder(self) -> bool:
        return self is DonationOutcome.PENDING


# Allowed state transitions (from -> set of valid targets).
# collected <-> skipped must pass through pending.
VALID_TRANSITIONS: dict[DonorStatus, frozenset[DonorStatus]] = {
    DonorStatus.PENDING: frozenset({
        DonorStatus.PENDING, DonorStatus.COLLECTED, DonorStatus.SKIPPED,
    }),
    DonorStatus.COLLECTED: frozenset({
        DonorStatus.COLLECTED, DonorStatus.PENDING,
    }),
    DonorStatus.SKIPPED: frozenset({
        DonorStatus.SKIPPED, DonorStatus.PENDING,
    }),
}


def is_valid_transition(from_status: DonorStatus, to_status: DonorStatus) -> bool:
    """Check a status change against the transition table."""
    return DonorStatus(to_status) in VALID_TRANSITIONS[DonorStatus(from_status)]


def validate_transition(from_status: DonorStatus, to_status: DonorStatus) -> None:
    """Raise InvalidStatusTransition unless the move is allowed."""
    if not is_valid_transition(from_status, to_status):
        raise InvalidStatusTransition(DonorStatus(from_status), DonorStatus(to_status))
