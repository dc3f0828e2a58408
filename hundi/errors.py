"""
Error taxonomy for the collection lifecycle engine.

Every error carries a machine-readable ``code`` and keeps its context as
attributes so the HTTP layer and the batch jobs can report it without parsing
messages. Only RepositoryFailure is worth retrying.
"""

from typing import Any


class HundiError(Exception):
    """Base exception for all lifecycle errors."""

    code: str = "HUNDI_ERROR"
    retryable: bool = False


class DonorNotFound(HundiError):
    """Donor with given ID does not exist."""

    code: str = "DONOR_NOT_FOUND"

    def __init__(self, donor_id: Any):
        self.donor_id = donor_id
        super().__init__(f"Donor not found: {donor_id}")


class InactiveDonor(HundiError):
    """Donor exists but has been deactivated."""

    code: str = "INACTIVE_DONOR"

    def __init__(self, donor_id: Any):
        self.donor_id = donor_id
        super().__init__(f"Cannot perform action on inactive donor: {donor_id}")


class InvalidStatusTransition(HundiError):
    """Status change not allowed by the transition table."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, from_status: Any, to_status: Any):
        self.from_status = from_status
        self.to_status = to_status
        from_str = getattr(from_status, "value", from_status)
        to_str = getattr(to_status, "value", to_status)
        super().__init__(f"Invalid status transition from {from_str} to {to_str}")


class AmountRequired(HundiError):
    """Collected outcome without a positive amount."""

    code: str = "AMOUNT_REQUIRED"

    def __init__(self, amount: Any = None):
        self.amount = amount
        super().__init__("A positive amount is required for a collection")


class NotesRequired(HundiError):
    """Skipped outcome without an explanation."""

    code: str = "NOTES_REQUIRED"

    def __init__(self):
        super().__init__("Notes are required when skipping a collection")


class DuplicateCycleRecord(HundiError):
    """A donation record already exists for this donor and cycle."""

    code: str = "DUPLICATE_CYCLE_RECORD"

    def __init__(self, donor_id: Any, cycle_key: str):
        self.donor_id = donor_id
        self.cycle_key = cycle_key
        super().__init__(
            f"Donation record already exists for donor {donor_id} in cycle {cycle_key}"
        )


class DonationNotFound(HundiError):
    """Donation record with given ID does not exist."""

    code: str = "DONATION_NOT_FOUND"

    def __init__(self, donation_id: Any):
        self.donation_id = donation_id
        super().__init__(f"Donation record not found: {donation_id}")


class DuplicateHundiNumber(HundiError):
    """Another donor already carries this hundi number."""

    code: str = "DUPLICATE_HUNDI_NUMBER"

    def __init__(self, hundi_no: str):
        self.hundi_no = hundi_no
        super().__init__(f"A donor with hundi number {hundi_no} already exists")


class GroupNotFound(HundiError):
    """Group with given ID does not exist."""

    code: str = "GROUP_NOT_FOUND"

    def __init__(self, group_id: Any):
        self.group_id = group_id
        super().__init__(f"Group not found: {group_id}")


class AmountNotAllowed(HundiError):
    """Amount given for a record whose outcome carries none."""

    code: str = "AMOUNT_NOT_ALLOWED"

    def __init__(self, outcome: Any):
        self.outcome = outcome
        outcome_str = getattr(outcome, "value", outcome)
        super().__init__(f"A {outcome_str} record cannot carry an amount")


class DefaultGroupMissing(HundiError):
    """Donor created without a group before the default groups were set up."""

    code: str = "DEFAULT_GROUP_MISSING"

    def __init__(self, group_name: str):
        self.group_name = group_name
        super().__init__(
            f"Default group '{group_name}' not found. Run the group bootstrap first."
        )


class RepositoryFailure(HundiError):
    """Underlying storage error. Callers may retry."""

    code: str = "REPOSITORY_FAILURE"
    retryable: bool = True

    def __init__(self, operation: str, cause: Exception):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Storage failure during {operation}: {cause}")
