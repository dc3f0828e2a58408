"""Models package for database models."""

from hundi.models.group import Group
from hundi.models.donor import Donor, DonorStatusHistory
from hundi.models.donation import Donation

__all__ = [
    "Group",
    "Donor",
    "DonorStatusHistory",
    "Donation",
]
