"""Repository contracts consumed by the lifecycle engine."""

from hundi.repositories.donor_repository import DonorRepository
from hundi.repositories.donation_repository import DonationRepository

__all__ = [
    "DonorRepository",
    "DonationRepository",
]
