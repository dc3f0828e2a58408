"""JSON payloads for donors and donation records."""

from typing import Any, Dict

from hundi.models.donation import Donation
from hundi.models.donor import Donor


def donor_payload(donor: Donor, with_history: bool = False) -> Dict[str, Any]:
    payload = {
        "id": str(donor.id),
        "hundi_no": donor.hundi_no,
        "name": donor.name,
        "group_id": str(donor.group_id),
        "status": donor.status,
        "collection_date": donor.collection_date.isoformat(),
        "is_active": donor.is_active,
    }
    if with_history:
        payload["status_history"] = [
            {
                "status": entry.status,
                "timestamp": entry.timestamp.isoformat(),
                "note": entry.note,
            }
            for entry in donor.status_history
        ]
    return payload


def donation_payload(donation: Donation) -> Dict[str, Any]:
    return {
        "id": str(donation.id),
        "donor_id": str(donation.donor_id),
        "outcome": donation.outcome,
        "amount": float(donation.amount),
        "collection_date": donation.collection_date.isoformat(),
        "cycle_key": donation.cycle_key,
        "notes": donation.notes,
        "collected_by": donation.collected_by,
    }
