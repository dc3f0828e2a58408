"""Donation model - the recorded outcome of one donor for one cycle."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    String,
    Text,
    Numeric,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from hundi.database import Base, UTCDateTime, utc_now
from hundi.lifecycle.states import DonationOutcome


class Donation(Base):
    """
    Donation record for a (donor, cycle) pair.

    At most one record per donor per cycle; the unique constraint backs the
    application-level duplicate check.
    """
    
    __tablename__ = "donations"
    
    __table_args__ = (
        UniqueConstraint("donor_id", "cycle_key", name="uq_donation_donor_cycle"),
        CheckConstraint("amount >= 0", name="ck_donation_amount_non_negative"),
        Index("ix_donations_cycle_outcome", "cycle_key", "outcome"),
    )
    
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    
    donor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("donors.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    
    outcome: Mapped[str] = mapped_column(
        String(20),
        default=DonationOutcome.PENDING.value,
        nullable=False,
    )
    
    # Zero for anything but a collection
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0"),
        nullable=False,
    )
    
    # Actual moment of the collection / skip decision
    collection_date: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        index=True,
    )
    
    # "YYYY-MM" of collection_date on the collection calendar
    cycle_key: Mapped[str] = mapped_column(
        String(7),
        nullable=False,
        index=True,
    )
    
    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    
    # Opaque reference to the acting user
    collected_by: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
    )
    
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utc_now,
        nullable=False,
    )
    
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utc_now,
        onupdate=utc_now,
        nullable=False,
    )
    
    def __repr__(self) -> str:
        return f"<Donation {self.donor_id} {self.cycle_key} {self.outcome}>"
    
    @property
    def outcome_enum(self) -> DonationOutcome:
        return DonationOutcome(self.outcome)
    
    @property
    def is_placeholder(self) -> bool:
        """Created by cycle initialization, nobody has acted on it yet."""
        return self.outcome_enum.is_placeholder
