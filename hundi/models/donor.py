"""Donor model - roster entry with its collection status and audit trail."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    String,
    Text,
    Boolean,
    Integer,
    ForeignKey,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hundi.database import Base, UTCDateTime, utc_now
from hundi.lifecycle.states import DonorStatus


class Donor(Base):
    """
    Donor with one outstanding collection cycle.

    The donor aggregate owns its status history. History rows are only ever
    appended through append_history(); nothing updates or removes them.
    """
    
    __tablename__ = "donors"
    
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    
    # External reference printed on the collection box
    hundi_no: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
    )
    
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    
    mobile_number: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )
    
    address: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    
    google_map_link: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
    )
    
    group_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("groups.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    
    # Current lifecycle status
    status: Mapped[str] = mapped_column(
        String(20),
        default=DonorStatus.PENDING.value,
        nullable=False,
        index=True,
    )
    
    # Next scheduled collection
    collection_date: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        index=True,
    )
    
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        index=True,
    )
    
    # Opaque reference to the registering user
    created_by: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    
    history: Mapped[list["DonorStatusHistory"]] = relationship(
        back_populates="donor",
        order_by="DonorStatusHistory.sequence",
        lazy="selectin",
        cascade="save-update, merge",
        passive_deletes="all",
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
        return f"<Donor {self.hundi_no} status={self.status}>"
    
    @property
    def status_enum(self) -> DonorStatus:
        return DonorStatus(self.status)
    
    @property
    def status_history(self) -> tuple["DonorStatusHistory", ...]:
        """Read-only view of the audit trail, oldest first."""
        return tuple(self.history)
    
    def append_history(
        self,
        status: DonorStatus,
        timestamp: datetime,
        note: str,
    ) -> "DonorStatusHistory":
        """
        Append an audit entry and make it the current status.

        Timestamps never go backwards: an entry older than the last one is
        recorded at the last entry's time.
        """
        if self.history and timestamp < self.history[-1].timestamp:
            timestamp = self.history[-1].timestamp
        
        entry = DonorStatusHistory(
            donor_id=self.id,
            sequence=len(self.history) + 1,
            status=DonorStatus(status).value,
            timestamp=timestamp,
            note=note,
        )
        self.history.append(entry)
        self.status = DonorStatus(status).value
        return entry


class DonorStatusHistory(Base):
    """Append-only audit entry of a donor status change."""
    
    __tablename__ = "donor_status_history"
    
    __table_args__ = (
        UniqueConstraint("donor_id", "sequence", name="uq_donor_history_sequence"),
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
    
    # 1-based position in the donor's trail
    sequence: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )
    
    timestamp: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
    )
    
    note: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    
    donor: Mapped["Donor"] = relationship(back_populates="history")
    
    def __repr__(self) -> str:
        return f"<DonorStatusHistory {self.donor_id}#{self.sequence} {self.status}>"
