"""Group model - roster partition used for organizational filtering."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Text, Boolean, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from hundi.database import Base, UTCDateTime, utc_now


class Group(Base):
    """
    Named partition of the donor roster (usually a collection area).
    Not part of the lifecycle logic.
    """
    
    __tablename__ = "groups"
    
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    
    name: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
    )
    
    area: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )
    
    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )
    
    # Opaque reference to the user who created the group
    created_by: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
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
        return f"<Group {self.name}>"
