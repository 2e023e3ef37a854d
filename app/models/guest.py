"""
Guest model
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from app.core.db import Base

RSVP_PENDING = "pending"
RSVP_CONFIRMED = "confirmed"
RSVP_DECLINED = "declined"
RSVP_STATUSES = (RSVP_PENDING, RSVP_CONFIRMED, RSVP_DECLINED)

class Guest(Base):
    __tablename__ = "guests"
    
    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    family_group = Column(String(255), nullable=True, index=True)
    rsvp_status = Column(String(20), nullable=False, default=RSVP_PENDING)
    adults_attending = Column(Integer, nullable=False, default=0)
    children_attending = Column(Integer, nullable=False, default=0)
    age = Column(Integer, nullable=True)

    # Seat locks
    locked_seat = Column(Boolean, nullable=False, default=False)
    locked_table_id = Column(Integer, ForeignKey("tables.id", ondelete="SET NULL"), nullable=True)

    # Denormalized copy of the real-track placement
    table_number = Column(Integer, nullable=True)
    table_assignment = Column(String(100), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    
    # Relationships
    event = relationship("Event", back_populates="guests")

    @property
    def group_key(self) -> str:
        """Family group name, or a per-guest key for guests without one"""
        if self.family_group:
            return self.family_group
        return f"guest:{self.id}"

    @property
    def confirmed_attendance(self) -> int:
        return (self.adults_attending or 0) + (self.children_attending or 0)
