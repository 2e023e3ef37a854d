"""
Seat ledger model
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import relationship

from app.core.db import Base

TRACK_REAL = "real"
TRACK_SIMULATION = "simulation"
TRACKS = (TRACK_REAL, TRACK_SIMULATION)

class SeatAssignment(Base):
    __tablename__ = "seat_assignments"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False)
    table_id = Column(Integer, ForeignKey("tables.id", ondelete="CASCADE"), nullable=False)
    guest_id = Column(Integer, ForeignKey("guests.id", ondelete="CASCADE"), nullable=False)
    seats_count = Column(Integer, nullable=False)
    track = Column(String(20), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    event = relationship("Event", back_populates="seat_assignments")

    # A guest holds at most one ledger row per track
    __table_args__ = (
        UniqueConstraint("event_id", "guest_id", "track", name="uq_seat_event_guest_track"),
        Index("ix_seat_event_table_track", "event_id", "table_id", "track"),
    )
