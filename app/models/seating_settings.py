"""
Per-event seating settings (one row per event)
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from app.core.db import Base

MODE_MANUAL = "manual"
MODE_AUTO = "auto"

POLICY_GROUP_ONLY = "onRsvpChangeGroupOnly"
POLICY_ALL = "onRsvpChangeAll"
POLICY_MANUAL_ONLY = "manualOnly"

ADJACENCY_SAME_TABLE = "forbidSameTableOnly"
ADJACENCY_SAME_AND_ADJACENT = "forbidSameAndAdjacent"

class SeatingSettings(Base):
    __tablename__ = "seating_settings"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), unique=True, nullable=False)
    mode = Column(String(10), nullable=False, default=MODE_MANUAL)
    seats_per_table = Column(Integer, nullable=False, default=12)
    auto_recalc_policy = Column(String(30), nullable=False, default=POLICY_GROUP_ONLY)
    adjacency_policy = Column(String(30), nullable=False, default=ADJACENCY_SAME_TABLE)
    enable_kids_table = Column(Boolean, nullable=False, default=False)
    kids_table_min_age = Column(Integer, nullable=False, default=6)
    kids_table_min_count = Column(Integer, nullable=False, default=6)
    avoid_singles_alone = Column(Boolean, nullable=False, default=True)
    enable_zone_placement = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    event = relationship("Event", back_populates="seating_settings")
