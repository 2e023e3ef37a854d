"""
Seating preference between two guests
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey

from app.core.db import Base

PREFERENCE_APART = "apart"
PREFERENCE_TOGETHER = "together"

SCOPE_SAME_TABLE = "sameTable"
SCOPE_ADJACENT_TABLES = "adjacentTables"

STRENGTH_MUST = "must"
STRENGTH_TRY = "try"

class SeatingPreference(Base):
    __tablename__ = "seating_preferences"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    guest_a_id = Column(Integer, ForeignKey("guests.id", ondelete="CASCADE"), nullable=False)
    guest_b_id = Column(Integer, ForeignKey("guests.id", ondelete="CASCADE"), nullable=False)
    preference_type = Column(String(10), nullable=False, default=PREFERENCE_APART)
    scope = Column(String(20), nullable=False, default=SCOPE_SAME_TABLE)
    # "must" apart rules are never broken by the packer; everything else is best effort
    strength = Column(String(10), nullable=False, default=STRENGTH_MUST)
    enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
