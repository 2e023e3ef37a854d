"""
Table model
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Float, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from app.core.db import Base

TABLE_TYPES = ("adults", "kids", "mixed")
TABLE_MODES = ("manual", "auto")
TABLE_ZONES = ("stage", "dance", "quiet", "general")

class Table(Base):
    __tablename__ = "tables"
    
    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    table_number = Column(Integer, nullable=False)
    table_name = Column(String(100), nullable=False)
    capacity = Column(Integer, nullable=False)
    table_type = Column(String(10), nullable=False, default="mixed")
    mode = Column(String(10), nullable=False, default="manual")
    locked = Column(Boolean, nullable=False, default=False)

    # Guest ids seated on the real track; regenerated from the seat ledger
    occupants = Column(JSON, nullable=False, default=list)

    # Floor plan metadata, not used for packing
    zone = Column(String(20), nullable=False, default="general")
    position_x = Column(Float, nullable=True)
    position_y = Column(Float, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    
    # Relationships
    event = relationship("Event", back_populates="tables")
    
    __table_args__ = (
        UniqueConstraint("event_id", "table_number", name="uq_table_event_number"),
    )

    @property
    def is_auto(self) -> bool:
        return self.mode == "auto"
