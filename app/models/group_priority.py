"""
Group priority model
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint

from app.core.db import Base

class GroupPriority(Base):
    __tablename__ = "group_priorities"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    group_name = Column(String(255), nullable=False)
    priority = Column(Integer, nullable=False, default=0)  # 0 = unranked
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("event_id", "group_name", name="uq_priority_event_group"),
    )
