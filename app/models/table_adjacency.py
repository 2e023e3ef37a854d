"""
Table adjacency model (one row per direction)
"""

from sqlalchemy import Column, Integer, ForeignKey, UniqueConstraint

from app.core.db import Base

class TableAdjacency(Base):
    __tablename__ = "table_adjacencies"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    table_id = Column(Integer, ForeignKey("tables.id", ondelete="CASCADE"), nullable=False)
    adjacent_table_id = Column(Integer, ForeignKey("tables.id", ondelete="CASCADE"), nullable=False)

    __table_args__ = (
        UniqueConstraint("event_id", "table_id", "adjacent_table_id", name="uq_adjacency_pair"),
    )
