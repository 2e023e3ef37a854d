"""
Database models package
"""

from .event import Event
from .table import Table
from .guest import Guest
from .seat_assignment import SeatAssignment
from .table_adjacency import TableAdjacency
from .group_priority import GroupPriority
from .seating_preference import SeatingPreference
from .seating_settings import SeatingSettings

__all__ = [
    "Event",
    "Table",
    "Guest",
    "SeatAssignment",
    "TableAdjacency",
    "GroupPriority",
    "SeatingPreference",
    "SeatingSettings",
]
