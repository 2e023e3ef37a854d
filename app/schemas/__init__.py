"""
Pydantic schemas package
"""

from .common import *
from .seating import *

__all__ = [
    "StandardResponse",
    "ErrorResponse",
    "SeatingSettingsResponse",
    "SeatingSettingsUpdate",
    "ViolationInfo",
    "PlacementSummary",
    "OccupantInfo",
    "TableWithOccupants",
    "PublicTableSummary",
    "GuestChangeRequest",
    "GroupPriorityItem",
    "AdjacencyRequest",
    "SeatingPreferenceCreate",
    "SeatingPreferenceResponse",
]
