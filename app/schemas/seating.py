"""
Seating engine Pydantic schemas
"""

from typing import List, Literal, Optional
from pydantic import BaseModel, Field, model_validator

Track = Literal["real", "simulation"]
Mode = Literal["manual", "auto"]
RecalcPolicy = Literal["onRsvpChangeGroupOnly", "onRsvpChangeAll", "manualOnly"]
AdjacencyPolicy = Literal["forbidSameTableOnly", "forbidSameAndAdjacent"]
GuestTrigger = Literal["rsvp_changed", "guest_added", "guest_removed"]
PreferenceType = Literal["apart", "together"]
PreferenceScope = Literal["sameTable", "adjacentTables"]
PreferenceStrength = Literal["must", "try"]

class SeatingSettingsResponse(BaseModel):
    """Per-event seating settings"""
    event_id: int
    mode: Mode
    seats_per_table: int
    auto_recalc_policy: RecalcPolicy
    adjacency_policy: AdjacencyPolicy
    enable_kids_table: bool
    kids_table_min_age: int
    kids_table_min_count: int
    avoid_singles_alone: bool
    enable_zone_placement: bool
    state: Optional[str] = None

    class Config:
        from_attributes = True

class SeatingSettingsUpdate(BaseModel):
    """Partial update of seating settings"""
    mode: Optional[Mode] = None
    seats_per_table: Optional[int] = Field(default=None, ge=1, le=20)
    auto_recalc_policy: Optional[RecalcPolicy] = None
    adjacency_policy: Optional[AdjacencyPolicy] = None
    enable_kids_table: Optional[bool] = None
    kids_table_min_age: Optional[int] = Field(default=None, ge=0)
    kids_table_min_count: Optional[int] = Field(default=None, ge=1)
    avoid_singles_alone: Optional[bool] = None
    enable_zone_placement: Optional[bool] = None

class ViolationInfo(BaseModel):
    """Soft constraint the plan could not honour"""
    kind: str
    message: str
    table_number: Optional[int] = None
    group_keys: List[str] = []
    load: Optional[int] = None
    capacity: Optional[int] = None

class PlacementSummary(BaseModel):
    """Outcome of a repack"""
    event_id: int
    track: Track
    scope: str
    tables_touched: List[int]
    tables_created: List[int]
    tables_deleted: List[int]
    groups_placed: List[str]
    groups_unplaced: List[str]
    violations: List[ViolationInfo]

class OccupantInfo(BaseModel):
    guest_id: int
    name: str
    family_group: Optional[str] = None
    rsvp_status: str
    seats: int

class TableWithOccupants(BaseModel):
    """A table and who sits there on one track"""
    table_id: int
    table_number: int
    table_name: str
    capacity: int
    table_type: str
    mode: str
    locked: bool
    zone: Optional[str] = None
    occupants: List[OccupantInfo]
    occupied_seats: int
    free_seats: int
    over_capacity: bool

class PublicTableSummary(BaseModel):
    """Table occupancy without guest names"""
    table_number: int
    table_name: str
    capacity: int
    occupied_seats: int
    guest_count: int

class GuestChangeRequest(BaseModel):
    """Notification that a guest was added, removed or changed RSVP"""
    trigger: GuestTrigger
    guest_id: Optional[int] = None
    group_key: Optional[str] = None

    @model_validator(mode="after")
    def check_target(self):
        if self.guest_id is None and not self.group_key:
            raise ValueError("guest_id or group_key is required")
        # A removed guest can no longer be looked up by id
        if self.trigger == "guest_removed" and not self.group_key:
            raise ValueError("group_key is required for guest_removed")
        return self

class GroupPriorityItem(BaseModel):
    """Placement priority of a guest group (0 = unranked)"""
    group_name: str
    priority: int = Field(ge=0)

    class Config:
        from_attributes = True

class AdjacencyRequest(BaseModel):
    """Two tables that stand next to each other"""
    table_id: int
    adjacent_table_id: int

class SeatingPreferenceCreate(BaseModel):
    """Two guests who should sit together or apart"""
    guest_a_id: int
    guest_b_id: int
    preference_type: PreferenceType = "apart"
    scope: PreferenceScope = "sameTable"
    strength: PreferenceStrength = "must"
    enabled: bool = True

class SeatingPreferenceResponse(SeatingPreferenceCreate):
    id: int
    event_id: int

    class Config:
        from_attributes = True
