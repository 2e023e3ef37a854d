"""
Constraint model for the seating engine.

Everything the packer needs for one event and one track is assembled here into
plain data: guest groups with their weights, locks and priorities, the table
pool, the adjacency graph, the conflict policy and the seats that must stay
where they are. Building a snapshot only reads from the database.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import NotFoundError
from app.models.guest import RSVP_CONFIRMED, RSVP_PENDING
from app.models.seat_assignment import TRACK_REAL, TRACK_SIMULATION
from app.models.seating_preference import (
    PREFERENCE_APART,
    SCOPE_ADJACENT_TABLES,
    SCOPE_SAME_TABLE,
    STRENGTH_MUST,
)
from app.models.seating_settings import ADJACENCY_SAME_AND_ADJACENT, ADJACENCY_SAME_TABLE
from app.services.repositories import (
    AdjacencyRepo,
    EventRepo,
    GuestRepo,
    PriorityRepo,
    PreferenceRepo,
    SeatLedgerRepo,
    SettingsRepo,
    TableRepo,
)

logger = logging.getLogger(__name__)

SCOPE_FULL = "full"
SCOPE_GROUP = "group"


@dataclass(frozen=True)
class GuestUnit:
    guest_id: int
    weight: int
    age: Optional[int] = None


@dataclass(frozen=True)
class SeatingGroup:
    """A family or party that is seated as one unit"""

    key: str
    members: Tuple[GuestUnit, ...]
    priority: int = 0
    lock_table: Optional[int] = None  # table number
    lock_missing: bool = False

    @property
    def weight(self) -> int:
        return sum(m.weight for m in self.members)

    @property
    def is_locked(self) -> bool:
        return self.lock_table is not None or self.lock_missing

    def is_kids_only(self, min_age: int) -> bool:
        return bool(self.members) and all(
            m.age is not None and m.age < min_age for m in self.members
        )


@dataclass(frozen=True)
class TableSlot:
    number: int
    capacity: int
    table_type: str = "mixed"
    locked: bool = False
    table_id: Optional[int] = None
    mode: str = "manual"

    def accepts(self, group: SeatingGroup, kids_min_age: int) -> bool:
        """Kids tables only take groups made up entirely of children"""
        if self.table_type == "kids":
            return group.is_kids_only(kids_min_age)
        return True


@dataclass(frozen=True)
class PinnedSeat:
    """A guest whose current seat must be kept as-is"""

    guest_id: int
    group_key: str
    table_number: int
    seats: int
    locked: bool = False  # held by a locked table


@dataclass(frozen=True)
class SeatingRules:
    seats_per_table: int = 12
    adjacency_policy: str = ADJACENCY_SAME_TABLE
    enable_kids_table: bool = False
    kids_table_min_age: int = 6
    kids_table_min_count: int = 6
    avoid_singles_alone: bool = True

    @property
    def forbid_adjacent(self) -> bool:
        return self.adjacency_policy == ADJACENCY_SAME_AND_ADJACENT

    @classmethod
    def from_settings(cls, row) -> "SeatingRules":
        return cls(
            seats_per_table=row.seats_per_table,
            adjacency_policy=row.adjacency_policy,
            enable_kids_table=row.enable_kids_table,
            kids_table_min_age=row.kids_table_min_age,
            kids_table_min_count=row.kids_table_min_count,
            avoid_singles_alone=row.avoid_singles_alone,
        )


# -------- Conflict policies --------

@dataclass(frozen=True)
class PairRule:
    """A seating preference between two groups"""

    group_a: str
    group_b: str
    kind: str = PREFERENCE_APART
    scope: str = SCOPE_SAME_TABLE
    strength: str = STRENGTH_MUST

    @property
    def is_hard(self) -> bool:
        return self.kind == PREFERENCE_APART and self.strength == STRENGTH_MUST

    def other(self, group_key: str) -> str:
        return self.group_b if group_key == self.group_a else self.group_a


class ConflictPolicy:
    """Decides which pairs of groups must not be seated together.

    ``preferences`` holds the soft rules (together, and apart with strength
    ``try``). The packer uses them to break ties and reports the ones it could
    not honour; they never block a placement.
    """

    def __init__(self, preferences: Iterable[PairRule] = ()):
        self.preferences: Tuple[PairRule, ...] = tuple(
            p for p in preferences if p.group_a != p.group_b and not p.is_hard
        )

    def between(self, group_a: str, group_b: str) -> bool:
        raise NotImplementedError

    def across_tables(self, group_a: str, group_b: str) -> bool:
        """Whether the pair avoids adjacent tables whatever the event policy"""
        return False

    def preferences_for(self, group_key: str) -> List[PairRule]:
        return [p for p in self.preferences if group_key in (p.group_a, p.group_b)]


class NoConflicts(ConflictPolicy):
    def between(self, group_a: str, group_b: str) -> bool:
        return False


class SeparationList(ConflictPolicy):
    """Only explicitly listed pairs are kept apart.

    Accepts ``PairRule`` objects or plain ``(group_a, group_b)`` tuples, which
    mean "must be apart at the same table".
    """

    def __init__(self, rules: Iterable = ()):
        rules = [r if isinstance(r, PairRule) else PairRule(*r) for r in rules]
        super().__init__(rules)
        self.pairs: Set[FrozenSet[str]] = set()
        self.adjacent_pairs: Set[FrozenSet[str]] = set()
        for rule in rules:
            if not rule.is_hard or rule.group_a == rule.group_b:
                continue
            pair = frozenset((rule.group_a, rule.group_b))
            self.pairs.add(pair)
            if rule.scope == SCOPE_ADJACENT_TABLES:
                self.adjacent_pairs.add(pair)

    def between(self, group_a: str, group_b: str) -> bool:
        if group_a == group_b:
            return False
        return frozenset((group_a, group_b)) in self.pairs

    def across_tables(self, group_a: str, group_b: str) -> bool:
        if group_a == group_b:
            return False
        return frozenset((group_a, group_b)) in self.adjacent_pairs


class DistinctGroupsApart(ConflictPolicy):
    """Every two different groups are kept apart"""

    def between(self, group_a: str, group_b: str) -> bool:
        return group_a != group_b


@dataclass
class SeatingSnapshot:
    event_id: int
    track: str
    scope: str
    rules: SeatingRules
    groups: List[SeatingGroup]
    tables: List[TableSlot]
    adjacency: Dict[int, Set[int]]
    conflicts: ConflictPolicy
    pinned: List[PinnedSeat] = field(default_factory=list)
    reserved_numbers: Set[int] = field(default_factory=set)
    target_group: Optional[str] = None


def guest_weight(guest, track: str) -> int:
    """Seats a guest needs on the given track; 0 means not seated there"""
    if guest.rsvp_status == RSVP_CONFIRMED:
        return max(1, guest.confirmed_attendance)
    if guest.rsvp_status == RSVP_PENDING and track != TRACK_REAL:
        return 1
    return 0


def build_conflict_policy(db: Session, event_id: int, guests) -> ConflictPolicy:
    key_by_guest = {g.id: g.group_key for g in guests}
    rules = []
    for row in PreferenceRepo.list_enabled(db, event_id):
        a = key_by_guest.get(row.guest_a_id)
        b = key_by_guest.get(row.guest_b_id)
        if a and b and a != b:
            rules.append(PairRule(a, b, row.preference_type, row.scope, row.strength))

    if settings.SEATING_CONFLICT_SOURCE == "all_groups":
        return DistinctGroupsApart(rules)
    return SeparationList(rules)


def build_snapshot(
    db: Session,
    event_id: int,
    track: str,
    scope: str = SCOPE_FULL,
    group_key: Optional[str] = None,
    require_group: bool = True,
) -> SeatingSnapshot:
    """Read the current state of an event into a packing snapshot"""
    EventRepo.require(db, event_id)
    rules = SeatingRules.from_settings(SettingsRepo.get_or_create(db, event_id))

    tables = TableRepo.list_for_event(db, event_id)
    guests = GuestRepo.list_for_event(db, event_id)
    guests_by_id = {g.id: g for g in guests}
    number_by_table_id = {t.id: t.table_number for t in tables}

    if scope == SCOPE_GROUP and require_group:
        if not any(g.group_key == group_key for g in guests):
            raise NotFoundError("Guest group")

    occupancy = SeatLedgerRepo.occupancy(db, event_id, track, tables=tables, guests=guests)

    # First table (by number) each guest currently sits at on this track
    current_table: Dict[int, int] = {}
    current_seats: Dict[int, int] = {}
    for table in tables:
        for seat in occupancy.get(table.id, []):
            if seat.guest_id not in current_table:
                current_table[seat.guest_id] = table.id
                current_seats[seat.guest_id] = seat.seats

    pinned: List[PinnedSeat] = []
    pinned_ids: Set[int] = set()

    # Locked tables keep exactly what they hold
    for table in tables:
        if not table.locked:
            continue
        for seat in occupancy.get(table.id, []):
            if seat.guest_id in pinned_ids:
                continue
            guest = guests_by_id[seat.guest_id]
            pinned.append(PinnedSeat(
                guest_id=guest.id,
                group_key=guest.group_key,
                table_number=table.table_number,
                seats=seat.seats,
                locked=True,
            ))
            pinned_ids.add(guest.id)

    # A group repack leaves every other group where it is
    if scope == SCOPE_GROUP:
        for guest in guests:
            if guest.id in pinned_ids or guest.group_key == group_key:
                continue
            if guest_weight(guest, track) == 0 or guest.id not in current_table:
                continue
            pinned.append(PinnedSeat(
                guest_id=guest.id,
                group_key=guest.group_key,
                table_number=number_by_table_id[current_table[guest.id]],
                seats=current_seats[guest.id],
            ))
            pinned_ids.add(guest.id)

    priorities = PriorityRepo.by_group(db, event_id)
    members_by_key: Dict[str, List] = {}
    for guest in guests:
        if guest.id in pinned_ids or guest_weight(guest, track) == 0:
            continue
        if scope == SCOPE_GROUP and guest.group_key != group_key:
            continue
        members_by_key.setdefault(guest.group_key, []).append(guest)

    groups: List[SeatingGroup] = []
    for key in sorted(members_by_key):
        members = members_by_key[key]
        lock_table, lock_missing = _resolve_lock(members, current_table, number_by_table_id)
        groups.append(SeatingGroup(
            key=key,
            members=tuple(
                GuestUnit(guest_id=m.id, weight=guest_weight(m, track), age=m.age)
                for m in members
            ),
            priority=priorities.get(key, 0),
            lock_table=lock_table,
            lock_missing=lock_missing,
        ))

    # Unlocked auto tables are rebuilt on a full repack and their numbers reused,
    # except those the other track still seats people at
    lock_targets = {g.lock_table for g in groups if g.lock_table is not None}
    if scope == SCOPE_FULL:
        other_track = TRACK_SIMULATION if track == TRACK_REAL else TRACK_REAL
        shared = SeatLedgerRepo.used_table_ids(db, event_id, other_track, tables=tables)
        pool = [
            t for t in tables
            if t.mode == "manual" or t.locked or t.table_number in lock_targets or t.id in shared
        ]
        reserved: Set[int] = set()
    else:
        pool = list(tables)
        reserved = {t.table_number for t in tables}

    slots = [
        TableSlot(
            number=t.table_number,
            capacity=t.capacity,
            table_type=t.table_type,
            locked=bool(t.locked),
            table_id=t.id,
            mode=t.mode,
        )
        for t in pool
    ]

    adjacency: Dict[int, Set[int]] = {}
    for table_id, adjacent_id in AdjacencyRepo.directed_edges(db, event_id):
        a = number_by_table_id.get(table_id)
        b = number_by_table_id.get(adjacent_id)
        if a is None or b is None:
            continue
        adjacency.setdefault(a, set()).add(b)
        adjacency.setdefault(b, set()).add(a)

    logger.info(
        f"Snapshot for event {event_id} ({track}, {scope}): "
        f"{len(groups)} groups, {len(slots)} tables, {len(pinned)} pinned seats"
    )

    return SeatingSnapshot(
        event_id=event_id,
        track=track,
        scope=scope,
        rules=rules,
        groups=groups,
        tables=slots,
        adjacency=adjacency,
        conflicts=build_conflict_policy(db, event_id, guests),
        pinned=pinned,
        reserved_numbers=reserved,
        target_group=group_key,
    )


def _resolve_lock(members, current_table, number_by_table_id) -> Tuple[Optional[int], bool]:
    """Return (locked table number, lock target missing) for a group"""
    for member in members:
        if not member.locked_seat:
            continue
        table_id = member.locked_table_id or current_table.get(member.id)
        if table_id is None:
            continue
        number = number_by_table_id.get(table_id)
        if number is None:
            return None, True
        return number, False
    return None, False
