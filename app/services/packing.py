"""
Seating packer.

Places guest groups into tables in a fixed order of rules:

1. pinned seats and locked groups
2. priority groups, lowest-numbered table that fits
3. kids table carve-out
4. best-fit-decreasing for everyone else
5. merging people left alone at a table

Soft together/apart preferences only break ties between equally tight
tables in steps 4 and 5; unmet ones are reported as warnings.

The packer is a pure function of its inputs. It never touches the database;
the assignment store persists the resulting plan.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from app.core.exceptions import OverCapacityError
from app.models.seating_preference import PREFERENCE_TOGETHER, SCOPE_ADJACENT_TABLES, STRENGTH_MUST
from app.services.constraints import (
    ConflictPolicy,
    NoConflicts,
    PinnedSeat,
    SeatingGroup,
    SeatingRules,
    TableSlot,
)

logger = logging.getLogger(__name__)

VIOLATION_OVER_CAPACITY = "over_capacity"
VIOLATION_CONFLICT_ACCEPTED = "conflict_accepted"
VIOLATION_LOCK_TARGET_MISSING = "lock_target_missing"
VIOLATION_LOCK_TARGET_LOCKED = "lock_target_locked"
VIOLATION_TOGETHER_UNMET = "together_not_satisfied"
VIOLATION_APART_UNMET = "apart_not_satisfied"

TOGETHER_SCORE = 100
NEARBY_SCORE = 50


@dataclass
class PlannedTable:
    number: int
    capacity: int
    table_type: str = "mixed"
    locked: bool = False
    table_id: Optional[int] = None
    created: bool = False


@dataclass(frozen=True)
class Placement:
    guest_id: int
    group_key: str
    table_number: int
    seats: int
    pinned: bool = False


@dataclass(frozen=True)
class SoftViolation:
    kind: str
    message: str
    table_number: Optional[int] = None
    group_keys: Tuple[str, ...] = ()
    load: Optional[int] = None
    capacity: Optional[int] = None


@dataclass
class PlacementPlan:
    tables: Dict[int, PlannedTable]
    placements: List[Placement]
    group_tables: Dict[str, int] = field(default_factory=dict)
    violations: List[SoftViolation] = field(default_factory=list)
    unplaced_groups: List[str] = field(default_factory=list)

    def load(self, table_number: int) -> int:
        return sum(p.seats for p in self.placements if p.table_number == table_number)

    def guests_at(self, table_number: int) -> List[int]:
        return sorted(p.guest_id for p in self.placements if p.table_number == table_number)

    def table_of_guest(self, guest_id: int) -> Optional[int]:
        for p in self.placements:
            if p.guest_id == guest_id:
                return p.table_number
        return None

    def as_mapping(self) -> Dict[int, List[int]]:
        """Table number -> sorted guest ids, for every table in the plan"""
        return {number: self.guests_at(number) for number in sorted(self.tables)}

    @property
    def created_tables(self) -> List[int]:
        return sorted(n for n, t in self.tables.items() if t.created)

    def overflowing_tables(self) -> Set[int]:
        return {
            v.table_number for v in self.violations
            if v.kind == VIOLATION_OVER_CAPACITY
        }


class _Packer:
    """Mutable packing state for a single run"""

    def __init__(
        self,
        tables: Sequence[TableSlot],
        rules: SeatingRules,
        adjacency: Dict[int, Set[int]],
        conflicts: ConflictPolicy,
        reserved_numbers: Iterable[int],
    ):
        self.rules = rules
        self.adjacency = adjacency
        self.conflicts = conflicts
        self.reserved = set(reserved_numbers)
        self.slots: Dict[int, TableSlot] = {}
        self.tables: Dict[int, PlannedTable] = {}
        self.load: Dict[int, int] = {}
        self.groups_at: Dict[int, Dict[str, int]] = {}
        for slot in sorted(tables, key=lambda t: t.number):
            self._add_table(slot, created=False)

        self.placements: List[Placement] = []
        self.group_tables: Dict[str, int] = {}
        self.movable: Dict[str, SeatingGroup] = {}
        self.violations: List[SoftViolation] = []

    # ----- table bookkeeping -----

    def _add_table(self, slot: TableSlot, created: bool) -> None:
        self.slots[slot.number] = slot
        self.tables[slot.number] = PlannedTable(
            number=slot.number,
            capacity=slot.capacity,
            table_type=slot.table_type,
            locked=slot.locked,
            table_id=slot.table_id,
            created=created,
        )
        self.load[slot.number] = 0
        self.groups_at[slot.number] = {}

    def _next_number(self) -> int:
        number = 1
        while number in self.tables or number in self.reserved:
            number += 1
        return number

    def _create_table(self, table_type: str = "mixed") -> int:
        number = self._next_number()
        slot = TableSlot(
            number=number,
            capacity=self.rules.seats_per_table,
            table_type=table_type,
            mode="auto",
        )
        self._add_table(slot, created=True)
        logger.debug(f"Created {table_type} table {number} (capacity {slot.capacity})")
        return number

    def _drop_created_table(self, number: int) -> None:
        del self.tables[number]
        del self.slots[number]
        del self.load[number]
        del self.groups_at[number]

    def remaining(self, number: int) -> int:
        return self.tables[number].capacity - self.load[number]

    # ----- placement -----

    def _place(self, group: SeatingGroup, number: int) -> None:
        for member in group.members:
            self.placements.append(Placement(
                guest_id=member.guest_id,
                group_key=group.key,
                table_number=number,
                seats=member.weight,
            ))
        self.load[number] += group.weight
        at = self.groups_at[number]
        at[group.key] = at.get(group.key, 0) + group.weight
        self.group_tables[group.key] = number

    def _unplace(self, group: SeatingGroup, number: int) -> None:
        member_ids = {m.guest_id for m in group.members}
        self.placements = [
            p for p in self.placements
            if not (p.table_number == number and p.guest_id in member_ids)
        ]
        self.load[number] -= group.weight
        self.groups_at[number].pop(group.key, None)
        self.group_tables.pop(group.key, None)

    def pin(self, seat: PinnedSeat) -> None:
        self.placements.append(Placement(
            guest_id=seat.guest_id,
            group_key=seat.group_key,
            table_number=seat.table_number,
            seats=seat.seats,
            pinned=True,
        ))
        self.load[seat.table_number] += seat.seats
        at = self.groups_at[seat.table_number]
        at[seat.group_key] = at.get(seat.group_key, 0) + seat.seats

    # ----- constraint checks -----

    def _neighbourhood(self, number: int) -> List[int]:
        return [number] + sorted(n for n in self.adjacency.get(number, ()) if n in self.tables)

    def _clashes(self, group_a: str, group_b: str, same_table: bool) -> bool:
        if same_table or self.rules.forbid_adjacent:
            if self.conflicts.between(group_a, group_b):
                return True
        return not same_table and self.conflicts.across_tables(group_a, group_b)

    def compatible(self, group_key: str, number: int) -> bool:
        for table_number in self._neighbourhood(number):
            for other_key in self.groups_at[table_number]:
                if other_key == group_key:
                    continue
                if self._clashes(group_key, other_key, table_number == number):
                    return False
        return True

    def _near(self, number: int) -> List[int]:
        return [n for n in self.adjacency.get(number, ()) if n in self.tables]

    def preference_score(self, group_key: str, number: int) -> int:
        """How well a table suits the group's soft preferences (higher is better)"""
        score = 0
        for rule in self.conflicts.preferences_for(group_key):
            other = rule.other(group_key)
            here = other in self.groups_at[number]
            near = any(other in self.groups_at[n] for n in self._near(number))
            if rule.kind == PREFERENCE_TOGETHER:
                multiplier = 2 if rule.strength == STRENGTH_MUST else 1
                if here:
                    score += TOGETHER_SCORE * multiplier
                elif near:
                    score += NEARBY_SCORE * multiplier
            elif here:
                score -= TOGETHER_SCORE
            elif near and rule.scope == SCOPE_ADJACENT_TABLES:
                score -= NEARBY_SCORE
        return score

    def _fits(self, group: SeatingGroup, number: int) -> bool:
        slot = self.slots[number]
        return (
            not slot.locked
            and slot.accepts(group, self.rules.kids_table_min_age)
            and self.remaining(number) >= group.weight
            and self.compatible(group.key, number)
        )

    def lowest_fit(self, group: SeatingGroup) -> Optional[int]:
        for number in sorted(self.tables):
            if self._fits(group, number):
                return number
        return None

    def tightest_fit(self, group: SeatingGroup, table_type: Optional[str] = None) -> Optional[int]:
        best = None
        for number in sorted(self.tables):
            if table_type is not None and self.slots[number].table_type != table_type:
                continue
            if not self._fits(group, number):
                continue
            key = (self.remaining(number) - group.weight, -self.preference_score(group.key, number), number)
            if best is None or key < best:
                best = key
        return best[-1] if best else None

    def place_free(self, group: SeatingGroup, number: Optional[int], table_type: str = "mixed") -> int:
        if number is None:
            number = self._create_table(table_type)
        self._place(group, number)
        self.movable[group.key] = group
        return number

    # ----- plan steps -----

    def place_locked(self, groups: List[SeatingGroup], pinned: Sequence[PinnedSeat]) -> List[SeatingGroup]:
        """Place pinned seats and locked groups; return groups left to pack"""
        locked_load: Dict[int, int] = {}

        for seat in sorted(pinned, key=lambda s: (s.table_number, s.guest_id)):
            if seat.table_number not in self.tables:
                logger.warning(
                    f"Pinned guest {seat.guest_id} refers to unknown table {seat.table_number}"
                )
                continue
            self.pin(seat)
            if seat.locked:
                locked_load[seat.table_number] = locked_load.get(seat.table_number, 0) + seat.seats

        free: List[SeatingGroup] = []
        for group in groups:
            if not group.is_locked:
                free.append(group)
                continue
            if group.lock_missing or group.lock_table not in self.tables:
                self.violations.append(SoftViolation(
                    kind=VIOLATION_LOCK_TARGET_MISSING,
                    message=f"Group {group.key} is locked to a table that no longer exists",
                    group_keys=(group.key,),
                ))
                free.append(group)
                continue
            if self.slots[group.lock_table].locked:
                # A locked table keeps exactly what it holds; the demand still counts
                locked_load[group.lock_table] = locked_load.get(group.lock_table, 0) + group.weight
                self.violations.append(SoftViolation(
                    kind=VIOLATION_LOCK_TARGET_LOCKED,
                    message=(
                        f"Group {group.key} is locked to table {group.lock_table}, "
                        f"which is itself locked; seated elsewhere"
                    ),
                    table_number=group.lock_table,
                    group_keys=(group.key,),
                ))
                free.append(group)
                continue
            self._place(group, group.lock_table)
            locked_load[group.lock_table] = locked_load.get(group.lock_table, 0) + group.weight

        for number in sorted(locked_load):
            capacity = self.tables[number].capacity
            if locked_load[number] > capacity:
                raise OverCapacityError(
                    table_id=self.tables[number].table_id,
                    table_number=number,
                    required=locked_load[number],
                    available=capacity,
                )
        return free

    def place_priority(self, groups: List[SeatingGroup]) -> List[SeatingGroup]:
        ranked = sorted((g for g in groups if g.priority > 0), key=lambda g: (g.priority, g.key))
        for group in ranked:
            self.place_free(group, self.lowest_fit(group))
        return [g for g in groups if g.priority <= 0]

    def place_kids(self, groups: List[SeatingGroup]) -> List[SeatingGroup]:
        if not self.rules.enable_kids_table:
            return groups
        min_age = self.rules.kids_table_min_age
        kids = [g for g in groups if g.is_kids_only(min_age)]
        if not kids or sum(g.weight for g in kids) < self.rules.kids_table_min_count:
            return groups

        for group in sorted(kids, key=lambda g: (-g.weight, g.key)):
            self.place_free(group, self.tightest_fit(group, table_type="kids"), table_type="kids")
        placed = {g.key for g in kids}
        return [g for g in groups if g.key not in placed]

    def place_bulk(self, groups: List[SeatingGroup]) -> None:
        for group in sorted(groups, key=lambda g: (-g.weight, g.key)):
            self.place_free(group, self.tightest_fit(group))

    def merge_singles(self) -> None:
        """Move people sitting alone to an occupied table with room for them"""
        for number in sorted(self.tables):
            if number not in self.tables:
                continue
            if self.slots[number].locked or self.load[number] != 1:
                continue
            keys = [k for k, weight in self.groups_at[number].items() if weight > 0]
            if len(keys) != 1 or keys[0] not in self.movable:
                continue
            group = self.movable[keys[0]]
            if group.weight != 1:
                continue

            best = None
            for other in sorted(self.tables):
                if other == number or self.load[other] == 0:
                    continue
                if not self._fits(group, other):
                    continue
                key = (self.remaining(other) - 1, -self.preference_score(group.key, other), other)
                if best is None or key < best:
                    best = key
            if best is None:
                continue

            self._unplace(group, number)
            self._place(group, best[-1])
            logger.debug(f"Moved single guest group {group.key} from table {number} to {best[-1]}")
            if self.tables[number].created and self.load[number] == 0:
                self._drop_created_table(number)

    # ----- reporting -----

    def report_conflicts(self) -> None:
        """Conflicts can only come from pinned or locked seats; record them"""
        seen: Set[Tuple[str, str]] = set()
        for number in sorted(self.tables):
            for other_number in self._neighbourhood(number):
                if other_number < number:
                    continue
                for a in sorted(self.groups_at[number]):
                    for b in sorted(self.groups_at[other_number]):
                        if a == b or not self._clashes(a, b, other_number == number):
                            continue
                        pair = tuple(sorted((a, b)))
                        if pair in seen:
                            continue
                        seen.add(pair)
                        where = (
                            f"table {number}" if other_number == number
                            else f"adjacent tables {number} and {other_number}"
                        )
                        self.violations.append(SoftViolation(
                            kind=VIOLATION_CONFLICT_ACCEPTED,
                            message=f"Groups {pair[0]} and {pair[1]} are kept apart but share {where}",
                            table_number=number,
                            group_keys=pair,
                        ))

    def report_preferences(self) -> None:
        """Record soft preferences the plan does not honour"""
        tables_of: Dict[str, Set[int]] = {}
        for p in self.placements:
            tables_of.setdefault(p.group_key, set()).add(p.table_number)

        for rule in self.conflicts.preferences:
            a_tables = tables_of.get(rule.group_a)
            b_tables = tables_of.get(rule.group_b)
            if not a_tables or not b_tables:
                continue
            shared = sorted(a_tables & b_tables)
            near = any(b in self.adjacency.get(a, ()) for a in a_tables for b in b_tables)
            within_scope = bool(shared) or (rule.scope == SCOPE_ADJACENT_TABLES and near)
            pair = tuple(sorted((rule.group_a, rule.group_b)))

            if rule.kind == PREFERENCE_TOGETHER and not within_scope:
                self.violations.append(SoftViolation(
                    kind=VIOLATION_TOGETHER_UNMET,
                    message=f"Groups {pair[0]} and {pair[1]} wanted to sit together but were seated apart",
                    group_keys=pair,
                ))
            elif rule.kind != PREFERENCE_TOGETHER and within_scope:
                self.violations.append(SoftViolation(
                    kind=VIOLATION_APART_UNMET,
                    message=f"Groups {pair[0]} and {pair[1]} wanted to sit apart but were seated close together",
                    table_number=shared[0] if shared else None,
                    group_keys=pair,
                ))

    def report_overflow(self) -> None:
        for number in sorted(self.tables):
            capacity = self.tables[number].capacity
            if self.load[number] > capacity:
                self.violations.append(SoftViolation(
                    kind=VIOLATION_OVER_CAPACITY,
                    message=f"Table {number} is over capacity ({self.load[number]}/{capacity})",
                    table_number=number,
                    load=self.load[number],
                    capacity=capacity,
                ))

    def plan(self, groups: Sequence[SeatingGroup]) -> PlacementPlan:
        placed_keys = set(self.group_tables) | {p.group_key for p in self.placements}
        return PlacementPlan(
            tables=dict(sorted(self.tables.items())),
            placements=sorted(self.placements, key=lambda p: (p.table_number, p.guest_id)),
            group_tables=dict(self.group_tables),
            violations=self.violations,
            unplaced_groups=sorted(g.key for g in groups if g.key not in placed_keys),
        )


def pack(
    groups: Sequence[SeatingGroup],
    tables: Sequence[TableSlot],
    rules: SeatingRules,
    adjacency: Optional[Dict[int, Set[int]]] = None,
    conflicts: Optional[ConflictPolicy] = None,
    pinned: Sequence[PinnedSeat] = (),
    reserved_numbers: Iterable[int] = (),
) -> PlacementPlan:
    """Compute a placement plan.

    Raises ``OverCapacityError`` when locked guests cannot fit their table.
    Any other overflow is allowed and reported as a soft violation.
    """
    packer = _Packer(tables, rules, adjacency or {}, conflicts or NoConflicts(), reserved_numbers)

    ordered = sorted(groups, key=lambda g: g.key)
    free = packer.place_locked(ordered, pinned)
    free = packer.place_priority(free)
    free = packer.place_kids(free)
    packer.place_bulk(free)
    if rules.avoid_singles_alone:
        packer.merge_singles()

    packer.report_conflicts()
    packer.report_preferences()
    packer.report_overflow()

    plan = packer.plan(groups)
    logger.info(
        f"Packed {len(groups)} groups into {len(plan.tables)} tables "
        f"({len(plan.created_tables)} new, {len(plan.violations)} warnings)"
    )
    return plan
