"""
Tests for the seating packer
"""

import random

import pytest

from app.core.exceptions import OverCapacityError
from app.services.constraints import (
    GuestUnit,
    PairRule,
    PinnedSeat,
    SeatingGroup,
    SeatingRules,
    SeparationList,
    TableSlot,
)
from app.services.packing import (
    VIOLATION_APART_UNMET,
    VIOLATION_CONFLICT_ACCEPTED,
    VIOLATION_LOCK_TARGET_LOCKED,
    VIOLATION_LOCK_TARGET_MISSING,
    VIOLATION_OVER_CAPACITY,
    VIOLATION_TOGETHER_UNMET,
    pack,
)

_next_guest_id = [1000]

def make_group(key, weight, priority=0, lock_table=None, age=None, lock_missing=False):
    """One-member group carrying the whole weight"""
    _next_guest_id[0] += 1
    return SeatingGroup(
        key=key,
        members=(GuestUnit(guest_id=_next_guest_id[0], weight=weight, age=age),),
        priority=priority,
        lock_table=lock_table,
        lock_missing=lock_missing,
    )

def tables(*capacities, **kwargs):
    return [TableSlot(number=i + 1, capacity=c, **kwargs) for i, c in enumerate(capacities)]

def loads(plan):
    return {number: plan.load(number) for number in plan.tables}

def test_best_fit_decreasing_example():
    """Groups [10, 8, 4, 2, 1] in three tables of 10"""
    groups = [
        make_group("a", 10),
        make_group("b", 8),
        make_group("c", 4),
        make_group("d", 2),
        make_group("e", 1),
    ]
    plan = pack(groups, tables(10, 10, 10), SeatingRules(seats_per_table=10))

    assert loads(plan) == {1: 10, 2: 10, 3: 5}
    assert plan.group_tables == {"a": 1, "b": 2, "d": 2, "c": 3, "e": 3}
    assert plan.violations == []
    assert plan.created_tables == []
    assert plan.unplaced_groups == []

def test_locked_group_over_capacity_raises():
    groups = [make_group("family", 8, lock_table=2), make_group("other", 2)]

    with pytest.raises(OverCapacityError) as exc_info:
        pack(groups, [TableSlot(1, 10), TableSlot(2, 6, table_id=42)], SeatingRules())

    error = exc_info.value
    assert error.table_number == 2
    assert error.table_id == 42
    assert error.required == 8
    assert error.available == 6
    assert error.details() == {"table_id": 42, "table_number": 2, "required": 8, "available": 6}

def test_pinned_and_locked_demand_counted_together():
    pinned = [PinnedSeat(guest_id=1, group_key="vip", table_number=1, seats=5, locked=True)]
    groups = [make_group("family", 4, lock_table=1)]

    with pytest.raises(OverCapacityError) as exc_info:
        pack(groups, [TableSlot(1, 8, locked=True)], SeatingRules(), pinned=pinned)

    assert exc_info.value.required == 9
    assert exc_info.value.available == 8

def test_locked_group_stays_on_its_table():
    groups = [
        make_group("locked", 3, lock_table=3),
        make_group("big", 6),
        make_group("medium", 5),
    ]
    plan = pack(groups, tables(6, 6, 6), SeatingRules(seats_per_table=6))

    assert plan.group_tables["locked"] == 3
    assert plan.load(3) <= 6
    assert sum(p.seats for p in plan.placements) == 14

def test_locked_table_receives_no_new_guests():
    pinned = [PinnedSeat(guest_id=1, group_key="head", table_number=1, seats=2, locked=True)]
    groups = [make_group("a", 2), make_group("b", 2)]
    plan = pack(
        groups,
        [TableSlot(1, 10, locked=True), TableSlot(2, 10)],
        SeatingRules(),
        pinned=pinned,
    )

    assert plan.guests_at(1) == [1]
    assert plan.group_tables == {"a": 2, "b": 2}

def test_missing_lock_target_is_reported_and_group_still_placed():
    groups = [make_group("lost", 2, lock_missing=True)]
    plan = pack(groups, tables(10), SeatingRules())

    assert plan.group_tables["lost"] == 1
    assert [v.kind for v in plan.violations] == [VIOLATION_LOCK_TARGET_MISSING]

def test_priority_groups_take_lowest_tables_in_order():
    groups = [
        make_group("second", 3, priority=2),
        make_group("first", 3, priority=1),
        make_group("filler", 4),
    ]
    plan = pack(groups, tables(4, 4, 4), SeatingRules(seats_per_table=4, avoid_singles_alone=False))

    assert plan.group_tables["first"] == 1
    assert plan.group_tables["second"] == 2
    assert plan.group_tables["filler"] == 3

def test_priority_group_gets_new_table_when_nothing_fits():
    groups = [make_group("vip", 5, priority=1)]
    plan = pack(groups, tables(4), SeatingRules(seats_per_table=8))

    assert plan.group_tables["vip"] == 2
    assert plan.created_tables == [2]
    assert plan.tables[2].capacity == 8

def test_kids_table_carve_out():
    rules = SeatingRules(
        seats_per_table=10,
        enable_kids_table=True,
        kids_table_min_age=6,
        kids_table_min_count=3,
    )
    groups = [
        make_group("kids-a", 2, age=4),
        make_group("kids-b", 2, age=5),
        make_group("teen", 1, age=14),
        make_group("adults", 4),
    ]
    plan = pack(groups, tables(10), rules)

    kids_table = plan.group_tables["kids-a"]
    assert plan.tables[kids_table].table_type == "kids"
    assert plan.group_tables["kids-b"] == kids_table
    assert plan.group_tables["adults"] != kids_table
    assert plan.group_tables["teen"] != kids_table

def test_kids_carve_out_needs_minimum_count():
    rules = SeatingRules(enable_kids_table=True, kids_table_min_age=6, kids_table_min_count=6)
    groups = [make_group("kids", 2, age=3), make_group("adults", 4)]
    plan = pack(groups, tables(10), rules)

    assert all(t.table_type != "kids" for t in plan.tables.values())
    assert plan.group_tables == {"adults": 1, "kids": 1}

def test_single_guest_merged_into_occupied_table():
    groups = [make_group("alone", 1, priority=1), make_group("pair", 2)]

    plan = pack(groups, tables(2, 4), SeatingRules(avoid_singles_alone=True))
    assert plan.group_tables == {"alone": 2, "pair": 2}
    assert plan.load(1) == 0

    plan = pack(groups, tables(2, 4), SeatingRules(avoid_singles_alone=False))
    assert plan.group_tables == {"alone": 1, "pair": 2}

def test_emptied_new_table_is_dropped():
    rules = SeatingRules(
        seats_per_table=4,
        enable_kids_table=True,
        kids_table_min_age=6,
        kids_table_min_count=1,
    )
    groups = [make_group("toddler", 1, age=2), make_group("adults", 3)]
    plan = pack(groups, [], rules)

    assert list(plan.tables) == [2]
    assert plan.group_tables == {"toddler": 2, "adults": 2}

def test_separated_groups_avoid_adjacent_tables():
    groups = [make_group("a", 4), make_group("b", 3)]
    conflicts = SeparationList([("a", "b")])
    adjacency = {1: {2}, 2: {1}}

    strict = SeatingRules(seats_per_table=4, adjacency_policy="forbidSameAndAdjacent")
    plan = pack(groups, tables(4, 4, 4), strict, adjacency=adjacency, conflicts=conflicts)
    assert plan.group_tables == {"a": 1, "b": 3}

    relaxed = SeatingRules(seats_per_table=4, adjacency_policy="forbidSameTableOnly")
    plan = pack(groups, tables(4, 4, 4), relaxed, adjacency=adjacency, conflicts=conflicts)
    assert plan.group_tables == {"a": 1, "b": 2}

def test_adjacent_scope_pair_avoids_neighbours_under_relaxed_policy():
    groups = [make_group("a", 4), make_group("b", 3)]
    relaxed = SeatingRules(seats_per_table=4, adjacency_policy="forbidSameTableOnly")

    plan = pack(
        groups,
        tables(4, 4, 4),
        relaxed,
        adjacency={1: {2}, 2: {1}},
        conflicts=SeparationList([PairRule("a", "b", scope="adjacentTables")]),
    )

    assert plan.group_tables == {"a": 1, "b": 3}

def test_separated_groups_never_share_a_table():
    groups = [make_group("a", 2), make_group("b", 2)]
    plan = pack(groups, tables(10), SeatingRules(seats_per_table=10), conflicts=SeparationList([("a", "b")]))

    assert plan.group_tables["a"] != plan.group_tables["b"]
    assert plan.created_tables == [2]

def test_conflict_between_locked_groups_is_reported():
    groups = [make_group("a", 2, lock_table=1), make_group("b", 2, lock_table=1)]
    plan = pack(groups, tables(10), SeatingRules(), conflicts=SeparationList([("a", "b")]))

    kinds = [v.kind for v in plan.violations]
    assert kinds == [VIOLATION_CONFLICT_ACCEPTED]
    assert plan.violations[0].group_keys == ("a", "b")

def test_deterministic_for_any_input_order():
    groups = [make_group(f"g{i:02d}", w) for i, w in enumerate([5, 3, 3, 2, 7, 1, 1, 4, 6, 2])]
    expected = pack(groups, tables(8, 8, 8), SeatingRules(seats_per_table=8)).as_mapping()

    shuffled = list(groups)
    random.Random(7).shuffle(shuffled)
    assert pack(shuffled, tables(8, 8, 8), SeatingRules(seats_per_table=8)).as_mapping() == expected

def test_capacity_is_conserved():
    groups = [make_group(f"g{i}", w) for i, w in enumerate([5, 3, 3, 2, 7, 1, 1, 4, 6, 2])]
    plan = pack(groups, tables(8, 8), SeatingRules(seats_per_table=8))

    assert sum(p.seats for p in plan.placements) == sum(g.weight for g in groups)
    assert all(plan.load(n) <= t.capacity for n, t in plan.tables.items())

def test_new_tables_take_smallest_free_number():
    groups = [make_group("a", 2), make_group("b", 2)]
    plan = pack(groups, [TableSlot(2, 2)], SeatingRules(seats_per_table=2))
    assert sorted(plan.tables) == [1, 2]
    assert plan.created_tables == [1]

    plan = pack(groups, [TableSlot(3, 2)], SeatingRules(seats_per_table=2), reserved_numbers={1, 2})
    assert plan.created_tables == [4]

def test_oversized_group_overflows_with_warning():
    plan = pack([make_group("huge", 15)], [], SeatingRules(seats_per_table=12))

    assert plan.group_tables == {"huge": 1}
    violation = plan.violations[0]
    assert violation.kind == VIOLATION_OVER_CAPACITY
    assert (violation.table_number, violation.load, violation.capacity) == (1, 15, 12)

def test_group_locked_to_a_locked_table_is_seated_elsewhere():
    pinned = [PinnedSeat(guest_id=1, group_key="head", table_number=1, seats=2, locked=True)]
    groups = [make_group("b", 2, lock_table=1)]

    plan = pack(
        groups,
        [TableSlot(1, 10, locked=True), TableSlot(2, 10)],
        SeatingRules(),
        pinned=pinned,
    )

    assert plan.guests_at(1) == [1]
    assert plan.group_tables["b"] == 2
    violation = plan.violations[0]
    assert violation.kind == VIOLATION_LOCK_TARGET_LOCKED
    assert (violation.table_number, violation.group_keys) == (1, ("b",))

def test_together_preference_breaks_ties():
    groups = [make_group("a", 4), make_group("b", 4), make_group("c", 2)]
    rules = SeatingRules(seats_per_table=6)

    plan = pack(groups, tables(6, 6), rules)
    assert plan.group_tables["c"] == 1

    together = SeparationList([PairRule("b", "c", kind="together", strength="try")])
    plan = pack(groups, tables(6, 6), rules, conflicts=together)
    assert plan.group_tables == {"a": 1, "b": 2, "c": 2}
    assert plan.violations == []

def test_soft_apart_preference_breaks_ties():
    groups = [make_group("a", 4), make_group("b", 4), make_group("c", 2)]
    apart = SeparationList([PairRule("a", "c", kind="apart", strength="try")])

    plan = pack(groups, tables(6, 6), SeatingRules(seats_per_table=6), conflicts=apart)

    assert plan.group_tables["c"] == 2
    assert plan.violations == []

def test_soft_apart_preference_never_opens_a_table():
    groups = [make_group("a", 2), make_group("b", 2)]
    apart = SeparationList([PairRule("a", "b", kind="apart", strength="try")])

    plan = pack(groups, tables(10), SeatingRules(seats_per_table=10), conflicts=apart)

    assert plan.group_tables == {"a": 1, "b": 1}
    assert plan.created_tables == []
    violation = plan.violations[0]
    assert violation.kind == VIOLATION_APART_UNMET
    assert (violation.table_number, violation.group_keys) == (1, ("a", "b"))

def test_unmet_together_preference_is_reported():
    groups = [make_group("a", 3), make_group("b", 3)]
    together = SeparationList([PairRule("a", "b", kind="together", strength="must")])

    plan = pack(groups, tables(4, 4), SeatingRules(seats_per_table=4), conflicts=together)

    assert plan.group_tables == {"a": 1, "b": 2}
    assert [v.kind for v in plan.violations] == [VIOLATION_TOGETHER_UNMET]

def test_together_on_adjacent_tables_is_satisfied_by_adjacency():
    groups = [make_group("a", 3), make_group("b", 3)]
    together = SeparationList([PairRule("a", "b", kind="together", scope="adjacentTables")])

    plan = pack(
        groups,
        tables(4, 4),
        SeatingRules(seats_per_table=4),
        adjacency={1: {2}, 2: {1}},
        conflicts=together,
    )

    assert plan.violations == []
