"""
Tests for the seat ledger, occupant caches and track handling
"""

import pytest
from datetime import datetime
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.db import Base
from app.core.exceptions import NoSimulationDataError
from app.models import Event, Guest, SeatAssignment, SeatingSettings, Table
from app.services.assignment_store import AssignmentStore
from app.services.constraints import build_snapshot
from app.services.packing import pack

# Test database setup
SQLALCHEMY_DATABASE_URL = "sqlite:///./test_assignment_store.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

@pytest.fixture
def db_session():
    """Create test database session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)

@pytest.fixture
def event(db_session):
    """Event with one manual table of 4 and a small guest list"""
    event = Event(
        name="Garden Wedding",
        date=datetime(2024, 9, 14),
        organizer_email="organizer@example.com",
        public_code="GARDEN1"
    )
    db_session.add(event)
    db_session.flush()

    db_session.add(SeatingSettings(event_id=event.id, mode="auto", seats_per_table=4))
    db_session.add(Table(
        event_id=event.id, table_number=1, table_name="Head", capacity=4, mode="manual"
    ))

    guests = [
        ("Anna Smith", "Smith", "confirmed", 2, 0),
        ("Ben Smith", "Smith", "confirmed", 1, 1),
        ("Carl Jones", "Jones", "confirmed", 3, 0),
        ("Dana Lee", None, "pending", 1, 0),
        ("Eve Park", "Park", "declined", 0, 0),
    ]
    for name, family, rsvp, adults, children in guests:
        db_session.add(Guest(
            event_id=event.id,
            name=name,
            family_group=family,
            rsvp_status=rsvp,
            adults_attending=adults,
            children_attending=children,
        ))

    db_session.commit()
    db_session.refresh(event)
    return event

def repack(db, event_id, track):
    snapshot = build_snapshot(db, event_id, track)
    plan = pack(
        snapshot.groups,
        snapshot.tables,
        snapshot.rules,
        adjacency=snapshot.adjacency,
        conflicts=snapshot.conflicts,
        pinned=snapshot.pinned,
        reserved_numbers=snapshot.reserved_numbers,
    )
    return plan, AssignmentStore.apply_plan(db, event_id, plan, track)

def guest_named(db, name):
    return db.query(Guest).filter(Guest.name == name).one()

def rows(db, event_id, track):
    return db.query(SeatAssignment).filter(
        SeatAssignment.event_id == event_id, SeatAssignment.track == track
    ).all()

def test_real_apply_writes_ledger_cache_and_guest_fields(db_session, event):
    plan, applied = repack(db_session, event.id, "real")

    assert applied.created == [2]
    assert len(rows(db_session, event.id, "real")) == 3

    head = db_session.query(Table).filter(Table.table_number == 1).one()
    auto = db_session.query(Table).filter(Table.table_number == 2).one()
    smiths = sorted([guest_named(db_session, "Anna Smith").id, guest_named(db_session, "Ben Smith").id])
    assert head.occupants == smiths
    assert auto.occupants == [guest_named(db_session, "Carl Jones").id]
    assert auto.mode == "auto"
    assert auto.table_name == "Table 2"

    carl = guest_named(db_session, "Carl Jones")
    assert carl.table_number == 2
    assert carl.table_assignment == "Table 2"
    assert guest_named(db_session, "Dana Lee").table_number is None
    assert guest_named(db_session, "Eve Park").table_number is None

def test_simulation_track_is_isolated(db_session, event):
    repack(db_session, event.id, "real")
    real_before = sorted((r.guest_id, r.table_id, r.seats_count) for r in rows(db_session, event.id, "real"))
    caches_before = {t.table_number: list(t.occupants) for t in db_session.query(Table).all()}

    plan, _ = repack(db_session, event.id, "simulation")

    dana = guest_named(db_session, "Dana Lee")
    assert plan.table_of_guest(dana.id) == 2
    assert len(rows(db_session, event.id, "simulation")) == 4

    real_after = sorted((r.guest_id, r.table_id, r.seats_count) for r in rows(db_session, event.id, "real"))
    caches_after = {t.table_number: list(t.occupants) for t in db_session.query(Table).all()}
    assert real_after == real_before
    assert caches_after == caches_before
    assert dana.table_number is None

def test_promote_copies_simulation_to_real(db_session, event):
    repack(db_session, event.id, "real")
    repack(db_session, event.id, "simulation")
    simulation = sorted((r.guest_id, r.table_id, r.seats_count) for r in rows(db_session, event.id, "simulation"))

    moved = AssignmentStore.promote(db_session, event.id)

    assert moved == 4
    real = sorted((r.guest_id, r.table_id, r.seats_count) for r in rows(db_session, event.id, "real"))
    assert real == simulation

    dana = guest_named(db_session, "Dana Lee")
    auto = db_session.query(Table).filter(Table.table_number == 2).one()
    assert dana.id in auto.occupants
    assert dana.table_number == 2

def test_promote_without_simulation_changes_nothing(db_session, event):
    repack(db_session, event.id, "real")
    before = sorted((r.guest_id, r.table_id) for r in rows(db_session, event.id, "real"))

    with pytest.raises(NoSimulationDataError):
        AssignmentStore.promote(db_session, event.id)

    assert sorted((r.guest_id, r.table_id) for r in rows(db_session, event.id, "real")) == before

def test_read_collapses_cache_duplicates_and_uses_fallback_seats(db_session, event):
    ben = guest_named(db_session, "Ben Smith")
    dana = guest_named(db_session, "Dana Lee")
    head = db_session.query(Table).filter(Table.table_number == 1).one()
    head.occupants = [ben.id, ben.id, "not-a-guest", dana.id]
    db_session.commit()

    real = AssignmentStore.get_assignments(db_session, event.id, "real")[0]
    assert [(o.guest_id, o.seats) for o in real.occupants] == [(ben.id, 2), (dana.id, 1)]
    assert real.occupied_seats == 3
    assert real.free_seats == 1
    assert not real.over_capacity

    # No simulation rows yet: the simulation view mirrors the real one
    simulation = AssignmentStore.get_assignments(db_session, event.id, "simulation")[0]
    assert [o.guest_id for o in simulation.occupants] == [ben.id, dana.id]

def test_full_repack_twice_is_stable(db_session, event):
    first, _ = repack(db_session, event.id, "real")
    second, applied = repack(db_session, event.id, "real")

    assert second.as_mapping() == first.as_mapping()
    assert applied.created == []
    assert applied.reused == [2]
    assert applied.deleted == []

def test_empty_auto_tables_are_pruned(db_session, event):
    repack(db_session, event.id, "real")
    carl = guest_named(db_session, "Carl Jones")
    carl.rsvp_status = "declined"
    db_session.commit()

    _, applied = repack(db_session, event.id, "real")

    assert applied.deleted == [2]
    assert db_session.query(Table).count() == 1

def test_purge_removes_auto_seating(db_session, event):
    repack(db_session, event.id, "real")
    repack(db_session, event.id, "simulation")
    auto = db_session.query(Table).filter(Table.table_number == 2).one()
    carl = guest_named(db_session, "Carl Jones")
    carl.locked_seat = True
    carl.locked_table_id = auto.id
    db_session.commit()

    result = AssignmentStore.purge_auto_seating(db_session, event.id)

    assert result["tables_deleted"] == 1
    assert db_session.query(SeatAssignment).count() == 0
    tables = db_session.query(Table).all()
    assert [t.table_number for t in tables] == [1]
    assert tables[0].occupants == []

    db_session.refresh(carl)
    assert carl.locked_table_id is None
    assert carl.locked_seat is False
    assert carl.table_number is None
    assert guest_named(db_session, "Anna Smith").table_assignment is None

def view(db, event_id, track):
    return [
        (t.table_number, t.capacity, sorted(o.guest_id for o in t.occupants), t.occupied_seats, t.over_capacity)
        for t in AssignmentStore.get_assignments(db, event_id, track)
    ]

def add_fox_family(db, event_id):
    db.add(Guest(
        event_id=event_id,
        name="Fay Fox",
        family_group="Fox",
        rsvp_status="confirmed",
        adults_attending=3,
    ))
    db.commit()

def test_repeated_simulation_leaves_real_view_alone(db_session, event):
    repack(db_session, event.id, "real")
    real_before = view(db_session, event.id, "real")
    assert [t[0] for t in real_before] == [1, 2]

    add_fox_family(db_session, event.id)
    settings_row = db_session.query(SeatingSettings).filter(SeatingSettings.event_id == event.id).one()
    settings_row.seats_per_table = 2
    db_session.commit()

    for _ in range(3):
        plan, _ = repack(db_session, event.id, "simulation")
        assert view(db_session, event.id, "real") == real_before

    # The simulation reused the real auto table at its real size
    assert plan.tables[2].capacity == 4
    assert plan.created_tables == [3]
    simulation = view(db_session, event.id, "simulation")
    assert [t[0] for t in simulation] == [1, 2, 3]

def test_real_repack_keeps_tables_the_simulation_uses(db_session, event):
    add_fox_family(db_session, event.id)
    repack(db_session, event.id, "simulation")
    simulation_before = view(db_session, event.id, "simulation")

    settings_row = db_session.query(SeatingSettings).filter(SeatingSettings.event_id == event.id).one()
    settings_row.seats_per_table = 3
    db_session.commit()
    plan, applied = repack(db_session, event.id, "real")

    assert applied.created == []
    assert plan.tables[2].capacity == 4
    assert view(db_session, event.id, "simulation") == simulation_before

def test_promoted_real_view_matches_simulation_view(db_session, event):
    repack(db_session, event.id, "real")
    add_fox_family(db_session, event.id)
    repack(db_session, event.id, "simulation")
    simulation = view(db_session, event.id, "simulation")

    AssignmentStore.promote(db_session, event.id)

    assert view(db_session, event.id, "real") == simulation

def test_lock_without_table_keeps_current_table(db_session, event):
    repack(db_session, event.id, "real")
    carl = guest_named(db_session, "Carl Jones")
    assert carl.table_number == 2

    # Without the lock, Jones would now take the head table
    guest_named(db_session, "Anna Smith").rsvp_status = "declined"
    carl.locked_seat = True
    db_session.commit()

    plan, applied = repack(db_session, event.id, "real")

    assert plan.violations == []
    assert plan.table_of_guest(carl.id) == 2
    assert plan.table_of_guest(guest_named(db_session, "Ben Smith").id) == 1
    assert applied.deleted == []
    db_session.refresh(carl)
    assert carl.table_number == 2

def test_simulation_with_smaller_tables_keeps_real_auto_tables(db_session):
    event = Event(
        name="Barn Dance",
        date=datetime(2024, 10, 5),
        organizer_email="organizer@example.com",
        public_code="BARN1"
    )
    db_session.add(event)
    db_session.flush()
    settings_row = SeatingSettings(event_id=event.id, mode="auto", seats_per_table=4)
    db_session.add(settings_row)
    for family in ("North", "South"):
        db_session.add(Guest(
            event_id=event.id,
            name=f"{family} Family",
            family_group=family,
            rsvp_status="confirmed",
            adults_attending=4,
        ))
    db_session.commit()

    repack(db_session, event.id, "real")
    real_before = view(db_session, event.id, "real")
    assert [(t[0], t[1], t[3], t[4]) for t in real_before] == [(1, 4, 4, False), (2, 4, 4, False)]

    settings_row.seats_per_table = 2
    db_session.commit()
    for _ in range(2):
        repack(db_session, event.id, "simulation")

    assert view(db_session, event.id, "real") == real_before
    assert view(db_session, event.id, "simulation") == real_before
