"""
Repository layer over the SQLAlchemy models used by the seating engine.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import NotFoundError
from app.models import (
    Event,
    GroupPriority,
    Guest,
    SeatingPreference,
    SeatAssignment,
    SeatingSettings,
    Table,
    TableAdjacency,
)
from app.models.guest import RSVP_CONFIRMED
from app.models.seat_assignment import TRACK_REAL, TRACK_SIMULATION

logger = logging.getLogger(__name__)


# -------- Event repository --------

class EventRepo:
    @staticmethod
    def get_by_id(db: Session, event_id: int) -> Optional[Event]:
        return db.query(Event).filter(Event.id == event_id).first()

    @staticmethod
    def get_by_public_code(db: Session, public_code: str) -> Optional[Event]:
        return db.query(Event).filter(Event.public_code == public_code).first()

    @staticmethod
    def require(db: Session, event_id: int) -> Event:
        event = EventRepo.get_by_id(db, event_id)
        if not event:
            raise NotFoundError("Event")
        return event


# -------- Settings repository --------

class SettingsRepo:
    @staticmethod
    def get(db: Session, event_id: int) -> Optional[SeatingSettings]:
        return db.query(SeatingSettings).filter(SeatingSettings.event_id == event_id).first()

    @staticmethod
    def get_or_create(db: Session, event_id: int) -> SeatingSettings:
        """Settings row for the event, created with configured defaults on first use"""
        row = SettingsRepo.get(db, event_id)
        if row:
            return row
        row = SeatingSettings(
            event_id=event_id,
            seats_per_table=settings.DEFAULT_SEATS_PER_TABLE,
            kids_table_min_age=settings.DEFAULT_KIDS_TABLE_MIN_AGE,
            kids_table_min_count=settings.DEFAULT_KIDS_TABLE_MIN_COUNT,
            avoid_singles_alone=settings.DEFAULT_AVOID_SINGLES_ALONE,
        )
        db.add(row)
        db.commit()
        db.refresh(row)
        logger.info(f"Created default seating settings for event {event_id}")
        return row


# -------- Guest repository --------

class GuestRepo:
    @staticmethod
    def list_for_event(db: Session, event_id: int) -> List[Guest]:
        return db.query(Guest).filter(Guest.event_id == event_id).order_by(Guest.id).all()

    @staticmethod
    def get(db: Session, event_id: int, guest_id: int) -> Optional[Guest]:
        return db.query(Guest).filter(Guest.event_id == event_id, Guest.id == guest_id).first()

    @staticmethod
    def sync_table_fields(db: Session, event_id: int, tables_by_guest: Dict[int, Table]) -> None:
        """Copy the real-track placement onto each guest's table fields"""
        for guest in GuestRepo.list_for_event(db, event_id):
            table = tables_by_guest.get(guest.id)
            number = table.table_number if table else None
            name = table.table_name if table else None
            if guest.table_number != number or guest.table_assignment != name:
                guest.table_number = number
                guest.table_assignment = name
                guest.updated_at = datetime.utcnow()


# -------- Table repository --------

class TableRepo:
    @staticmethod
    def list_for_event(db: Session, event_id: int) -> List[Table]:
        return db.query(Table).filter(Table.event_id == event_id).order_by(Table.table_number).all()

    @staticmethod
    def get(db: Session, event_id: int, table_id: int) -> Optional[Table]:
        return db.query(Table).filter(Table.event_id == event_id, Table.id == table_id).first()

    @staticmethod
    def require(db: Session, event_id: int, table_id: int) -> Table:
        table = TableRepo.get(db, event_id, table_id)
        if not table:
            raise NotFoundError("Table")
        return table


# -------- Seat ledger --------

@dataclass(frozen=True)
class OccupantSeat:
    guest_id: int
    seats: int
    from_ledger: bool = True


def collapse_occupants(occupants: Optional[Iterable]) -> List[int]:
    """Occupant cache with duplicates and junk removed, first-seen order"""
    seen: List[int] = []
    for item in occupants or []:
        try:
            guest_id = int(item)
        except (TypeError, ValueError):
            continue
        if guest_id not in seen:
            seen.append(guest_id)
    return seen


class SeatLedgerRepo:
    @staticmethod
    def list_rows(db: Session, event_id: int, track: str) -> List[SeatAssignment]:
        return (
            db.query(SeatAssignment)
            .filter(SeatAssignment.event_id == event_id, SeatAssignment.track == track)
            .order_by(SeatAssignment.table_id, SeatAssignment.guest_id)
            .all()
        )

    @staticmethod
    def count(db: Session, event_id: int, track: str) -> int:
        return (
            db.query(SeatAssignment)
            .filter(SeatAssignment.event_id == event_id, SeatAssignment.track == track)
            .count()
        )

    @staticmethod
    def delete_track(db: Session, event_id: int, track: str) -> int:
        return (
            db.query(SeatAssignment)
            .filter(SeatAssignment.event_id == event_id, SeatAssignment.track == track)
            .delete(synchronize_session=False)
        )

    @staticmethod
    def fallback_seats(guest: Guest, track: str) -> int:
        """Seats shown for a guest that has no ledger row"""
        attendance = guest.confirmed_attendance
        if track == TRACK_REAL:
            return attendance
        if guest.rsvp_status == RSVP_CONFIRMED:
            return attendance
        return 1

    @staticmethod
    def occupancy(
        db: Session,
        event_id: int,
        track: str,
        tables: Optional[Sequence[Table]] = None,
        guests: Optional[Sequence[Guest]] = None,
    ) -> Dict[int, List[OccupantSeat]]:
        """Current seats per table id on one track"""
        if tables is None:
            tables = TableRepo.list_for_event(db, event_id)
        if guests is None:
            guests = GuestRepo.list_for_event(db, event_id)
        guests_by_id = {g.id: g for g in guests}
        table_ids = {t.id for t in tables}

        real_rows = SeatLedgerRepo.list_rows(db, event_id, TRACK_REAL)
        if track == TRACK_SIMULATION:
            rows = SeatLedgerRepo.list_rows(db, event_id, TRACK_SIMULATION)
            if not rows:
                # Nothing simulated yet: start from the real membership
                membership = SeatLedgerRepo._real_membership(tables, real_rows)
                return {
                    table_id: [
                        OccupantSeat(gid, SeatLedgerRepo.fallback_seats(guests_by_id[gid], track), False)
                        for gid in ids if gid in guests_by_id
                    ]
                    for table_id, ids in membership.items()
                }
            result: Dict[int, List[OccupantSeat]] = {t.id: [] for t in tables}
            for row in rows:
                if row.table_id in table_ids and row.guest_id in guests_by_id:
                    result[row.table_id].append(OccupantSeat(row.guest_id, row.seats_count))
            return result

        seats_by_key = {(r.table_id, r.guest_id): r.seats_count for r in real_rows}
        membership = SeatLedgerRepo._real_membership(tables, real_rows)
        result = {}
        for table_id, ids in membership.items():
            seats = []
            for gid in ids:
                guest = guests_by_id.get(gid)
                if guest is None:
                    continue
                if (table_id, gid) in seats_by_key:
                    seats.append(OccupantSeat(gid, seats_by_key[(table_id, gid)]))
                else:
                    seats.append(OccupantSeat(gid, SeatLedgerRepo.fallback_seats(guest, track), False))
            result[table_id] = seats
        return result

    @staticmethod
    def used_table_ids(db: Session, event_id: int, track: str, tables: Optional[Sequence[Table]] = None) -> Set[int]:
        """Tables that seat anyone on a track (the real track also counts cached occupants)"""
        used = {row.table_id for row in SeatLedgerRepo.list_rows(db, event_id, track)}
        if track == TRACK_REAL:
            if tables is None:
                tables = TableRepo.list_for_event(db, event_id)
            used.update(t.id for t in tables if collapse_occupants(t.occupants))
        return used

    @staticmethod
    def _real_membership(tables: Sequence[Table], real_rows: Sequence[SeatAssignment]) -> Dict[int, List[int]]:
        membership = {t.id: collapse_occupants(t.occupants) for t in tables}
        for row in real_rows:
            ids = membership.get(row.table_id)
            if ids is not None and row.guest_id not in ids:
                ids.append(row.guest_id)
        return membership


# -------- Adjacency repository --------

class AdjacencyRepo:
    @staticmethod
    def directed_edges(db: Session, event_id: int) -> List[Tuple[int, int]]:
        rows = (
            db.query(TableAdjacency)
            .filter(TableAdjacency.event_id == event_id)
            .order_by(TableAdjacency.table_id, TableAdjacency.adjacent_table_id)
            .all()
        )
        return [(r.table_id, r.adjacent_table_id) for r in rows]

    @staticmethod
    def pairs(db: Session, event_id: int) -> List[Tuple[int, int]]:
        """Each undirected edge once, lower table id first"""
        return sorted({
            (min(a, b), max(a, b)) for a, b in AdjacencyRepo.directed_edges(db, event_id)
        })

    @staticmethod
    def link(db: Session, event_id: int, table_id: int, adjacent_table_id: int) -> bool:
        """Store both directions of an edge; False when it already existed"""
        created = False
        for a, b in ((table_id, adjacent_table_id), (adjacent_table_id, table_id)):
            exists = db.query(TableAdjacency).filter(
                TableAdjacency.event_id == event_id,
                TableAdjacency.table_id == a,
                TableAdjacency.adjacent_table_id == b,
            ).first()
            if not exists:
                db.add(TableAdjacency(event_id=event_id, table_id=a, adjacent_table_id=b))
                created = True
        db.commit()
        return created

    @staticmethod
    def unlink(db: Session, event_id: int, table_id: int, adjacent_table_id: int) -> int:
        deleted = db.query(TableAdjacency).filter(
            TableAdjacency.event_id == event_id,
            or_(
                (TableAdjacency.table_id == table_id) & (TableAdjacency.adjacent_table_id == adjacent_table_id),
                (TableAdjacency.table_id == adjacent_table_id) & (TableAdjacency.adjacent_table_id == table_id),
            ),
        ).delete(synchronize_session=False)
        db.commit()
        return deleted

    @staticmethod
    def delete_for_tables(db: Session, event_id: int, table_ids: Sequence[int]) -> int:
        if not table_ids:
            return 0
        return db.query(TableAdjacency).filter(
            TableAdjacency.event_id == event_id,
            or_(
                TableAdjacency.table_id.in_(table_ids),
                TableAdjacency.adjacent_table_id.in_(table_ids),
            ),
        ).delete(synchronize_session=False)


# -------- Group priority repository --------

class PriorityRepo:
    @staticmethod
    def list_ranked(db: Session, event_id: int) -> List[GroupPriority]:
        return (
            db.query(GroupPriority)
            .filter(GroupPriority.event_id == event_id, GroupPriority.priority > 0)
            .order_by(GroupPriority.priority, GroupPriority.group_name)
            .all()
        )

    @staticmethod
    def by_group(db: Session, event_id: int) -> Dict[str, int]:
        return {row.group_name: row.priority for row in PriorityRepo.list_ranked(db, event_id)}

    @staticmethod
    def set_priority(db: Session, event_id: int, group_name: str, priority: int) -> GroupPriority:
        """Assign a priority; the previous holder of a nonzero priority drops to 0"""
        try:
            if priority > 0:
                holders = db.query(GroupPriority).filter(
                    GroupPriority.event_id == event_id,
                    GroupPriority.priority == priority,
                    GroupPriority.group_name != group_name,
                ).all()
                for holder in holders:
                    logger.info(
                        f"Priority {priority} moves from {holder.group_name} to {group_name} "
                        f"in event {event_id}"
                    )
                    holder.priority = 0
                db.flush()

            row = db.query(GroupPriority).filter(
                GroupPriority.event_id == event_id,
                GroupPriority.group_name == group_name,
            ).first()
            if row is None:
                row = GroupPriority(event_id=event_id, group_name=group_name, priority=priority)
                db.add(row)
            else:
                row.priority = priority
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(row)
        return row


# -------- Seating preferences --------

class PreferenceRepo:
    @staticmethod
    def list_for_event(db: Session, event_id: int) -> List[SeatingPreference]:
        return (
            db.query(SeatingPreference)
            .filter(SeatingPreference.event_id == event_id)
            .order_by(SeatingPreference.id)
            .all()
        )

    @staticmethod
    def list_enabled(db: Session, event_id: int) -> List[SeatingPreference]:
        return [p for p in PreferenceRepo.list_for_event(db, event_id) if p.enabled]

    @staticmethod
    def get(db: Session, event_id: int, preference_id: int) -> Optional[SeatingPreference]:
        return db.query(SeatingPreference).filter(
            SeatingPreference.event_id == event_id,
            SeatingPreference.id == preference_id,
        ).first()

    @staticmethod
    def create(db: Session, event_id: int, data: dict) -> SeatingPreference:
        row = SeatingPreference(event_id=event_id, **data)
        db.add(row)
        db.commit()
        db.refresh(row)
        return row

    @staticmethod
    def delete(db: Session, row: SeatingPreference) -> None:
        db.delete(row)
        db.commit()
