"""
Persistence of placement plans.

The seat ledger (``SeatAssignment``) is the only place placements are written.
``Table.occupants`` and the guests' table fields are derived from the real
track of the ledger after every write.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import NoSimulationDataError
from app.models import Guest, SeatAssignment, Table
from app.models.seat_assignment import TRACK_REAL, TRACK_SIMULATION
from app.schemas.seating import OccupantInfo, TableWithOccupants
from app.services.packing import PlacementPlan
from app.services.repositories import (
    AdjacencyRepo,
    EventRepo,
    GuestRepo,
    SeatLedgerRepo,
    TableRepo,
    collapse_occupants,
)

logger = logging.getLogger(__name__)


@dataclass
class ApplyResult:
    created: List[int] = field(default_factory=list)
    reused: List[int] = field(default_factory=list)
    deleted: List[int] = field(default_factory=list)


def auto_table_name(number: int) -> str:
    return f"{settings.AUTO_TABLE_NAME_PREFIX} {number}"


def _other_track(track: str) -> str:
    return TRACK_SIMULATION if track == TRACK_REAL else TRACK_REAL


class AssignmentStore:
    """Writes plans to the ledger and keeps derived fields in sync"""

    @staticmethod
    def apply_plan(db: Session, event_id: int, plan: PlacementPlan, track: str) -> ApplyResult:
        """Replace every ledger row of ``track`` with the plan, in one transaction"""
        result = ApplyResult()
        try:
            tables = TableRepo.list_for_event(db, event_id)
            tables_by_number = {t.table_number: t for t in tables}
            shared = SeatLedgerRepo.used_table_ids(db, event_id, _other_track(track), tables=tables)

            for number, planned in plan.tables.items():
                if not planned.created:
                    continue
                existing = tables_by_number.get(number)
                if existing is not None and existing.is_auto and not existing.locked:
                    if existing.id in shared:
                        # Still seats people on the other track; keep its shape
                        logger.warning(
                            f"Table {number} of event {event_id} is in use on the other track; "
                            f"not resizing it for the {track} plan"
                        )
                    else:
                        existing.capacity = planned.capacity
                        existing.table_type = planned.table_type
                    result.reused.append(number)
                    continue
                table = Table(
                    event_id=event_id,
                    table_number=number,
                    table_name=auto_table_name(number),
                    capacity=planned.capacity,
                    table_type=planned.table_type,
                    mode="auto",
                    locked=False,
                    occupants=[],
                )
                db.add(table)
                tables_by_number[number] = table
                result.created.append(number)
            db.flush()

            SeatLedgerRepo.delete_track(db, event_id, track)
            for placement in plan.placements:
                db.add(SeatAssignment(
                    event_id=event_id,
                    table_id=tables_by_number[placement.table_number].id,
                    guest_id=placement.guest_id,
                    seats_count=placement.seats,
                    track=track,
                ))
            db.flush()

            if track == TRACK_REAL:
                AssignmentStore._rebuild_real_cache(db, event_id, keep_locked=True)

            result.deleted = AssignmentStore._prune_empty_auto_tables(db, event_id)
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(
            f"Applied {track} plan for event {event_id}: {len(plan.placements)} seats, "
            f"created {result.created}, reused {result.reused}, deleted {result.deleted}"
        )
        return result

    @staticmethod
    def promote(db: Session, event_id: int) -> int:
        """Copy the simulation track over the real track"""
        EventRepo.require(db, event_id)
        rows = SeatLedgerRepo.list_rows(db, event_id, TRACK_SIMULATION)
        if not rows:
            raise NoSimulationDataError()

        try:
            SeatLedgerRepo.delete_track(db, event_id, TRACK_REAL)
            for row in rows:
                db.add(SeatAssignment(
                    event_id=event_id,
                    table_id=row.table_id,
                    guest_id=row.guest_id,
                    seats_count=row.seats_count,
                    track=TRACK_REAL,
                ))
            db.flush()
            AssignmentStore._rebuild_real_cache(db, event_id, keep_locked=False)
            deleted = AssignmentStore._prune_empty_auto_tables(db, event_id)
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(
            f"Promoted {len(rows)} simulation seats to real for event {event_id}; "
            f"removed empty tables {deleted}"
        )
        return len(rows)

    @staticmethod
    def get_assignments(db: Session, event_id: int, track: str) -> List[TableWithOccupants]:
        EventRepo.require(db, event_id)
        tables = TableRepo.list_for_event(db, event_id)
        guests = GuestRepo.list_for_event(db, event_id)
        guests_by_id = {g.id: g for g in guests}
        occupancy = SeatLedgerRepo.occupancy(db, event_id, track, tables=tables, guests=guests)
        shared = SeatLedgerRepo.used_table_ids(db, event_id, _other_track(track), tables=tables)

        result = []
        for table in tables:
            seats = occupancy.get(table.id, [])
            # Engine tables only the other track sits at are not part of this view
            if not seats and table.is_auto and not table.locked and table.id in shared:
                continue
            occupants = [
                OccupantInfo(
                    guest_id=seat.guest_id,
                    name=guests_by_id[seat.guest_id].name,
                    family_group=guests_by_id[seat.guest_id].family_group,
                    rsvp_status=guests_by_id[seat.guest_id].rsvp_status,
                    seats=seat.seats,
                )
                for seat in seats
            ]
            occupied = sum(o.seats for o in occupants)
            result.append(TableWithOccupants(
                table_id=table.id,
                table_number=table.table_number,
                table_name=table.table_name,
                capacity=table.capacity,
                table_type=table.table_type,
                mode=table.mode,
                locked=bool(table.locked),
                zone=table.zone,
                occupants=occupants,
                occupied_seats=occupied,
                free_seats=max(0, table.capacity - occupied),
                over_capacity=occupied > table.capacity,
            ))
        return result

    @staticmethod
    def purge_auto_seating(db: Session, event_id: int, commit: bool = True) -> Dict[str, int]:
        """Drop everything the engine produced for an event going back to manual.

        With ``commit=False`` the purge joins the caller's transaction.
        """
        try:
            tables = TableRepo.list_for_event(db, event_id)
            auto_ids = [t.id for t in tables if t.is_auto]

            rows_deleted = (
                db.query(SeatAssignment)
                .filter(SeatAssignment.event_id == event_id)
                .delete(synchronize_session=False)
            )
            AdjacencyRepo.delete_for_tables(db, event_id, auto_ids)

            for guest in GuestRepo.list_for_event(db, event_id):
                if guest.locked_table_id in auto_ids:
                    guest.locked_table_id = None
                    guest.locked_seat = False
                guest.table_number = None
                guest.table_assignment = None
            db.flush()

            for table in tables:
                if table.is_auto:
                    db.delete(table)
                else:
                    table.occupants = []
            if commit:
                db.commit()
            else:
                db.flush()
        except Exception:
            db.rollback()
            raise

        logger.info(
            f"Purged automatic seating for event {event_id}: "
            f"{rows_deleted} ledger rows, {len(auto_ids)} auto tables"
        )
        return {"ledger_rows_deleted": rows_deleted, "tables_deleted": len(auto_ids)}

    # ----- internals -----

    @staticmethod
    def _rebuild_real_cache(db: Session, event_id: int, keep_locked: bool) -> None:
        tables = TableRepo.list_for_event(db, event_id)
        tables_by_id = {t.id: t for t in tables}

        seated: Dict[int, List[int]] = {t.id: [] for t in tables}
        tables_by_guest: Dict[int, Table] = {}
        for row in SeatLedgerRepo.list_rows(db, event_id, TRACK_REAL):
            if row.table_id not in seated:
                continue
            seated[row.table_id].append(row.guest_id)
            tables_by_guest.setdefault(row.guest_id, tables_by_id[row.table_id])

        for table in tables:
            ids = sorted(seated[table.id])
            if keep_locked and table.locked:
                ids = collapse_occupants(list(table.occupants or []) + ids)
            # JSON columns are only flushed on reassignment
            table.occupants = ids
            for guest_id in ids:
                tables_by_guest.setdefault(guest_id, table)

        GuestRepo.sync_table_fields(db, event_id, tables_by_guest)
        db.flush()

    @staticmethod
    def _prune_empty_auto_tables(db: Session, event_id: int) -> List[int]:
        used_ids = {
            table_id for (table_id,) in
            db.query(SeatAssignment.table_id).filter(SeatAssignment.event_id == event_id).distinct()
        }
        lock_ids = {
            table_id for (table_id,) in
            db.query(Guest.locked_table_id).filter(
                Guest.event_id == event_id, Guest.locked_table_id.isnot(None)
            ).distinct()
        }

        deleted = []
        for table in TableRepo.list_for_event(db, event_id):
            if not table.is_auto or table.locked:
                continue
            if table.id in used_ids or table.id in lock_ids or collapse_occupants(table.occupants):
                continue
            AdjacencyRepo.delete_for_tables(db, event_id, [table.id])
            db.delete(table)
            deleted.append(table.table_number)
        db.flush()
        return deleted
