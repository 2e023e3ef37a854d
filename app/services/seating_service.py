"""
Seating engine service
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.exceptions import (
    InvalidAdjacencyError,
    InvalidPreferenceError,
    NotFoundError,
    SeatingModeError,
)
from app.models.seat_assignment import TRACK_REAL
from app.models.seating_settings import MODE_MANUAL
from app.schemas.seating import (
    AdjacencyRequest,
    GroupPriorityItem,
    PlacementSummary,
    PublicTableSummary,
    SeatingPreferenceCreate,
    SeatingPreferenceResponse,
    SeatingSettingsResponse,
    SeatingSettingsUpdate,
    TableWithOccupants,
    ViolationInfo,
)
from app.services.assignment_store import AssignmentStore
from app.services.constraints import SCOPE_FULL, SCOPE_GROUP, build_snapshot
from app.services.packing import pack
from app.services.recalculation import RecalcScope, RecalcTrigger, coordinator, decide_scope
from app.services.repositories import (
    AdjacencyRepo,
    EventRepo,
    GuestRepo,
    PreferenceRepo,
    PriorityRepo,
    SeatLedgerRepo,
    SettingsRepo,
    TableRepo,
)

logger = logging.getLogger(__name__)

class SeatingService:
    """Service for automatic seating operations"""

    # ----- repacking -----

    @staticmethod
    def run_full_repack(db: Session, event_id: int, track: str = TRACK_REAL) -> PlacementSummary:
        """Rebuild the whole plan of one track"""
        EventRepo.require(db, event_id)
        with coordinator.exclusive(event_id):
            SeatingService._require_auto(db, event_id)
            return SeatingService._repack(db, event_id, track, SCOPE_FULL)

    @staticmethod
    def run_group_repack(
        db: Session,
        event_id: int,
        group_key: str,
        track: str = TRACK_REAL,
    ) -> PlacementSummary:
        """Re-seat one guest group, leaving everybody else where they are"""
        EventRepo.require(db, event_id)
        with coordinator.exclusive(event_id):
            SeatingService._require_auto(db, event_id)
            return SeatingService._repack(db, event_id, track, SCOPE_GROUP, group_key=group_key)

    @staticmethod
    def handle_guest_change(
        db: Session,
        event_id: int,
        trigger: RecalcTrigger,
        guest_id: Optional[int] = None,
        group_key: Optional[str] = None,
    ) -> Optional[PlacementSummary]:
        """React to a guest being added, removed or changing RSVP.

        Runs on the real track. For removals pass the group key: the guest row
        is usually gone already, and a removal known only by guest id raises
        ``NotFoundError``. Returns ``None`` when the event's mode and policy
        call for no change.
        """
        EventRepo.require(db, event_id)
        with coordinator.exclusive(event_id):
            row = SeatingService._current_settings(db, event_id)
            scope = decide_scope(RecalcTrigger(trigger), row.mode, row.auto_recalc_policy)
            logger.info(f"Guest change {trigger} in event {event_id}: scope {scope.value}")

            if scope == RecalcScope.NONE:
                return None
            if scope == RecalcScope.FULL:
                return SeatingService._repack(db, event_id, TRACK_REAL, SCOPE_FULL)

            if group_key is None:
                guest = GuestRepo.get(db, event_id, guest_id) if guest_id is not None else None
                if guest is None:
                    raise NotFoundError("Guest")
                group_key = guest.group_key
            return SeatingService._repack(
                db,
                event_id,
                TRACK_REAL,
                SCOPE_GROUP,
                group_key=group_key,
                require_group=trigger != RecalcTrigger.GUEST_REMOVED,
            )

    @staticmethod
    def _current_settings(db: Session, event_id: int):
        # Another session may have changed the mode while we waited for the lock
        row = SettingsRepo.get_or_create(db, event_id)
        db.refresh(row)
        return row

    @staticmethod
    def _require_auto(db: Session, event_id: int) -> None:
        if SeatingService._current_settings(db, event_id).mode == MODE_MANUAL:
            raise SeatingModeError()

    @staticmethod
    def _repack(
        db: Session,
        event_id: int,
        track: str,
        scope: str,
        group_key: Optional[str] = None,
        require_group: bool = True,
    ) -> PlacementSummary:
        with coordinator.recalculating(event_id):
            before = SeatingService._membership(db, event_id, track)
            snapshot = build_snapshot(db, event_id, track, scope, group_key, require_group)
            plan = pack(
                snapshot.groups,
                snapshot.tables,
                snapshot.rules,
                adjacency=snapshot.adjacency,
                conflicts=snapshot.conflicts,
                pinned=snapshot.pinned,
                reserved_numbers=snapshot.reserved_numbers,
            )
            applied = AssignmentStore.apply_plan(db, event_id, plan, track)
            after = SeatingService._membership(db, event_id, track)

        changed = {
            number for number in set(before) | set(after)
            if before.get(number) != after.get(number)
        }
        touched = changed | set(applied.created) | set(applied.deleted)

        summary = PlacementSummary(
            event_id=event_id,
            track=track,
            scope=scope,
            tables_touched=sorted(touched),
            tables_created=sorted(applied.created),
            tables_deleted=sorted(applied.deleted),
            groups_placed=sorted(plan.group_tables),
            groups_unplaced=plan.unplaced_groups,
            violations=[
                ViolationInfo(
                    kind=v.kind,
                    message=v.message,
                    table_number=v.table_number,
                    group_keys=list(v.group_keys),
                    load=v.load,
                    capacity=v.capacity,
                )
                for v in plan.violations
            ],
        )
        logger.info(
            f"{scope.capitalize()} repack of event {event_id} ({track}) touched "
            f"tables {summary.tables_touched}; {len(summary.violations)} warnings"
        )
        return summary

    @staticmethod
    def _membership(db: Session, event_id: int, track: str) -> Dict[int, List[int]]:
        tables = TableRepo.list_for_event(db, event_id)
        occupancy = SeatLedgerRepo.occupancy(db, event_id, track, tables=tables)
        return {
            t.table_number: sorted(seat.guest_id for seat in occupancy.get(t.id, []))
            for t in tables
        }

    # ----- tracks -----

    @staticmethod
    def get_assignments(db: Session, event_id: int, track: str = TRACK_REAL) -> List[TableWithOccupants]:
        return AssignmentStore.get_assignments(db, event_id, track)

    @staticmethod
    def promote_simulation_to_real(db: Session, event_id: int) -> Dict[str, int]:
        """Save the simulation as the real seating plan"""
        with coordinator.exclusive(event_id):
            moved = AssignmentStore.promote(db, event_id)
        return {"moved_count": moved}

    @staticmethod
    def get_public_seating(db: Session, public_code: str) -> List[PublicTableSummary]:
        """Real-track occupancy for the public event page, without names"""
        event = EventRepo.get_by_public_code(db, public_code)
        if not event:
            raise NotFoundError("Event")
        return [
            PublicTableSummary(
                table_number=t.table_number,
                table_name=t.table_name,
                capacity=t.capacity,
                occupied_seats=t.occupied_seats,
                guest_count=len(t.occupants),
            )
            for t in AssignmentStore.get_assignments(db, event.id, TRACK_REAL)
        ]

    # ----- settings -----

    @staticmethod
    def get_settings(db: Session, event_id: int) -> SeatingSettingsResponse:
        EventRepo.require(db, event_id)
        row = SettingsRepo.get_or_create(db, event_id)
        response = SeatingSettingsResponse.model_validate(row)
        response.state = coordinator.state(event_id, row.mode).value
        return response

    @staticmethod
    def update_settings(db: Session, event_id: int, update: SeatingSettingsUpdate) -> SeatingSettingsResponse:
        """Apply a partial settings update; switching to manual purges auto seating.

        The new mode and the purge are committed together under the event lock,
        so no recalculation can slip in between them.
        """
        EventRepo.require(db, event_id)
        with coordinator.exclusive(event_id):
            row = SeatingService._current_settings(db, event_id)
            previous_mode = row.mode
            try:
                for key, value in update.dict(exclude_unset=True).items():
                    if value is not None:
                        setattr(row, key, value)
                db.flush()
                coordinator.switch_mode(db, event_id, previous_mode, row.mode)
                db.commit()
            except Exception:
                db.rollback()
                raise
            db.refresh(row)

        return SeatingService.get_settings(db, event_id)

    # ----- group priorities -----

    @staticmethod
    def set_group_priority(db: Session, event_id: int, group_name: str, priority: int) -> GroupPriorityItem:
        EventRepo.require(db, event_id)
        row = PriorityRepo.set_priority(db, event_id, group_name, priority)
        return GroupPriorityItem.model_validate(row)

    @staticmethod
    def list_group_priorities(db: Session, event_id: int) -> List[GroupPriorityItem]:
        EventRepo.require(db, event_id)
        return [GroupPriorityItem.model_validate(row) for row in PriorityRepo.list_ranked(db, event_id)]

    # ----- adjacency -----

    @staticmethod
    def link_tables(db: Session, event_id: int, table_id: int, adjacent_table_id: int) -> bool:
        """Mark two tables as adjacent; False when they already were"""
        EventRepo.require(db, event_id)
        if table_id == adjacent_table_id:
            raise InvalidAdjacencyError("A table cannot be adjacent to itself")
        TableRepo.require(db, event_id, table_id)
        TableRepo.require(db, event_id, adjacent_table_id)
        return AdjacencyRepo.link(db, event_id, table_id, adjacent_table_id)

    @staticmethod
    def unlink_tables(db: Session, event_id: int, table_id: int, adjacent_table_id: int) -> bool:
        EventRepo.require(db, event_id)
        return AdjacencyRepo.unlink(db, event_id, table_id, adjacent_table_id) > 0

    @staticmethod
    def list_adjacency(db: Session, event_id: int) -> List[AdjacencyRequest]:
        EventRepo.require(db, event_id)
        return [
            AdjacencyRequest(table_id=a, adjacent_table_id=b)
            for a, b in AdjacencyRepo.pairs(db, event_id)
        ]

    # ----- seating preferences -----

    @staticmethod
    def add_preference(db: Session, event_id: int, data: SeatingPreferenceCreate) -> SeatingPreferenceResponse:
        EventRepo.require(db, event_id)
        if data.guest_a_id == data.guest_b_id:
            raise InvalidPreferenceError("A guest cannot have a seating preference with themselves")
        for guest_id in (data.guest_a_id, data.guest_b_id):
            if GuestRepo.get(db, event_id, guest_id) is None:
                raise NotFoundError("Guest")
        row = PreferenceRepo.create(db, event_id, data.dict())
        logger.info(
            f"Added {data.strength} {data.preference_type} preference between guests "
            f"{data.guest_a_id} and {data.guest_b_id} in event {event_id}"
        )
        return SeatingPreferenceResponse.model_validate(row)

    @staticmethod
    def list_preferences(db: Session, event_id: int) -> List[SeatingPreferenceResponse]:
        EventRepo.require(db, event_id)
        return [SeatingPreferenceResponse.model_validate(row) for row in PreferenceRepo.list_for_event(db, event_id)]

    @staticmethod
    def remove_preference(db: Session, event_id: int, preference_id: int) -> None:
        EventRepo.require(db, event_id)
        row = PreferenceRepo.get(db, event_id, preference_id)
        if row is None:
            raise NotFoundError("Seating preference")
        PreferenceRepo.delete(db, row)
