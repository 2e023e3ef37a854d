"""
Seating engine API routes
"""

from typing import Literal
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.db import get_db
from app.core.exceptions import SeatingError
from app.schemas.seating import (
    AdjacencyRequest,
    GroupPriorityItem,
    GuestChangeRequest,
    SeatingPreferenceCreate,
    SeatingSettingsUpdate,
)
from app.services.recalculation import RecalcTrigger
from app.services.seating_service import SeatingService
from app.api.ws import broadcast_seating_update
from app.utils.responses import success_response, seating_error_response

router = APIRouter()

TrackParam = Literal["real", "simulation"]

@router.get("/settings")
async def get_settings(event_id: int, db: Session = Depends(get_db)):
    """Get seating settings for an event"""
    try:
        data = SeatingService.get_settings(db, event_id)
    except SeatingError as e:
        return seating_error_response(e)
    return success_response(message="Seating settings retrieved", data=data.dict())

@router.put("/settings")
async def update_settings(
    event_id: int,
    update: SeatingSettingsUpdate,
    db: Session = Depends(get_db)
):
    """Update seating settings; switching to manual removes automatic seating"""
    try:
        data = SeatingService.update_settings(db, event_id, update)
    except SeatingError as e:
        return seating_error_response(e)

    await broadcast_seating_update(event_id, "settings_changed", data.dict())
    return success_response(message="Seating settings updated", data=data.dict())

@router.post("/repack")
async def run_full_repack(
    event_id: int,
    track: TrackParam = Query("real"),
    db: Session = Depends(get_db)
):
    """Rebuild the seating plan of a track"""
    try:
        summary = SeatingService.run_full_repack(db, event_id, track)
    except SeatingError as e:
        return seating_error_response(e)

    await broadcast_seating_update(event_id, "repacked", summary.dict())
    return success_response(message="Seating plan rebuilt", data=summary.dict())

@router.post("/groups/{group_key}/repack")
async def run_group_repack(
    event_id: int,
    group_key: str,
    track: TrackParam = Query("real"),
    db: Session = Depends(get_db)
):
    """Re-seat one guest group"""
    try:
        summary = SeatingService.run_group_repack(db, event_id, group_key, track)
    except SeatingError as e:
        return seating_error_response(e)

    await broadcast_seating_update(event_id, "group_repacked", summary.dict())
    return success_response(message=f"Group {group_key} re-seated", data=summary.dict())

@router.get("/assignments")
async def get_assignments(
    event_id: int,
    track: TrackParam = Query("real"),
    db: Session = Depends(get_db)
):
    """Tables with their occupants on a track"""
    try:
        tables = SeatingService.get_assignments(db, event_id, track)
    except SeatingError as e:
        return seating_error_response(e)
    return success_response(
        message="Seating assignments retrieved",
        data=[t.dict() for t in tables]
    )

@router.post("/promote")
async def promote_simulation(event_id: int, db: Session = Depends(get_db)):
    """Save the simulation as the real seating plan"""
    try:
        result = SeatingService.promote_simulation_to_real(db, event_id)
    except SeatingError as e:
        return seating_error_response(e)

    await broadcast_seating_update(event_id, "promoted", result)
    return success_response(message="Simulation saved as seating plan", data=result)

@router.post("/triggers")
async def guest_changed(
    event_id: int,
    change: GuestChangeRequest,
    db: Session = Depends(get_db)
):
    """Notify the engine about a guest change.

    Removals must carry the group key; the guest is already gone.
    """
    try:
        summary = SeatingService.handle_guest_change(
            db,
            event_id,
            RecalcTrigger(change.trigger),
            guest_id=change.guest_id,
            group_key=change.group_key,
        )
    except SeatingError as e:
        return seating_error_response(e)

    if summary is None:
        return success_response(message="No recalculation needed", data=None)

    await broadcast_seating_update(event_id, change.trigger, summary.dict())
    return success_response(message="Seating recalculated", data=summary.dict())

@router.get("/priorities")
async def list_priorities(event_id: int, db: Session = Depends(get_db)):
    """Ranked guest groups"""
    try:
        items = SeatingService.list_group_priorities(db, event_id)
    except SeatingError as e:
        return seating_error_response(e)
    return success_response(message="Group priorities retrieved", data=[i.dict() for i in items])

@router.put("/priorities")
async def set_priority(
    event_id: int,
    item: GroupPriorityItem,
    db: Session = Depends(get_db)
):
    """Set the placement priority of a group"""
    try:
        saved = SeatingService.set_group_priority(db, event_id, item.group_name, item.priority)
    except SeatingError as e:
        return seating_error_response(e)
    return success_response(message="Group priority saved", data=saved.dict())

@router.get("/adjacency")
async def list_adjacency(event_id: int, db: Session = Depends(get_db)):
    """Pairs of adjacent tables"""
    try:
        pairs = SeatingService.list_adjacency(db, event_id)
    except SeatingError as e:
        return seating_error_response(e)
    return success_response(message="Table adjacency retrieved", data=[p.dict() for p in pairs])

@router.post("/adjacency")
async def link_tables(
    event_id: int,
    pair: AdjacencyRequest,
    db: Session = Depends(get_db)
):
    """Mark two tables as adjacent"""
    try:
        created = SeatingService.link_tables(db, event_id, pair.table_id, pair.adjacent_table_id)
    except SeatingError as e:
        return seating_error_response(e)
    return success_response(
        message="Tables linked" if created else "Tables were already linked",
        data={**pair.dict(), "created": created},
        status_code=201 if created else 200
    )

@router.delete("/adjacency")
async def unlink_tables(
    event_id: int,
    table_id: int = Query(...),
    adjacent_table_id: int = Query(...),
    db: Session = Depends(get_db)
):
    """Remove the adjacency between two tables"""
    try:
        removed = SeatingService.unlink_tables(db, event_id, table_id, adjacent_table_id)
    except SeatingError as e:
        return seating_error_response(e)
    return success_response(
        message="Tables unlinked" if removed else "Tables were not linked",
        data={"table_id": table_id, "adjacent_table_id": adjacent_table_id, "removed": removed}
    )

@router.get("/preferences")
async def list_preferences(event_id: int, db: Session = Depends(get_db)):
    """Together/apart preferences between guests"""
    try:
        items = SeatingService.list_preferences(db, event_id)
    except SeatingError as e:
        return seating_error_response(e)
    return success_response(message="Seating preferences retrieved", data=[i.dict() for i in items])

@router.post("/preferences")
async def add_preference(
    event_id: int,
    preference: SeatingPreferenceCreate,
    db: Session = Depends(get_db)
):
    """Ask for two guests to sit together or apart; applied on the next repack"""
    try:
        saved = SeatingService.add_preference(db, event_id, preference)
    except SeatingError as e:
        return seating_error_response(e)
    return success_response(message="Seating preference saved", data=saved.dict(), status_code=201)

@router.delete("/preferences/{preference_id}")
async def remove_preference(event_id: int, preference_id: int, db: Session = Depends(get_db)):
    """Delete a seating preference"""
    try:
        SeatingService.remove_preference(db, event_id, preference_id)
    except SeatingError as e:
        return seating_error_response(e)
    return success_response(message="Seating preference removed", data={"id": preference_id})
