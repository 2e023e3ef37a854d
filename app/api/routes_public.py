"""
Public API routes - no authentication required
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.db import get_db
from app.core.exceptions import SeatingError
from app.services.seating_service import SeatingService
from app.utils.responses import success_response, seating_error_response

router = APIRouter()

@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "ok"}

@router.get("/events/{public_code}/seating")
async def get_seating_summary(public_code: str, db: Session = Depends(get_db)):
    """Table occupancy of the saved seating plan"""
    try:
        tables = SeatingService.get_public_seating(db, public_code)
    except SeatingError as e:
        return seating_error_response(e)

    return success_response(
        message="Seating summary retrieved successfully",
        data={
            "tables": [t.dict() for t in tables],
            "total_tables": len(tables),
            "total_seated": sum(t.occupied_seats for t in tables),
        }
    )
