"""
Standardized response utilities
"""

import logging
from typing import Any, Optional
from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from app.core.exceptions import (
    InvalidAdjacencyError,
    InvalidPreferenceError,
    NoSimulationDataError,
    NotFoundError,
    OverCapacityError,
    SeatingError,
    SeatingModeError,
)
from app.schemas.common import StandardResponse, ErrorResponse

logger = logging.getLogger(__name__)

# Most specific classes first
SEATING_ERROR_STATUS = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (OverCapacityError, status.HTTP_409_CONFLICT),
    (SeatingModeError, status.HTTP_409_CONFLICT),
    (NoSimulationDataError, status.HTTP_400_BAD_REQUEST),
    (InvalidAdjacencyError, status.HTTP_400_BAD_REQUEST),
    (InvalidPreferenceError, status.HTTP_400_BAD_REQUEST),
)

def success_response(
    message: str,
    data: Any = None,
    status_code: int = 200
) -> JSONResponse:
    """Create standardized success response"""
    response = StandardResponse(
        success=True,
        message=message,
        data=jsonable_encoder(data)
    )
    return JSONResponse(
        content=response.dict(),
        status_code=status_code
    )

def error_response(
    message: str,
    error_code: Optional[str] = None,
    details: Any = None,
    status_code: int = 400
) -> JSONResponse:
    """Create standardized error response"""
    response = ErrorResponse(
        message=message,
        error_code=error_code,
        details=details
    )
    return JSONResponse(
        content=response.dict(),
        status_code=status_code
    )

def seating_error_response(exc: SeatingError) -> JSONResponse:
    """Map a seating engine exception to an error response"""
    status_code = status.HTTP_400_BAD_REQUEST
    for error_class, code in SEATING_ERROR_STATUS:
        if isinstance(exc, error_class):
            status_code = code
            break
    logger.warning(f"Seating request failed ({exc.error_code}): {exc.message}")
    return error_response(
        message=exc.message,
        error_code=exc.error_code,
        details=exc.details(),
        status_code=status_code
    )
