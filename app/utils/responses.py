"""
Standardized response utilities
"""

import logging
from typing import Any, Optional
from fastapi import HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from app.core.errors import AdmissionError
from app.schemas.common import StandardResponse, ErrorResponse

logger = logging.getLogger(__name__)

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
        content=jsonable_encoder(response),
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
        content=jsonable_encoder(response),
        status_code=status_code
    )

async def admission_error_handler(request: Request, exc: AdmissionError) -> JSONResponse:
    """Render domain errors; credential failures only ever show the generic message"""
    logger.info(f"{request.method} {request.url.path}: {exc.error_code}: {exc.message}")
    details = None if exc.public_message else exc.details
    return error_response(
        message=exc.client_message(),
        error_code=exc.client_error_code(),
        details=details,
        status_code=exc.client_status_code()
    )

def not_found_error(resource: str = "Resource"):
    """Create not found error"""
    raise HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"{resource} not found"
    )

def rate_limit_error():
    """Create rate limit error"""
    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Rate limit exceeded. Please try again later."
    )
