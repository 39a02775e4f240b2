"""
HTTP rendering of domain errors.
"""

import logging
from typing import Dict, List, Optional, Type

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from fieldshare.core.exceptions import (
    FieldNotFound, FieldShareError, GeometryError, InvalidTransition, OverlapConflict,
    PermissionNotFoundOrUnauthorized, PermissionRequestError, ServiceProviderAccessNotFoundOrUnauthorized,
    UserAlreadyExists,
)

logger = logging.getLogger(__name__)

STATUS_CODES: Dict[Type[FieldShareError], int] = {
    GeometryError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    OverlapConflict: status.HTTP_409_CONFLICT,
    FieldNotFound: status.HTTP_404_NOT_FOUND,
    PermissionNotFoundOrUnauthorized: status.HTTP_404_NOT_FOUND,
    ServiceProviderAccessNotFoundOrUnauthorized: status.HTTP_404_NOT_FOUND,
    InvalidTransition: status.HTTP_409_CONFLICT,
    PermissionRequestError: status.HTTP_400_BAD_REQUEST,
    UserAlreadyExists: status.HTTP_409_CONFLICT,
}


class ErrorResponse(BaseModel):
    code: str
    message: str
    overlapping_fields: Optional[List[str]] = None


def status_code_for(exc: FieldShareError) -> int:
    for exc_type in type(exc).__mro__:
        if exc_type in STATUS_CODES:
            return STATUS_CODES[exc_type]
    return status.HTTP_400_BAD_REQUEST


async def fieldshare_error_handler(request: Request, exc: FieldShareError) -> JSONResponse:
    """Handle FieldShareError exceptions."""
    response = ErrorResponse(code=exc.code, message=exc.message)
    if isinstance(exc, OverlapConflict):
        response.overlapping_fields = exc.field_names

    status_code = status_code_for(exc)
    logger.info(f"{request.method} {request.url.path} -> {status_code} {exc.code}")
    return JSONResponse(status_code=status_code, content=response.model_dump(exclude_none=True))


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application."""
    app.add_exception_handler(FieldShareError, fieldshare_error_handler)
