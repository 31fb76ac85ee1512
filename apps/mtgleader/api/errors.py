"""
Exception handlers translating domain errors to JSON responses.

Every error body has the shape ``{"error": {"code", "message", "fields"?}}``.
"""

import logging
from typing import Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from mtgleader.services import errors

logger = logging.getLogger(__name__)

STATUS_BY_ERROR = {
    errors.ValidationError: 400,
    errors.ResetTokenInvalidError: 400,
    errors.ResetTokenExpiredError: 400,
    errors.InvalidCredentialsError: 401,
    errors.UnauthorizedError: 401,
    errors.ForbiddenError: 403,
    errors.UserDisabledError: 403,
    errors.NotFoundError: 404,
    errors.FriendshipExistsError: 409,
    errors.UsernameTakenError: 409,
    errors.EmailTakenError: 409,
}


def error_response(
    status_code: int, code: str, message: str, fields: Optional[Dict[str, str]] = None
) -> JSONResponse:
    body = {"code": code, "message": message}
    if fields:
        body["fields"] = fields
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(status_code=status_code, content={"error": body}, headers=headers)


def status_for(exc: errors.DomainError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[cls]
    return 500


async def domain_error_handler(request: Request, exc: errors.DomainError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code == 500:
        logger.error(f"Unhandled domain error on {request.method} {request.url.path}: {exc}")
        return error_response(500, "internal", "internal error")
    fields = exc.fields if isinstance(exc, errors.ValidationError) else None
    return error_response(status_code, exc.code, exc.message, fields)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies and params as field-level 400s."""
    fields = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        fields[".".join(loc) or "body"] = err.get("msg", "invalid")
    return error_response(400, errors.ValidationError.code, "validation failed", fields)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return error_response(500, "internal", "internal error")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(errors.DomainError, domain_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
