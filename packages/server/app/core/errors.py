"""
Error catalog and exception handlers.

Every error the API returns has a stable machine-readable code and is
rendered with the same envelope:

    {"error": {"code": "MEMBERSHIP_NOT_FOUND", "message": "...", "status": 404}}
"""

from __future__ import annotations

from typing import NamedTuple

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

log = structlog.get_logger()


class ErrorEntry(NamedTuple):
    code: str
    status: int
    message: str


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

ORGANIZATION_NOT_FOUND = ErrorEntry(
    "ORGANIZATION_NOT_FOUND", 404, "Organization not found."
)
MEMBERSHIP_NOT_FOUND = ErrorEntry(
    "MEMBERSHIP_NOT_FOUND", 404, "Membership not found."
)
UNAUTHORIZED_RESOURCE = ErrorEntry(
    "UNAUTHORIZED_RESOURCE", 401, "You do not have access to this resource."
)
AUTHENTICATION_REQUIRED = ErrorEntry(
    "AUTHENTICATION_REQUIRED", 401, "Authentication required."
)
CANNOT_DELETE_SOLE_MEMBER = ErrorEntry(
    "CANNOT_DELETE_SOLE_MEMBER", 400, "Cannot delete the sole member of an organization."
)
CANNOT_DELETE_SOLE_OWNER = ErrorEntry(
    "CANNOT_DELETE_SOLE_OWNER", 400, "Cannot delete the sole owner of an organization."
)
CANNOT_UPDATE_ROLE_SOLE_OWNER = ErrorEntry(
    "CANNOT_UPDATE_ROLE_SOLE_OWNER", 400, "Cannot demote the sole owner of an organization."
)
MEMBERSHIP_ALREADY_EXISTS = ErrorEntry(
    "MEMBERSHIP_ALREADY_EXISTS", 409, "User is already a member of this organization."
)
BAD_INPUT = ErrorEntry("BAD_INPUT", 422, "Request validation failed.")
DATABASE_UNAVAILABLE = ErrorEntry("DATABASE_UNAVAILABLE", 503, "Database unavailable.")


class APIError(HTTPException):
    """An HTTPException carrying a catalog code."""

    def __init__(self, entry: ErrorEntry):
        super().__init__(status_code=entry.status, detail=entry.message)
        self.code = entry.code

    def __repr__(self) -> str:
        return f"APIError({self.code!r}, status={self.status_code})"


def error_body(code: str, message: str, status: int, **extra) -> dict:
    body = {"code": code, "message": message, "status": status}
    body.update(extra)
    return {"error": body}


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

def register_error_handlers(app: FastAPI) -> None:
    """Render catalog errors, request validation errors and bare HTTPExceptions."""

    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError):
        log.info(
            "request.rejected",
            code=exc.code,
            status=exc.status_code,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.code, exc.detail, exc.status_code),
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        fields = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
            for err in exc.errors()
        ]
        log.info("request.invalid", path=request.url.path, fields=fields)
        return JSONResponse(
            status_code=BAD_INPUT.status,
            content=error_body(BAD_INPUT.code, BAD_INPUT.message, BAD_INPUT.status, fields=fields),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(f"HTTP_{exc.status_code}", str(exc.detail), exc.status_code),
            headers=exc.headers,
        )
