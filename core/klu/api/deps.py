"""Shared helpers for API routes."""

from fastapi import HTTPException, Request

from klu.engine.runtime import KluRuntime
from klu.errors import (
    AlreadyGenerating,
    KluError,
    LoadFailed,
    ModelNotFound,
    TooManyToolCalls,
)

STATUS_CODES: dict[type[KluError], int] = {
    AlreadyGenerating: 409,
    ModelNotFound: 404,
    LoadFailed: 503,
    TooManyToolCalls: 422,
}


def get_runtime(request: Request) -> KluRuntime:
    """The runtime created by the application lifespan."""
    return request.app.state.runtime


def http_error(error: KluError) -> HTTPException:
    """Map a runtime error to an HTTP error response."""
    for error_type, status_code in STATUS_CODES.items():
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))
