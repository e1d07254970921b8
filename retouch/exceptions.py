import logging

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class RetouchError(Exception):
    """Base for every failure that is reported to callers with a machine-readable kind."""

    kind = "internal_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class MissingArtifact(RetouchError):
    kind = "missing_artifact"
    status_code = 404


class EncodeFailure(RetouchError):
    kind = "encode_failure"
    status_code = 502


class ToolUnavailable(RetouchError):
    kind = "tool_unavailable"
    status_code = 503


class InvalidIndex(RetouchError):
    kind = "invalid_index"
    status_code = 400


class InvalidRequest(RetouchError):
    kind = "invalid_request"
    status_code = 400


class ArtifactBusy(RetouchError):
    kind = "artifact_busy"
    status_code = 409


class EditFailure(RetouchError):
    kind = "edit_failure"
    status_code = 502


class MetadataWriteFailure(RetouchError):
    kind = "metadata_write_failure"
    status_code = 422


class MetadataCopyFailure:
    """Non-fatal warning attached to an otherwise successful result."""

    kind = "metadata_copy_failure"

    def __init__(self, message: str):
        self.message = message

    def __repr__(self) -> str:
        return f"MetadataCopyFailure({self.message!r})"


def create_error_response(kind: str, message: str) -> dict:
    """Create a standardized error response"""
    return {
        "success": False,
        "data": None,
        "error": {"kind": kind, "message": message},
    }


async def retouch_exception_handler(request: Request, exc: RetouchError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc.kind} on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.kind} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(exc.kind, exc.message),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Custom exception handler for HTTPException"""
    kind = "not_found" if exc.status_code == 404 else "http_error"
    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(kind, str(exc.detail)),
    )
