"""
API Exceptions and Error Handlers.
"""
import logging

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from typing import Optional, Any

from storyframe.services.models import PipelineResult

from .schemas import PipelineResponse

logger = logging.getLogger(__name__)

# Pipeline error code -> HTTP status
STATUS_BY_CODE = {
    "VALIDATION_FAILED": status.HTTP_400_BAD_REQUEST,
    "GENERATION_FAILED": status.HTTP_400_BAD_REQUEST,
    "TASK_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "MISSING_EXTERNAL_REFERENCE": status.HTTP_409_CONFLICT,
    "UPSTREAM_TRANSIENT": status.HTTP_502_BAD_GATEWAY,
    "UPSTREAM_PERMANENT": status.HTTP_502_BAD_GATEWAY,
    "PARSE_FAILED": status.HTTP_502_BAD_GATEWAY,
}


class APIError(Exception):
    """Base API exception."""

    def __init__(
        self,
        message: str,
        code: str = "API_ERROR",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        data: Optional[Any] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.data = data
        super().__init__(message)

    def to_response(self) -> PipelineResponse:
        return PipelineResponse(
            success=False,
            data=self.data,
            message=self.message,
            error_code=self.code,
        )


class PipelineFailure(APIError):
    """A failed PipelineResult, mapped to its HTTP status."""

    def __init__(self, result: PipelineResult):
        code = result.error_code or "INTERNAL_ERROR"
        super().__init__(
            message=result.message,
            code=code,
            status_code=STATUS_BY_CODE.get(code, status.HTTP_500_INTERNAL_SERVER_ERROR),
            data=result.data,
        )


class NotFoundError(APIError):
    """404 - Resource Not Found."""

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            message=f"{resource} not found: {resource_id}",
            code="NOT_FOUND",
            status_code=status.HTTP_404_NOT_FOUND,
        )


def to_response(result: PipelineResult) -> PipelineResponse:
    """Return the envelope for a successful result, raise PipelineFailure otherwise."""
    if not result.success:
        raise PipelineFailure(result)
    return PipelineResponse(**result.to_dict())


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    """Handle APIError exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump(mode="json"),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies use the same envelope as pipeline validation errors."""
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{location}: {first.get('msg', 'invalid request')}" if location else first.get("msg", "invalid request")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=PipelineResponse(success=False, message=message, error_code="VALIDATION_FAILED").model_dump(),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.exception(f"Unhandled error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=PipelineResponse(
            success=False,
            message=str(exc) if request.app.debug else "Internal server error",
            error_code="INTERNAL_ERROR",
        ).model_dump(),
    )
