"""
HTTP integration — ErrorCode → HTTP status mapping and FastAPI response builder.

    return build_fastapi_response(repository.find_by_id(issuance_id).map(record_to_dict))

Error bodies keep the `{"success": false, "error": ...}` envelope the public
endpoints use for every failure.
"""

from __future__ import annotations

from typing import Any, TypeVar

from fastapi.responses import JSONResponse

from cert_issuer.railway.failure import ErrorCode, FailureDescription
from cert_issuer.railway.result import Result

T = TypeVar("T")


class HttpStatusMapper:
    """Maps ErrorCode enum values to HTTP status codes."""

    _CODE_TO_STATUS: dict[ErrorCode, int] = {
        # Client errors (4xx)
        ErrorCode.MISSING_FIELD: 400,
        ErrorCode.INVALID_EMAIL: 400,
        ErrorCode.FORMAT_ERROR: 400,
        ErrorCode.NOT_FOUND: 404,
        ErrorCode.DUPLICATE_ISSUANCE: 409,
        # Server errors (5xx)
        ErrorCode.RENDER_ERROR: 500,
        ErrorCode.DATABASE_ERROR: 500,
        ErrorCode.CONFIGURATION_ERROR: 500,
        ErrorCode.UNKNOWN_ERROR: 500,
        ErrorCode.ACCESS_DENIED: 502,
        ErrorCode.UPLOAD_FAILED: 502,
        ErrorCode.NOTIFY_ERROR: 502,
        ErrorCode.NETWORK_UNREACHABLE: 503,
        ErrorCode.NOTIFY_TIMEOUT: 504,
    }

    @classmethod
    def map_error_code(cls, code: ErrorCode) -> int:
        return cls._CODE_TO_STATUS.get(code, 500)


def error_body(failure: FailureDescription) -> dict[str, Any]:
    """Standard error envelope for a failure."""
    return {
        "success": False,
        "error": failure.message,
        "error_code": failure.code.value,
        "timestamp": failure.timestamp.isoformat(),
    }


def build_fastapi_response(result: Result[T], success_status: int = 200) -> JSONResponse:
    """
    Build a JSONResponse from a Result.

    Success values are wrapped as `{"success": true, "data": value}`; the
    value must already be JSON-serializable.
    """
    return result.either(
        on_success=lambda value: JSONResponse(
            status_code=success_status,
            content={"success": True, "data": value},
        ),
        on_failure=lambda error: JSONResponse(
            status_code=HttpStatusMapper.map_error_code(error.code),
            content=error_body(error),
        ),
    )
