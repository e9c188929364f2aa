from __future__ import annotations

from typing import Any

from thoughtlog.apps.api.response import ErrorEnvelope


def _error_example(*, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "error": {"code": code, "message": message},
        "meta": {"request_id": "req_example", "api_version": "v1"},
    }
    if details:
        payload["error"]["details"] = details
    return payload


def _error_response(description: str, *, code: str, message: str, details: dict[str, Any] | None = None):
    return {
        "model": ErrorEnvelope,
        "description": description,
        "content": {"application/json": {"example": _error_example(code=code, message=message, details=details)}},
    }


DEFAULT_ERROR_RESPONSES: dict[int, dict[str, Any]] = {
    400: _error_response("Bad request", code="INVALID_CURSOR", message="Cursor is invalid or expired"),
    401: _error_response("Unauthorized", code="AUTH_UNAUTHORIZED", message="Missing Authorization Bearer token"),
    404: _error_response("Not found", code="THOUGHT_NOT_FOUND", message="Thought 42 not found"),
    422: _error_response(
        "Validation error",
        code="REQUEST_VALIDATION_ERROR",
        message="Validation error",
        details={"errors": [{"loc": ["query", "limit"], "msg": "Input should be a valid integer"}]},
    ),
    500: _error_response("Internal error", code="INTERNAL_ERROR", message="Internal server error"),
}
