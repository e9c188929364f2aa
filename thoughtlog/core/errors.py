from __future__ import annotations

from typing import Any


class ThoughtlogError(Exception):
    """Base error for thoughtlog."""


class ProviderConfigError(ThoughtlogError):
    """Missing or invalid provider configuration."""


class NotFoundError(ThoughtlogError):
    """Lookup miss for an owned entity; never retried by the pipeline."""

    code = "NOT_FOUND"


class JobNotFoundError(NotFoundError):
    """Analysis job row does not exist."""

    code = "JOB_NOT_FOUND"


class ThoughtNotFoundError(NotFoundError):
    """Thought does not exist for the requesting owner."""

    code = "THOUGHT_NOT_FOUND"


class AIServiceError(ThoughtlogError):
    """AI service call failed; details are persisted with the job error."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details = details


class AITransportError(AIServiceError):
    """AI service answered with a non-2xx status."""


class AIResponseFormatError(AIServiceError):
    """AI service answered 2xx with a body that is not JSON."""


class AIApplicationError(AIServiceError):
    """AI service answered 2xx with an explicit success=false envelope."""


class AIOutputMissingError(AIServiceError):
    """AI result did not contain any recognizable text output."""


class AIOutputInvalidError(ThoughtlogError):
    """AI text output failed shape, grammar or range checks."""

    code = "AI_OUTPUT_INVALID"

    def __init__(self, reason: str, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.reason = reason
        self.details = {"code": self.code, "reason": reason, **(details or {})}


class AuthenticationError(ThoughtlogError):
    """Bearer token missing, malformed or failing verification."""

    code = "UNAUTHORIZED"
