"""
Error taxonomy for the assistant core

Every rejection or upstream failure is an AssistantError carrying a stable
reason code, an HTTP status and diagnostic details (tool name, field, id).
main.py renders them as {"error": {"code", "message", "details"}}.

Caller-correctable classes (request shape, context, tool-call validation,
safety, confirmation) are never retried. Upstream classes map to 5xx/408.
"""
from typing import Any, Dict


class AssistantError(Exception):
    """Base class for all errors surfaced to the caller"""

    code = "InternalError"
    status_code = 500
    upstream = False

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = {k: v for k, v in details.items() if v is not None}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, details={self.details!r})"


# Class 1: request shape
class InvalidRequestError(AssistantError):
    code = "InvalidRequest"
    status_code = 400


class RateLimitedError(AssistantError):
    code = "RateLimited"
    status_code = 429


# Class 2: context
class InvalidContextError(AssistantError):
    code = "InvalidContext"
    status_code = 400


# Class 3: tool-call validation
class UnknownToolError(AssistantError):
    code = "UnknownTool"
    status_code = 422


class MalformedArgumentsError(AssistantError):
    code = "MalformedArguments"
    status_code = 422


class InvalidArgumentsError(AssistantError):
    code = "InvalidArguments"
    status_code = 422


# Class 4: safety
class UnverifiedReferenceError(AssistantError):
    code = "UnverifiedReference"
    status_code = 422


# Class 5: confirmation
class ConfirmationMismatchError(AssistantError):
    code = "ConfirmationMismatch"
    status_code = 422


# Class 6: upstream
class UpstreamTimeoutError(AssistantError):
    code = "UpstreamTimeout"
    status_code = 504
    upstream = True


class UpstreamUnavailableError(AssistantError):
    code = "UpstreamUnavailable"
    status_code = 503
    upstream = True


class ToolTimeoutError(AssistantError):
    code = "ToolTimeout"
    status_code = 504
    upstream = True


class ToolContractViolationError(AssistantError):
    code = "ToolContractViolation"
    status_code = 502
    upstream = True


class RequestTimeoutError(AssistantError):
    code = "RequestTimeout"
    status_code = 408
    upstream = True
