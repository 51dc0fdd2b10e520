"""Error handling utilities."""

from typing import Any, Optional


class OrchestratorError(Exception):
    """Base exception for the orchestration backend."""
    pass


class GatewayConnectionError(OrchestratorError, ConnectionError):
    """Gateway transport could not be opened or is not connected."""
    pass


class GatewayTimeoutError(OrchestratorError, TimeoutError):
    """Gateway RPC call received no response in time."""
    pass


class GatewayRPCError(OrchestratorError):
    """Gateway answered an RPC call with an error payload."""
    pass


class CodedError(OrchestratorError):
    """Error surfaced to synchronous callers with a stable code."""

    code: str = "ERROR"
    status_code: int = 400

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Structured rejection body."""
        body: dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class TaskValidationError(CodedError):
    """Malformed request, illegal transition or missing required data."""
    code = "VALIDATION_ERROR"
    status_code = 400


class TaskNotFoundError(CodedError):
    """Referenced task does not exist."""
    code = "TASK_NOT_FOUND"
    status_code = 404


class AuthorizationError(CodedError):
    """Actor is not allowed to perform the operation."""
    code = "Forbidden"
    status_code = 403


class SessionConflictError(CodedError):
    """Gateway session already linked to another active agent."""
    code = "SESSION_CONFLICT"
    status_code = 409


class DownstreamError(OrchestratorError):
    """Webhook or dispatch call failed."""
    pass


class SupabaseError(OrchestratorError):
    """Supabase operation error."""
    pass
