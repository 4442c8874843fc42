"""
Shared error handling for permissions-gate.

Runtime data problems (a failing rule, an unknown check, a missing rule)
never raise; they are folded into the evaluation trace. The exceptions
below are reserved for structural misuse of the library.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = {}


class PermissionsGateException(Exception):
    """Base exception for permissions-gate."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class PermissionsContextError(PermissionsGateException):
    """Evaluation requested with no provider established in the current context."""

    def __init__(self, message: str = "No permissions provider is active", details: Optional[Dict[str, Any]] = None):
        super().__init__("MISSING_CONTEXT", message, details)


class ConfigurationError(PermissionsGateException):
    """Invalid construction parameters."""

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)
