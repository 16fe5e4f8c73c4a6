"""
ringside/errors.py
Centralized HTTP error handling.

ERROR RESPONSE STRUCTURE:
{
    "success": false,
    "error": "ErrorType",
    "message": "Human-readable description",
    "code": "UNIQUE_ERROR_CODE",
    "details": {} (optional)
}

HTTP STATUS CODE DISCIPLINE:
- 400: Invalid input / unsupported period kind for the entity type
- 403: Feature disabled
- 404: Entity does not exist
- 409: Lifecycle rule violated (transition, overlap, range, missing open period)
- 422: Validation error (Pydantic)
- 500: Internal only, never caused by user input
"""
import uuid
from typing import Optional, Dict, Any
from fastapi import HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ringside.exceptions import LifecycleError, InvalidTransitionError


class ErrorCode:
    """Unique error codes for machine-readable error handling"""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"

    FEATURE_DISABLED = "FEATURE_DISABLED"

    NOT_FOUND = "NOT_FOUND"
    ENTITY_NOT_FOUND = "ENTITY_NOT_FOUND"

    INVALID_TRANSITION = "INVALID_TRANSITION"
    OVERLAPPING_PERIOD = "OVERLAPPING_PERIOD"
    NO_OPEN_PERIOD = "NO_OPEN_PERIOD"
    INVALID_RANGE = "INVALID_RANGE"
    UNSUPPORTED_KIND = "UNSUPPORTED_KIND"

    INTERNAL_ERROR = "INTERNAL_ERROR"


ERROR_NAMES = {
    400: "Bad Request",
    403: "Forbidden",
    404: "Not Found",
    409: "Conflict",
    422: "Validation Error",
    500: "Internal Error",
}


class ErrorResponse(BaseModel):
    """Standard error response model"""
    success: bool = False
    error: str
    message: str
    code: str
    details: Optional[Dict[str, Any]] = None


class APIError(Exception):
    """Base API exception with consistent structure"""

    def __init__(
        self,
        status_code: int,
        error: str,
        message: str,
        code: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.status_code = status_code
        self.error = error
        self.message = message
        self.code = code
        self.details = details
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        result = {
            "success": False,
            "error": self.error,
            "message": self.message,
            "code": self.code
        }
        if self.details:
            result["details"] = self.details
        return result

    def to_response(self) -> JSONResponse:
        """Convert to FastAPI JSONResponse"""
        return JSONResponse(status_code=self.status_code, content=self.to_dict())


def from_lifecycle_error(exc: LifecycleError) -> APIError:
    """Translate an engine exception into the envelope, keeping its code."""
    details: Dict[str, Any] = {}
    if exc.reason:
        details["reason"] = exc.reason
    if isinstance(exc, InvalidTransitionError):
        details["operation"] = exc.operation
    return APIError(
        status_code=exc.status_code,
        error=ERROR_NAMES.get(exc.status_code, "Conflict"),
        message=exc.message,
        code=exc.code,
        details=details or None
    )


def raise_bad_request(message: str, code: str = ErrorCode.INVALID_INPUT, details: Optional[Dict] = None):
    """Raise 400 Bad Request"""
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"success": False, "error": "Bad Request", "message": message, "code": code, "details": details}
    )


def raise_feature_disabled(flag_name: str):
    """Raise 403 when a feature flag switches a router off"""
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={
            "success": False,
            "error": "Forbidden",
            "message": f"Feature {flag_name} is disabled",
            "code": ErrorCode.FEATURE_DISABLED,
            "details": {"flag": flag_name}
        }
    )


def raise_not_found(resource: str, identifier: Any = None, code: str = ErrorCode.NOT_FOUND):
    """Raise 404 Not Found"""
    message = f"{resource} not found"
    if identifier is not None:
        message = f"{resource} with id '{identifier}' not found"
    raise HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={"success": False, "error": "Not Found", "message": message, "code": code}
    )


def new_log_id() -> str:
    return str(uuid.uuid4())[:8]

