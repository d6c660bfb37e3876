"""Error codes and the protocol error response."""
from enum import Enum

from fastapi.responses import JSONResponse
from pydantic import BaseModel

from hero_wheel.config import settings


class ErrorCode(str, Enum):
    """Error codes returned in the error body."""

    INVALID_REQUEST = "INVALID_REQUEST"
    INVALID_HERO = "INVALID_HERO"
    INVALID_STYLE = "INVALID_STYLE"
    INVALID_IMAGE = "INVALID_IMAGE"
    WHEEL_DISABLED = "WHEEL_DISABLED"
    SPIN_IN_PROGRESS = "SPIN_IN_PROGRESS"
    GENERATION_IN_PROGRESS = "GENERATION_IN_PROGRESS"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    UPSTREAM_UNAVAILABLE = "UPSTREAM_UNAVAILABLE"
    UPSTREAM_INVALID_RESPONSE = "UPSTREAM_INVALID_RESPONSE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


ERROR_HTTP_STATUS: dict[ErrorCode, int] = {
    ErrorCode.INVALID_REQUEST: 400,
    ErrorCode.INVALID_HERO: 400,
    ErrorCode.INVALID_STYLE: 400,
    ErrorCode.INVALID_IMAGE: 400,
    ErrorCode.WHEEL_DISABLED: 409,
    ErrorCode.SPIN_IN_PROGRESS: 409,
    ErrorCode.GENERATION_IN_PROGRESS: 409,
    ErrorCode.RATE_LIMIT_EXCEEDED: 429,
    ErrorCode.UPSTREAM_UNAVAILABLE: 502,
    ErrorCode.UPSTREAM_INVALID_RESPONSE: 502,
    ErrorCode.INTERNAL_ERROR: 500,
}

# Whether the client may retry the same request (retry affordance in the UI)
ERROR_RECOVERABLE: dict[ErrorCode, bool] = {
    ErrorCode.INVALID_REQUEST: False,
    ErrorCode.INVALID_HERO: False,
    ErrorCode.INVALID_STYLE: False,
    ErrorCode.INVALID_IMAGE: False,
    ErrorCode.WHEEL_DISABLED: False,
    ErrorCode.SPIN_IN_PROGRESS: True,
    ErrorCode.GENERATION_IN_PROGRESS: True,
    ErrorCode.RATE_LIMIT_EXCEEDED: True,
    ErrorCode.UPSTREAM_UNAVAILABLE: True,
    ErrorCode.UPSTREAM_INVALID_RESPONSE: True,
    ErrorCode.INTERNAL_ERROR: True,
}


class ErrorBody(BaseModel):
    """Error body shape."""

    code: str
    message: str
    recoverable: bool
    details: str | None = None


class ErrorResponse(BaseModel):
    """Full error response."""

    protocolVersion: str = settings.protocol_version
    error: ErrorBody


class WheelError(Exception):
    """Base service error that maps to a protocol error response."""

    def __init__(
        self,
        code: ErrorCode,
        message: str | None = None,
        details: str | None = None,
        headers: dict[str, str] | None = None,
    ):
        self.code = code
        self.message = message or f"Error: {code.value}"
        self.details = details
        self.headers = headers or {}
        self.status_code = ERROR_HTTP_STATUS[code]
        self.recoverable = ERROR_RECOVERABLE[code]
        super().__init__(self.message)

    def to_response(self) -> JSONResponse:
        """Convert to JSONResponse."""
        return JSONResponse(
            status_code=self.status_code,
            content=ErrorResponse(
                error=ErrorBody(
                    code=self.code.value,
                    message=self.message,
                    recoverable=self.recoverable,
                    details=self.details,
                )
            ).model_dump(),
            headers=self.headers,
        )
