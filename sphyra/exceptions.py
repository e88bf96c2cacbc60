from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from typing import Any, Optional


class ReminderPipelineError(Exception):
    """Base class for errors raised inside the reminder and confirmation pipeline."""


# Confirmation token errors

class TokenVerificationError(ReminderPipelineError):
    kind = "token_invalid"


class TokenFormatInvalid(TokenVerificationError):
    kind = "token_format_invalid"


class TokenMissing(TokenVerificationError):
    kind = "token_missing"


class TokenExpired(TokenVerificationError):
    kind = "token_expired"


class TokenMismatch(TokenVerificationError):
    kind = "token_mismatch"


# Pre-send validation errors (never retried)

class ContactMissing(ReminderPipelineError):
    pass


class ConsentMissing(ReminderPipelineError):
    pass


class PhoneFormatInvalid(ReminderPipelineError):
    pass


# Channel errors

class ChannelTransientFailure(ReminderPipelineError):
    """Timeout, connection failure or 5xx. Retried by the SMS channel."""


class ChannelPermanentFailure(ReminderPipelineError):
    """4xx or validation failure at the provider. Never retried."""


class LockUnavailable(ReminderPipelineError):
    pass


class StorageError(ReminderPipelineError):
    pass


class APIException(HTTPException):
    def __init__(self, status_code: int, detail: str):
        super().__init__(status_code=status_code, detail=detail)

def create_error_response(error_message: str, status_code: int = 400) -> dict:
    """Create a standardized error response"""
    return {
        "success": False,
        "data": None,
        "error": error_message
    }

def create_success_response(data: Any, message: Optional[str] = None) -> dict:
    """Create a standardized success response"""
    body = {
        "success": True,
        "data": data,
        "error": None
    }
    if message:
        body["message"] = message
    return body

async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Custom exception handler for HTTPException"""
    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(str(exc.detail), exc.status_code)
    )
