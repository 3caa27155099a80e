"""Domain errors surfaced by the booking engine.

Every error carries a stable ``kind`` and the HTTP status the API answers
with. They are raised by the services and rendered by the handler
registered in ``app.main``.
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse


class AppError(Exception):
    kind = "AppError"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AppError):
    kind = "ValidationError"
    status_code = status.HTTP_400_BAD_REQUEST


class FormatError(ValidationError):
    kind = "FormatError"


class NotFoundError(AppError):
    kind = "NotFoundError"
    status_code = status.HTTP_404_NOT_FOUND


class PermissionDeniedError(AppError):
    kind = "PermissionError"
    status_code = status.HTTP_403_FORBIDDEN


class StateError(AppError):
    kind = "StateError"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str, current_status: str | None = None):
        super().__init__(message)
        self.current_status = current_status


class ConflictError(AppError):
    kind = "ConflictError"
    status_code = status.HTTP_409_CONFLICT


class InvalidSignatureError(AppError):
    kind = "InvalidSignatureError"
    status_code = status.HTTP_400_BAD_REQUEST


class AmountMismatchError(AppError):
    kind = "AmountMismatchError"
    status_code = status.HTTP_400_BAD_REQUEST


class AlreadyPaidError(AppError):
    kind = "AlreadyPaidError"
    status_code = status.HTTP_409_CONFLICT


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "kind": exc.kind},
    )
