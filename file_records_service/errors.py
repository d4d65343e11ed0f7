from typing import List, Optional


class AppError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[str]] = None):
        self.message = message or self.default_message
        self.errors = errors or []
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid input"

    @classmethod
    def from_errors(cls, errors: List[str]) -> "ValidationError":
        return cls(", ".join(errors), errors=errors)


class NotFound(AppError):
    status_code = 404
    default_message = "Resource not found"


class Unauthorized(AppError):
    status_code = 401
    default_message = "Not authorized to access this route. Please login."


class Forbidden(AppError):
    status_code = 403
    default_message = "Forbidden"


class UnsupportedMediaType(AppError):
    status_code = 400
    default_message = "File type is not allowed"


class PayloadTooLarge(AppError):
    status_code = 400
    default_message = "File size exceeds the maximum limit"


class Conflict(AppError):
    status_code = 400
    default_message = "Duplicate field value entered"


class StorageError(AppError):
    status_code = 500
    default_message = "Storage operation failed"
