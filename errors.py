from typing import Any, Optional


class AppError(Exception):
    status_code = 500
    default_message = "Server error"

    def __init__(self, message: Optional[str] = None, data: Any = None):
        self.message = message or self.default_message
        self.data = data
        super().__init__(self.message)


class InvalidArgument(AppError):
    status_code = 400
    default_message = "Invalid request"


class Unauthorized(AppError):
    status_code = 401
    default_message = "Unauthorized"


class QuotaExceeded(AppError):
    status_code = 403
    default_message = "Daily swipe limit reached. Upgrade to premium for unlimited swipes."


class NotFound(AppError):
    status_code = 404
    default_message = "Not found"


class Internal(AppError):
    status_code = 500


def envelope(status: int, message: str, data: Any = None) -> dict:
    return {"status": status, "message": message, "data": data}
