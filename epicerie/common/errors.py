class AppError(Exception):
    """Base error carrying an HTTP status and a message safe to show clients."""

    status_code = 500
    message = "Internal server error"

    def __init__(self, message: str = None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class ValidationError(AppError):
    status_code = 400
    message = "Invalid request"


class AuthError(AppError):
    status_code = 401
    message = "Unauthorized"


# Update and delete of an unknown id are a no-op, not a 404; kept for routes
# that must name a missing record.
class NotFoundError(AppError):
    status_code = 404
    message = "Not found"


class PersistenceError(AppError):
    status_code = 500
    message = "Database error"
