"""
shared/exceptions.py
Domain error taxonomy. Each error knows its HTTP status and a stable
code; main.py renders them as {"success": false, "error", "code"}.
"""


class AppError(Exception):
    status_code: int = 400
    code: str = "Error"
    default_message: str = "Request failed"

    def __init__(self, message: str = None, code: str = None):
        self.message = message or self.default_message
        if code:
            self.code = code
        super().__init__(self.message)


class NotFoundError(AppError):
    """Identity, service or record lookup miss. Client error."""
    status_code = 404
    code = "NotFound"
    default_message = "Not found"


class ValidationError(AppError):
    """Missing or malformed input, or a broken business precondition."""
    status_code = 400
    code = "ValidationError"
    default_message = "Invalid request"


class InsufficientBalanceError(AppError):
    status_code = 400
    code = "InsufficientBalance"
    default_message = "Insufficient balance"


class ForbiddenError(AppError):
    status_code = 403
    code = "Forbidden"
    default_message = "Not allowed"


class StorageFaultError(AppError):
    """Connection or transaction failure. Never carries driver detail."""
    status_code = 500
    code = "StorageFault"
    default_message = "Database error"
