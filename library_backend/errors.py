"""
errors.py — Typed error kinds raised by the services.
Each kind carries its HTTP status and a machine code; main.py maps them onto
JSON responses so callers can tell them apart.
"""


class LibraryError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str = "Internal error"):
        super().__init__(message)
        self.message = message


class BadRequestError(LibraryError):
    status_code = 400
    code = "bad_request"


class UnauthorizedError(LibraryError):
    status_code = 401
    code = "unauthorized"


class ForbiddenError(LibraryError):
    status_code = 403
    code = "forbidden"


class NotFoundError(LibraryError):
    status_code = 404
    code = "not_found"


class ConflictError(LibraryError):
    status_code = 409
    code = "conflict"


class OutOfStockError(LibraryError):
    status_code = 409
    code = "out_of_stock"


class LoanLimitExceededError(LibraryError):
    status_code = 409
    code = "loan_limit_exceeded"


class ValidationError(LibraryError):
    status_code = 422
    code = "validation_error"


class EmailDeliveryError(LibraryError):
    status_code = 502
    code = "email_delivery_failed"
