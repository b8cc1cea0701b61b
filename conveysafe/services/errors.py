"""Domain errors raised by the ledger, invoice, loyalty and job services

Each error carries a machine-readable `code` and the HTTP status the API
layer answers with.
"""


class ConveySafeError(Exception):
    status_code = 500
    default_code = "internal_error"

    def __init__(self, code: str | None = None, message: str | None = None):
        self.code = code or self.default_code
        self.message = message or self.code.replace("_", " ")
        super().__init__(self.message)


class ValidationError(ConveySafeError):
    """Missing or malformed input"""
    status_code = 400
    default_code = "invalid_request"


class NotFoundError(ConveySafeError):
    """Unknown payment, invoice, checkout or job id"""
    status_code = 404
    default_code = "not_found"


class InvalidTransitionError(ConveySafeError):
    """Record exists but is in the wrong state for the operation"""
    status_code = 409
    default_code = "invalid_transition"


class AuthenticationError(ConveySafeError):
    status_code = 401
    default_code = "unauthorized"


class AuthorizationError(ConveySafeError):
    status_code = 403
    default_code = "forbidden"
