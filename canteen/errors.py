"""
Domain errors raised by the service layer.

Route handlers turn these into ``{"status": "error", "message": ...}``
responses using ``status_code``.
"""


class CanteenError(Exception):
    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class ValidationError(CanteenError):
    status_code = 400


class AuthenticationError(CanteenError):
    status_code = 401


class ForbiddenError(CanteenError):
    status_code = 403


class NotFoundError(CanteenError):
    status_code = 404


class ConflictError(CanteenError):
    status_code = 409


class StatusLockedError(CanteenError):
    """The order already left ``unconfirmed`` and can no longer be changed by its owner."""

    status_code = 400


class InvalidTransitionError(CanteenError):
    status_code = 400
