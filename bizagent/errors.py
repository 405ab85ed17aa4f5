"""
Error taxonomy for the booking calendar.

- NotFoundError       - slot or remote event does not exist (404)
- ConflictError       - slot already booked / not booked (409)
- RemoteServiceError  - external calendar call failed (503, retryable)
- StoreError          - slot store operation failed (500)
- InvalidSlotError    - slot outside the bookable grid (422): weekend or a time outside CALENDAR_SLOT_TIMES

The HTTP layer maps status_code straight onto the response, so callers can
tell "slot taken" apart from "calendar unreachable".
"""
from typing import Optional


class BizAgentError(Exception):
    """Base class for all calendar errors."""

    code = "BIZAGENT_ERROR"
    status_code = 500
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(BizAgentError):
    code = "NOT_FOUND"
    status_code = 404


class ConflictError(BizAgentError):
    code = "CONFLICT"
    status_code = 409


class RemoteServiceError(BizAgentError):
    code = "REMOTE_SERVICE_ERROR"
    status_code = 503
    retryable = True

    def __init__(self, message: str, provider_error: Optional[str] = None):
        super().__init__(message)
        self.provider_error = provider_error


class StoreError(BizAgentError):
    code = "STORE_ERROR"
    status_code = 500


class InvalidSlotError(BizAgentError):
    code = "INVALID_SLOT"
    status_code = 422
