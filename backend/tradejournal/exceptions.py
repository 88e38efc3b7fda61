"""Exception hierarchy for the account linking flow.

Every class carries the HTTP status used when it reaches the web boundary.
"""


class TradeJournalError(Exception):
    status_code = 400
    default_message = "Request failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class LinkValidationError(TradeJournalError):
    status_code = 422
    default_message = "Invalid input"


class PopupBlockedError(TradeJournalError):
    default_message = "Please allow popups to continue with authentication"


class InvalidTransitionError(TradeJournalError):
    status_code = 409
    default_message = "Action not allowed in the current step"


class OperationInProgressError(TradeJournalError):
    status_code = 409
    default_message = "Another request for this broker is still in progress"


class NotFoundException(TradeJournalError):
    status_code = 404
    default_message = "Resource not found"


class JournalApiError(TradeJournalError):
    """Non-2xx answer from the journal backend."""

    status_code = 502

    def __init__(self, message: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.upstream_status = status_code


class BackendUnavailableError(JournalApiError):
    default_message = "Journal backend is unreachable"


class UnauthorizedException(TradeJournalError):
    status_code = 401
    default_message = "Not authenticated"
