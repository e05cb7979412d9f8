"""
Exceptions raised by the Alma API client
"""


class AlmaError(Exception):
    """Base exception for Alma API errors."""

    pass


class AlmaTransportError(AlmaError):
    """Raised when no response was obtained (connection failure, timeout)."""

    def __init__(self, method: str, url: str, cause: BaseException):
        self.method = method
        self.url = url
        self.cause = cause
        super().__init__(f"{method} {url} failed: {type(cause).__name__}: {cause}")


class AlmaRemoteError(AlmaError):
    """Raised when Alma answers with an error status."""

    def __init__(self, status: int, message: str, url: str, code: str | None = None):
        self.status = status
        self.message = message
        self.url = url
        self.code = code
        detail = f"{code}: {message}" if code else message
        super().__init__(f"{status} {detail} ({url})")


class AlmaAccessError(AlmaError):
    """Raised when the API key cannot reach an endpoint a subcommand needs."""

    def __init__(self, path: str, access: str, cause: AlmaError):
        self.path = path
        self.access = access
        self.cause = cause
        super().__init__(f"the API key does not have {access} access to {path}: {cause}")


class AlmaLookupError(AlmaError):
    """Raised when an entity cannot be resolved unambiguously."""

    pass


class AlmaAbortedError(AlmaError):
    """Raised when a single-result operation stopped before it could finish.

    reason is an AbortReason value ("budget_exhausted" or "cancelled").
    """

    def __init__(self, action: str, reason: str):
        self.action = action
        self.reason = reason
        super().__init__(f"{action} stopped early: {reason.replace('_', ' ')}")


class BatchItemError(AlmaError):
    """A failure recorded against a single batch item."""

    def __init__(self, key: str, cause: BaseException):
        self.key = key
        self.cause = cause
        super().__init__(f"{key}: {cause}")
