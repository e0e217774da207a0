"""Exception hierarchy for key pool dispatch."""

from typing import Optional


class PIIDetectionError(Exception):
    """Base class for errors raised by this package."""


class EmptyCredentialSet(PIIDetectionError, ValueError):
    """Raised when a key pool is built without any keys."""

    def __init__(self, message: str = "At least one API key is required"):
        super().__init__(message)


class RateLimitError(PIIDetectionError):
    """Upstream rejected the call because the key's quota is used up."""

    def __init__(self, message: str, status_code: int = 429):
        super().__init__(message)
        self.status_code = status_code


class UpstreamCallError(PIIDetectionError):
    """Upstream call failed for a reason other than rate limiting."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class DispatchError(PIIDetectionError):
    """A dispatch gave up. Callers should treat detection as unavailable."""


class AllCredentialsExhausted(DispatchError):
    def __init__(
        self,
        message: str = (
            "All API keys are currently rate limited. Please try again later."
        ),
    ):
        super().__init__(message)


class UpstreamError(DispatchError):
    """Retries were used up. ``last_error`` holds the final failure."""

    def __init__(self, message: str, last_error: Optional[BaseException] = None):
        super().__init__(message)
        self.last_error = last_error
