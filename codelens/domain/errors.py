"""Error taxonomy for the analysis orchestration layer.

Every failure surfaced by `AnalysisService.analyze` is one of these types.
Transport failures are split into retryable and non-retryable branches so the
retry policy can classify them by type alone. `CacheFault` never leaves the
cache layer.
"""

from typing import Optional


class CodelensError(Exception):
    """Base class for all codelens errors."""

    kind: str = "error"

    def __init__(self, message: str, *, attempts: int = 1):
        super().__init__(message)
        self.message = message
        self.attempts = attempts

    def __str__(self) -> str:
        if self.attempts > 1:
            return f"[{self.kind}] after {self.attempts} attempt(s): {self.message}"
        return f"[{self.kind}] {self.message}"


class ConfigurationError(CodelensError):
    """Missing credential or invalid setting. Fatal at construction time."""

    kind = "configuration"


class CacheFault(CodelensError):
    """Internal cache failure (e.g. options that cannot be fingerprinted)."""

    kind = "cache"


class QueueClearedError(CodelensError):
    """A queued request was dropped by `clear()` or `destroy()` before it started."""

    kind = "queue_cleared"


class MalformedResponseError(CodelensError):
    """The backend call succeeded but its payload is unparseable or incomplete."""

    kind = "malformed_response"

    def __init__(self, message: str, *, raw_text: Optional[str] = None, attempts: int = 1):
        super().__init__(message, attempts=attempts)
        self.raw_text = raw_text


class BackendError(CodelensError):
    """A failure reported by (or on the way to) the remote analysis backend."""

    kind = "backend"

    def __init__(self, message: str, *, status_code: Optional[int] = None, attempts: int = 1):
        super().__init__(message, attempts=attempts)
        self.status_code = status_code


# --- Retryable transport failures ---

class RetryableTransportError(BackendError):
    """Transient failure; the retry policy backs off and tries again."""

    kind = "transient"


class RateLimitError(RetryableTransportError):
    kind = "rate_limit"

    def __init__(self, message: str = "Rate limit exceeded", *, status_code: Optional[int] = 429, attempts: int = 1):
        super().__init__(message, status_code=status_code, attempts=attempts)


class RequestTimeoutError(RetryableTransportError):
    kind = "timeout"


class ServerError(RetryableTransportError):
    kind = "server_error"

    def __init__(self, message: str = "Backend server error", *, status_code: Optional[int] = 500, attempts: int = 1):
        super().__init__(message, status_code=status_code, attempts=attempts)


class NetworkError(RetryableTransportError):
    """Connection reset, connect timeout or DNS resolution failure."""

    kind = "network_error"


# --- Non-retryable failures ---

class NonRetryableError(BackendError):
    """The backend rejected the request; retrying cannot help."""

    kind = "rejected"


class AuthError(NonRetryableError):
    kind = "auth"


class InvalidRequestError(NonRetryableError):
    kind = "invalid_request"


class QuotaExceededError(NonRetryableError):
    kind = "quota_exceeded"
