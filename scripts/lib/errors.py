"""
Custom error classes for the Pipeline Analytics engine.
Structured error handling with error codes across all modules.

Hierarchy:
    HubError
    ├── APIError
    │   ├── APITimeoutError
    │   ├── APIRateLimitError
    │   └── APIAuthError
    ├── DataError
    │   ├── ConfigError
    │   └── DataFetchError
    └── ReportError
        └── RateLimitedReportError
"""


class HubError(Exception):
    """Base exception for all analytics engine errors."""

    def __init__(self, message: str, code: str = "UNKNOWN", details: dict = None):
        self.code = code
        self.details = details or {}
        super().__init__(f"[{code}] {message}")


# --- API Errors ---

class APIError(HubError):
    """Base class for external API errors."""

    def __init__(self, message: str, code: str = "API_ERROR",
                 status_code: int = None, url: str = None, **kwargs):
        self.status_code = status_code
        self.url = url
        details = {"status_code": status_code, "url": url, **kwargs}
        super().__init__(message, code=code, details=details)


class APITimeoutError(APIError):
    """Request timed out."""

    def __init__(self, url: str, timeout: float):
        super().__init__(
            f"Request timed out after {timeout}s: {url}",
            code="API_TIMEOUT", url=url, timeout=timeout,
        )


class APIRateLimitError(APIError):
    """Rate limit exceeded (HTTP 429)."""

    def __init__(self, url: str, retry_after: int = None, policy: str = None):
        msg = f"Rate limit exceeded (429): {url}"
        if policy:
            msg += f" [{policy}]"
        if retry_after:
            msg += f" (retry after {retry_after}s)"
        super().__init__(
            msg, code="API_RATE_LIMIT", status_code=429, url=url,
            retry_after=retry_after, policy=policy,
        )


class APIAuthError(APIError):
    """Authentication or authorization failure."""

    def __init__(self, url: str, status_code: int = 401):
        super().__init__(
            f"Authentication failed: {url}",
            code="API_AUTH_FAILED", url=url, status_code=status_code,
        )


# --- Data Errors ---

class DataError(HubError):
    """Base class for data processing errors."""
    pass


class ConfigError(DataError):
    """Missing or invalid configuration."""

    def __init__(self, message: str, setting: str = None):
        super().__init__(
            message, code="CONFIG_ERROR",
            details={"setting": setting},
        )


class DataFetchError(DataError):
    """Failed to fetch or load data from storage."""

    def __init__(self, message: str, source: str = None):
        super().__init__(
            message, code="DATA_FETCH_FAILED", details={"source": source},
        )


# --- Report Errors ---

class ReportError(HubError):
    """A report could not be built. Carries a user-facing message."""

    def __init__(self, message: str, code: str = "REPORT_FAILED", **kwargs):
        self.user_message = message
        super().__init__(message, code=code, details=kwargs)


class RateLimitedReportError(ReportError):
    """The CRM throttled us while building a report; the user should retry shortly."""

    def __init__(self, message: str, retry_after: int = 10):
        super().__init__(message, code="REPORT_RATE_LIMITED", retry_after=retry_after)
        self.retry_after = retry_after
