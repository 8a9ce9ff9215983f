"""revhub exception classes."""


class RevHubError(Exception):
    """Base exception for all revhub errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigurationError(RevHubError):
    """Raised when client configuration is invalid or missing."""

    pass


class TransportError(RevHubError):
    """Raised on network-level failures (DNS, connection reset, timeout)."""

    pass


class ApiError(RevHubError):
    """Raised when a platform rejects a request."""

    def __init__(
        self,
        status: int,
        platform_message: str,
        error_code: str | None = None,
    ) -> None:
        self.status = status
        self.platform_message = platform_message
        self.error_code = error_code
        super().__init__(f"[{status}] {platform_message}")

    @property
    def is_retryable(self) -> bool:
        return self.status >= 500


class AuthenticationError(ApiError):
    """Raised when the token is missing, expired or invalid."""

    pass


class AuthorizationError(ApiError):
    """Raised when access is denied."""

    pass


class NotFoundError(ApiError):
    """Raised when a targeted remote object does not exist."""

    def __init__(
        self,
        platform_message: str,
        status: int = 404,
        error_code: str | None = None,
    ) -> None:
        super().__init__(status, platform_message, error_code)


class RateLimitedError(ApiError):
    """Raised when rate limited."""

    def __init__(
        self,
        status: int,
        platform_message: str,
        retry_after: int,
        error_code: str | None = None,
    ) -> None:
        super().__init__(status, platform_message, error_code)
        self.retry_after = retry_after


class ServerError(ApiError):
    """Raised on server errors (5xx)."""

    pass


class ValidationError(RevHubError):
    """Raised on malformed caller input. Never retried."""

    pass


class UnresolvedProjectError(RevHubError):
    """Raised when a raw item references a project missing from the lookup table."""

    def __init__(self, project_id: object, item_id: object = None) -> None:
        self.project_id = project_id
        self.item_id = item_id
        super().__init__(f"Project {project_id!r} not found for item {item_id!r}")


class UnsupportedOperationError(RevHubError):
    """Raised when a platform does not offer the requested operation."""

    pass
