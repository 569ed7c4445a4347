"""
Common error classes for the relay.

Provides one error hierarchy for failures on either side of the bridge
(Yammer as source, Slack as destination) and for local state handling.
Every error carries a ``recoverable`` flag: the relay loop retries
recoverable errors on its next cycle and lets the rest end the process.
"""


class CommunicationError(Exception):
    """Base exception for all relay errors."""

    recoverable = True

    def __init__(self, message: str, platform: str, details: dict | None = None):
        """
        Initialize communication error.

        Args:
            message: Error message
            platform: Platform where error occurred
            details: Optional error details
        """
        super().__init__(message)
        self.platform = platform
        self.details = details or {}


class AuthenticationError(CommunicationError):
    """Raised when authentication fails."""

    def __init__(self, platform: str, message: str = "Authentication failed"):
        """
        Initialize authentication error.

        Args:
            platform: Platform where auth failed
            message: Error message
        """
        super().__init__(message, platform)


class HandshakeError(AuthenticationError):
    """Raised when the browser redirect carries no authorization code."""


class HandshakeTimeoutError(HandshakeError):
    """Raised when no browser redirect arrives before the deadline."""

    def __init__(self, platform: str, timeout: float):
        super().__init__(platform, f"Timed out after {timeout}s waiting for redirect")
        self.timeout = timeout


class NetworkError(CommunicationError):
    """Raised when network request fails."""

    def __init__(
        self,
        platform: str,
        status_code: int | None = None,
        message: str = "Network error",
    ):
        """
        Initialize network error.

        Args:
            platform: Platform where network error occurred
            status_code: HTTP status code if applicable
            message: Error message
        """
        super().__init__(message, platform, {"status_code": status_code})
        self.status_code = status_code


class RateLimitError(NetworkError):
    """Raised when rate limit is exceeded."""

    def __init__(
        self,
        platform: str,
        retry_after: int | None = None,
        message: str = "Rate limit exceeded",
    ):
        """
        Initialize rate limit error.

        Args:
            platform: Platform where rate limit occurred
            retry_after: Seconds until rate limit resets
            message: Error message
        """
        super().__init__(platform, 429, message)
        self.details["retry_after"] = retry_after
        self.retry_after = retry_after


class ChannelExistsError(CommunicationError):
    """Raised when a channel cannot be created because its name is taken."""

    def __init__(self, platform: str, name: str):
        super().__init__(f"Channel already exists: {name}", platform, {"name": name})
        self.name = name


class DataError(CommunicationError):
    """Raised when feed data is missing something a thread needs."""


class ParentNotFoundError(DataError):
    """Raised when a thread feed has no originating message."""

    def __init__(self, platform: str, thread_id: int):
        super().__init__(
            f"Cannot find parent message of thread {thread_id}",
            platform,
            {"thread_id": thread_id},
        )
        self.thread_id = thread_id


class UnknownNetworkError(DataError):
    """Raised when a network id is absent even after refreshing the list."""

    def __init__(self, platform: str, network_id: int):
        super().__init__(
            f"Network {network_id} not found", platform, {"network_id": network_id}
        )
        self.network_id = network_id


class ConfigurationError(CommunicationError):
    """Raised when configuration is invalid or missing."""

    recoverable = False

    def __init__(self, platform: str, message: str = "Configuration error"):
        """
        Initialize configuration error.

        Args:
            platform: Platform with configuration issue
            message: Error message
        """
        super().__init__(message, platform)


class PersistenceError(CommunicationError):
    """Raised when durable state cannot be read or written."""

    recoverable = False

    def __init__(self, path: str, message: str = "Persistence error"):
        super().__init__(f"{message}: {path}", "state", {"path": path})
        self.path = path
