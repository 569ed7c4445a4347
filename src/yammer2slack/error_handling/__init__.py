"""
Error hierarchy and backoff for the relay.

Provides the typed errors raised by the Yammer and Slack clients, the
resolver and the state layer, plus the backoff used between failing
cycles.
"""

from .errors import (
    AuthenticationError,
    ChannelExistsError,
    CommunicationError,
    ConfigurationError,
    DataError,
    HandshakeError,
    HandshakeTimeoutError,
    NetworkError,
    ParentNotFoundError,
    PersistenceError,
    RateLimitError,
    UnknownNetworkError,
)
from .retry import RetryConfig, exponential_backoff

__all__ = [
    "exponential_backoff",
    "RetryConfig",
    "CommunicationError",
    "AuthenticationError",
    "HandshakeError",
    "HandshakeTimeoutError",
    "NetworkError",
    "RateLimitError",
    "ChannelExistsError",
    "DataError",
    "ParentNotFoundError",
    "UnknownNetworkError",
    "ConfigurationError",
    "PersistenceError",
]
