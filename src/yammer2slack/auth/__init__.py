"""
Authentication for outbound Yammer calls.

Provides the OAuth authorization-code handshake, token exchange and
refresh, durable token storage and the transport that signs requests.
"""

from .browser import BrowserOpener, CommandOpener, ManualOpener, default_opener
from .callback_server import CallbackServer, obtain_authorization_code
from .oauth import AuthConfig, TokenExchanger
from .token_storage import CredentialStore
from .tokens import Token
from .transport import TokenTransport, TransportState

__all__ = [
    "AuthConfig",
    "BrowserOpener",
    "CallbackServer",
    "CommandOpener",
    "CredentialStore",
    "ManualOpener",
    "Token",
    "TokenExchanger",
    "TokenTransport",
    "TransportState",
    "default_opener",
    "obtain_authorization_code",
]
