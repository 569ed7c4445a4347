"""
Authenticated HTTP calls to Yammer.

TokenTransport owns the current Token. Before every call it checks the
expiry, refreshes when needed and injects the bearer header. Refreshes
are serialized: callers that find the token expired at the same time
wait for a single refresh instead of issuing one each.
"""

import threading
from enum import Enum
from typing import Callable, Optional

import requests

from ..error_handling import AuthenticationError, NetworkError
from ..monitoring import get_logger
from .oauth import TokenExchanger
from .token_storage import CredentialStore
from .tokens import Token

logger = get_logger(__name__, "auth")


class TransportState(Enum):
    """Credential state of a TokenTransport."""

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"
    REFRESH_FAILED = "refresh_failed"


class TokenTransport:
    """
    Wraps outbound HTTP calls with bearer-token handling.

    Every successful exchange or refresh is written to the credential
    store before control returns to the caller.
    """

    def __init__(
        self,
        exchanger: TokenExchanger,
        store: CredentialStore,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize transport.

        Args:
            exchanger: Performs code exchange and refresh
            store: Durable token storage
            session: HTTP session for protected calls
        """
        self.exchanger = exchanger
        self.store = store
        self.session = session or requests.Session()
        self._token: Optional[Token] = None
        self._refresh_failed = False
        self._lock = threading.Lock()

    @property
    def token(self) -> Optional[Token]:
        return self._token

    @property
    def state(self) -> TransportState:
        """Current credential state."""
        with self._lock:
            return self._state()

    def _state(self) -> TransportState:
        if self._token is None:
            return TransportState.UNAUTHENTICATED
        if self._refresh_failed:
            return TransportState.REFRESH_FAILED
        if self._token.is_expired():
            return TransportState.EXPIRED
        return TransportState.AUTHENTICATED

    def load(self) -> bool:
        """
        Load the token from the credential store.

        Returns:
            True if a token was found

        Raises:
            PersistenceError: If the stored token is malformed
        """
        token = self.store.load()
        with self._lock:
            if token is None:
                return False
            self._token = token
            self._refresh_failed = False
        logger.debug("Loaded token from store", path=self.store.path)
        return True

    def exchange(self, code: str) -> Token:
        """
        Exchange an authorization code for a token and persist it.

        Raises:
            AuthenticationError: If the code is rejected
            NetworkError: If the token endpoint cannot be reached
            PersistenceError: If the token cannot be stored
        """
        with self._lock:
            token = self.exchanger.exchange_code(code, previous=self._token)
            self.store.save(token)
            self._token = token
            self._refresh_failed = False
        logger.info("Authorization code exchanged")
        return token

    def authorize(self, obtain_code: Callable[[], str]) -> TransportState:
        """
        Make sure a token is held, running the handshake if needed.

        A stored token is tried first. After a failed refresh the stored
        token is known to be dead, so the handshake runs directly.

        Args:
            obtain_code: Runs the interactive handshake and returns the code

        Returns:
            The state after authorization
        """
        state = self.state
        if state in (TransportState.AUTHENTICATED, TransportState.EXPIRED):
            return state
        if state is TransportState.UNAUTHENTICATED and self.load():
            return self.state

        logger.info("Starting interactive authorization", previous_state=state.value)
        self.exchange(obtain_code())
        return self.state

    def _ensure_fresh(self) -> Token:
        """Return a usable token, refreshing it first if it has expired."""
        with self._lock:
            state = self._state()
            if state is TransportState.UNAUTHENTICATED:
                raise AuthenticationError("yammer", "No token; authorization required")
            if state is TransportState.REFRESH_FAILED:
                raise AuthenticationError(
                    "yammer", "Token refresh failed; authorization required"
                )
            if state is TransportState.EXPIRED:
                self._refresh()
            assert self._token is not None
            return self._token

    def _refresh(self) -> None:
        # Caller holds self._lock
        assert self._token is not None
        try:
            token = self.exchanger.refresh(self._token)
        except AuthenticationError:
            self._refresh_failed = True
            logger.error("Token refresh failed; new authorization required")
            raise
        self.store.save(token)
        self._token = token
        logger.info("Token refreshed")

    def request(self, method: str, url: str, **kwargs) -> requests.Response:
        """
        Send an authenticated request.

        Args:
            method: HTTP method
            url: Target URL
            **kwargs: Passed to ``requests.Session.request``

        Returns:
            The response, whatever its status

        Raises:
            AuthenticationError: If no usable token can be obtained; no
                request is sent in that case
            NetworkError: If the request cannot be sent
        """
        token = self._ensure_fresh()
        headers = dict(kwargs.pop("headers", None) or {})
        headers.update(token.authorization_header())
        kwargs.setdefault("timeout", 30)
        try:
            return self.session.request(method, url, headers=headers, **kwargs)
        except requests.RequestException as e:
            raise NetworkError("yammer", message=f"{method} {url} failed: {e}") from e

    def get(self, url: str, **kwargs) -> requests.Response:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs) -> requests.Response:
        return self.request("POST", url, **kwargs)

    def delete(self, url: str, **kwargs) -> requests.Response:
        return self.request("DELETE", url, **kwargs)
