"""
OAuth 2.0 authorization-code flow for Yammer.

Builds the authorization URL the user visits, and exchanges the
authorization code (first run) or the refresh token (later runs) for an
access token at the token endpoint.
"""

import base64
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode, urlparse

import requests

from ..error_handling import AuthenticationError, NetworkError
from ..monitoring import get_logger
from .tokens import Token

logger = get_logger(__name__, "auth")

YAMMER_AUTH_URL = "https://www.yammer.com/dialog/oauth"
YAMMER_TOKEN_URL = "https://www.yammer.com/oauth2/access_token.json"
YAMMER_SCOPE = "https://www.yammer.com/"


@dataclass(frozen=True)
class AuthConfig:
    """Configuration for OAuth 2.0 flow. Created once at startup."""

    client_id: str
    client_secret: str
    redirect_url: str
    auth_url: str = YAMMER_AUTH_URL  # Authorization endpoint
    token_url: str = YAMMER_TOKEN_URL  # Token exchange endpoint
    scope: str = YAMMER_SCOPE
    access_type: str = ""  # "offline" asks for a refresh token
    approval_prompt: str = ""  # "force" re-prompts for consent

    @classmethod
    def for_yammer(cls, client_id: str, client_secret: str, port: int) -> "AuthConfig":
        """
        Create a configuration for Yammer with a loopback redirect.

        Args:
            client_id: Yammer app client ID
            client_secret: Yammer app client secret
            port: Local port the callback server listens on
        """
        return cls(
            client_id=client_id,
            client_secret=client_secret,
            redirect_url=f"http://localhost:{port}",
        )

    def authorization_url(self, state: str = "") -> str:
        """
        Generate OAuth authorization URL.

        Args:
            state: Optional state parameter for CSRF protection

        Returns:
            Authorization URL for user to visit
        """
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_url,
            "scope": self.scope,
            "state": state,
            "access_type": self.access_type,
            "approval_prompt": self.approval_prompt,
        }
        separator = "&" if urlparse(self.auth_url).query else "?"
        return f"{self.auth_url}{separator}{urlencode(params)}"


class TokenExchanger:
    """
    Talks to the token endpoint.

    Both grants POST url-encoded form parameters carrying the client
    credentials; any non-200 answer is a hard error.
    """

    def __init__(self, config: AuthConfig, session: Optional[requests.Session] = None):
        """
        Initialize token exchanger.

        Args:
            config: OAuth configuration
            session: HTTP session (a fresh one by default)
        """
        self.config = config
        self.session = session or requests.Session()

    def _get_auth_headers(self) -> dict[str, str]:
        credentials = base64.b64encode(
            f"{self.config.client_id}:{self.config.client_secret}".encode()
        ).decode()
        return {
            "Authorization": f"Basic {credentials}",
            "Content-Type": "application/x-www-form-urlencoded",
        }

    def exchange_code(self, code: str, previous: Optional[Token] = None) -> Token:
        """
        Exchange authorization code for access token.

        Args:
            code: Authorization code from the callback
            previous: Token already held, whose refresh token is kept if
                the response carries none

        Raises:
            AuthenticationError: If the endpoint rejects the code
            NetworkError: If the endpoint cannot be reached
        """
        data = {
            "grant_type": "authorization_code",
            "redirect_uri": self.config.redirect_url,
            "scope": self.config.scope,
            "code": code,
        }
        return self._request_token(data, previous, "exchange")

    def refresh(self, token: Token) -> Token:
        """
        Refresh an expired access token.

        Raises:
            AuthenticationError: If the token has no refresh token or the
                endpoint rejects it
            NetworkError: If the endpoint cannot be reached
        """
        if not token.refresh_token:
            raise AuthenticationError("yammer", "Token expired; no refresh token")
        data = {
            "grant_type": "refresh_token",
            "refresh_token": token.refresh_token,
        }
        return self._request_token(data, token, "refresh")

    def _request_token(self, data: dict, previous: Optional[Token], grant: str) -> Token:
        data["client_id"] = self.config.client_id
        data["client_secret"] = self.config.client_secret

        try:
            response = self.session.post(
                self.config.token_url,
                headers=self._get_auth_headers(),
                data=data,
                timeout=30,
            )
        except requests.RequestException as e:
            raise NetworkError("yammer", message=f"Token {grant} failed: {e}") from e

        if response.status_code != 200:
            logger.warning(
                "Token endpoint rejected request", grant=grant, status=response.status_code
            )
            raise AuthenticationError(
                "yammer", f"Token {grant} rejected: HTTP {response.status_code}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise AuthenticationError("yammer", f"Token {grant} returned invalid JSON") from e

        return self._parse_token_response(payload, previous)

    @staticmethod
    def _parse_token_response(response_data: dict, previous: Optional[Token]) -> Token:
        """
        Parse token response into a Token.

        Yammer nests the access token (``{"access_token": {"token": ...}}``);
        the standard flat form is accepted too.
        """
        access = response_data.get("access_token")
        if isinstance(access, dict):
            access = access.get("token")
        if not access:
            raise AuthenticationError("yammer", "Token response carries no access token")

        token = Token(
            access_token=str(access),
            refresh_token=previous.refresh_token if previous else None,
            extra=dict(previous.extra) if previous else {},
        )
        # Refresh tokens are not always re-issued
        if response_data.get("refresh_token"):
            token.refresh_token = response_data["refresh_token"]

        expires_in = response_data.get("expires_in")
        token.expires_in(int(expires_in) if expires_in else 0)

        if response_data.get("id_token"):
            token.extra["id_token"] = response_data["id_token"]
        return token
