"""
Yammer REST API v1 client.

All calls go through a TokenTransport, so they are signed with the
current bearer token and refresh it when it has expired. HTTP 429 becomes
RateLimitError, any other non-200 status NetworkError.
"""

from typing import Optional

import requests

from .auth.transport import TokenTransport
from .error_handling import NetworkError, RateLimitError
from .models import Feed, Network
from .monitoring import get_logger

logger = get_logger(__name__, "yammer")

API_BASE = "https://www.yammer.com/api/v1"

# Feed name -> endpoint path
FEEDS = {
    "received": "messages/received.json",
    "private": "messages/private.json",
    "inbox": "messages/inbox.json",
    "following": "messages/following.json",
}

# Ways to address a new message
SEND_TARGETS = ("replied_to_id", "group_id", "direct_to_id")


class YammerClient:
    """Thin wrapper over the Yammer endpoints the relay consumes."""

    def __init__(self, transport: TokenTransport, api_base: str = API_BASE):
        """
        Initialize client.

        Args:
            transport: Authenticated transport
            api_base: API root URL
        """
        self.transport = transport
        self.api_base = api_base.rstrip("/")

    def _url(self, path: str) -> str:
        return f"{self.api_base}/{path}"

    def _check(
        self, response: requests.Response, what: str, ok: tuple[int, ...] = (200,)
    ) -> requests.Response:
        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            logger.warning("Rate limited", call=what)
            raise RateLimitError(
                "yammer",
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
                message=f"{what}: rate limited",
            )
        if response.status_code not in ok:
            logger.warning("Request failed", call=what, status=response.status_code)
            raise NetworkError(
                "yammer", response.status_code, f"{what}: HTTP {response.status_code}"
            )
        return response

    def _get_json(self, path: str, params: Optional[dict] = None):
        response = self._check(self.transport.get(self._url(path), params=params), path)
        try:
            return response.json()
        except ValueError as e:
            raise NetworkError("yammer", response.status_code, f"{path}: invalid JSON") from e

    def get_feed(self, feed: str, newer_than: int = 0, limit: int = 0) -> Feed:
        """
        Fetch messages of a feed.

        Args:
            feed: Feed name (received, private, inbox, following)
            newer_than: Only messages with a larger id (0 = no bound)
            limit: Maximum number of messages (0 = server default)

        Returns:
            Messages newest first, with their references
        """
        if feed not in FEEDS:
            raise ValueError(f"Unknown feed: {feed}")
        params = {}
        if newer_than:
            params["newer_than"] = newer_than
        if limit:
            params["limit"] = limit
        return Feed.from_api(self._get_json(FEEDS[feed], params))

    def get_thread(self, thread_id: int) -> Feed:
        """Fetch all messages of a thread with their references."""
        return Feed.from_api(self._get_json(f"messages/in_thread/{thread_id}.json"))

    def get_networks(self) -> list[Network]:
        """List networks the authenticated user belongs to."""
        data = self._get_json("networks/current.json")
        return [Network(id=int(n["id"]), name=n.get("name", "")) for n in data]

    def get_current_user(self) -> dict:
        """Return the authenticated user."""
        return self._get_json("users/current.json")

    def user_id_by_email(self, email: str) -> int:
        """Look up a user id by e-mail address."""
        data = self._get_json("users/by_email.json", {"email": email})
        if not data:
            raise NetworkError("yammer", 404, f"No user with email {email}")
        return int(data[0]["id"])

    def send(self, target: str, target_id: int, body: str) -> dict:
        """
        Post a message.

        Args:
            target: How to address it: replied_to_id, group_id or direct_to_id
            target_id: Id of the message, group or user
            body: Plain-text body
        """
        if target not in SEND_TARGETS:
            raise ValueError(f"Unknown send target: {target}")
        response = self.transport.post(
            self._url("messages.json"), data={target: str(target_id), "body": body}
        )
        # Yammer answers 201 for created messages
        self._check(response, "messages.json", ok=(200, 201))
        logger.info("Message sent", target=target, target_id=target_id)
        return response.json() if response.content else {}

    def unfollow(self, thread_id: int) -> None:
        """Stop following a thread."""
        path = f"threads/{thread_id}/follow.json"
        self._check(self.transport.delete(self._url(path)), path, ok=(200, 204))
        logger.info("Thread unfollowed", thread_id=thread_id)
