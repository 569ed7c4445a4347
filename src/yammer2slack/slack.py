"""
Slack Web API client for the destination side.

Wraps the ``slack_sdk`` WebClient calls the relay needs and translates
their failures into the relay's error types: ``name_taken`` becomes
ChannelExistsError, ``ratelimited`` RateLimitError, everything else
NetworkError.
"""

from typing import Any, Optional
from urllib.error import URLError

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError

from .error_handling import ChannelExistsError, NetworkError, RateLimitError
from .models import Channel
from .monitoring import get_logger

logger = get_logger(__name__, "slack")


class SlackDestination:
    """Channel and message operations on one Slack workspace."""

    def __init__(self, client: WebClient):
        """
        Initialize destination.

        Args:
            client: Slack WebClient authenticated with a bot or user token
        """
        self.client = client

    @classmethod
    def from_token(cls, token: str) -> "SlackDestination":
        return cls(WebClient(token=token))

    def _call(self, method: str, **kwargs) -> Any:
        """Call a Slack API method and return the response, raising on error."""
        fn = getattr(self.client, method)
        try:
            return fn(**kwargs)
        except SlackApiError as e:
            error = e.response.get("error", "unknown_error")
            if error == "name_taken":
                raise ChannelExistsError("slack", kwargs.get("name", "")) from e
            if error == "ratelimited" or e.response.status_code == 429:
                retry_after = e.response.headers.get("Retry-After")
                raise RateLimitError(
                    "slack",
                    retry_after=int(retry_after) if retry_after else None,
                    message=f"{method}: rate limited",
                ) from e
            logger.warning("Slack API error", method=method, error=error)
            raise NetworkError("slack", e.response.status_code, f"{method}: {error}") from e
        except (URLError, OSError) as e:
            raise NetworkError("slack", message=f"{method}: {e}") from e

    def create_channel(self, name: str) -> Channel:
        """
        Create a public channel.

        Raises:
            ChannelExistsError: If the name is taken
        """
        response = self._call("conversations_create", name=name)
        channel = Channel.from_api(response["channel"])
        logger.info("Channel created", channel=channel.name, id=channel.id)
        return channel

    def get_channel(self, channel_id: str) -> Channel:
        response = self._call("conversations_info", channel=channel_id)
        return Channel.from_api(response["channel"])

    def join_channel(self, channel_id: str) -> Channel:
        response = self._call("conversations_join", channel=channel_id)
        return Channel.from_api(response["channel"])

    def unarchive_channel(self, channel_id: str) -> None:
        self._call("conversations_unarchive", channel=channel_id)

    def set_purpose(self, channel_id: str, purpose: str) -> None:
        self._call("conversations_setPurpose", channel=channel_id, purpose=purpose)

    def list_channels(self) -> list[Channel]:
        """List all public channels, archived ones included."""
        channels: list[Channel] = []
        cursor: Optional[str] = None
        while True:
            kwargs: dict[str, Any] = {
                "types": "public_channel",
                "exclude_archived": False,
                "limit": 200,
            }
            if cursor:
                kwargs["cursor"] = cursor
            response = self._call("conversations_list", **kwargs)
            channels.extend(Channel.from_api(c) for c in response.get("channels", []))
            cursor = (response.get("response_metadata") or {}).get("next_cursor")
            if not cursor:
                return channels

    def find_channel(self, name: str) -> Optional[Channel]:
        """Find a channel by exact name."""
        for channel in self.list_channels():
            if channel.name == name:
                return channel
        return None

    def post_message(
        self,
        channel_id: str,
        text: str,
        username: str = "",
        icon_url: str = "",
        thread_ts: str = "",
    ) -> str:
        """
        Post a message.

        Args:
            channel_id: Target channel
            text: Message text
            username: Display name to post as
            icon_url: Avatar to post with
            thread_ts: Timestamp of the post to reply under, if any

        Returns:
            Slack timestamp of the new post
        """
        kwargs: dict[str, Any] = {"channel": channel_id, "text": text}
        if username:
            kwargs["username"] = username
        if icon_url:
            kwargs["icon_url"] = icon_url
        if thread_ts:
            kwargs["thread_ts"] = thread_ts
        response = self._call("chat_postMessage", **kwargs)
        return response["ts"]
