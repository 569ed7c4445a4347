"""
Resolution of Yammer threads to Slack channels.

Every Yammer thread is relayed into a Slack channel named after its
network and group, as a Slack thread under an opening post that repeats
the Yammer thread starter. ThreadChannelResolver finds or builds that
Slack thread:

- cache hit: make sure the channel is usable (unarchived, joined, purpose
  set) and return the cached Thread
- cache miss: fetch the thread starter, resolve its network, create (or
  find) the channel, post the opening message and persist the new entry
  before returning

Resolutions of the same thread id are serialized so two messages of a new
thread cannot both create it; different threads resolve in parallel.
"""

import re
import threading
from typing import Optional, Protocol

from .error_handling import (
    ChannelExistsError,
    CommunicationError,
    NetworkError,
    ParentNotFoundError,
    UnknownNetworkError,
)
from .models import Channel, Feed, Message, Network, Reference, Thread, find_reference
from .monitoring import get_logger
from .naming import NameShortener, strip_forbidden
from .state import KeyedLock, ThreadCache

logger = get_logger(__name__, "relay")

# Group name used for direct messages
DIRECT_MESSAGE_GROUP = "dm"

# Length bounds for each half of a channel name
NAME_PART_LENGTH = 10
NAME_HASH_LENGTH = 3


class Source(Protocol):
    """The Yammer calls the resolver needs."""

    def get_thread(self, thread_id: int) -> Feed: ...

    def get_networks(self) -> list[Network]: ...


class Destination(Protocol):
    """The Slack calls the resolver needs."""

    def create_channel(self, name: str) -> Channel: ...

    def get_channel(self, channel_id: str) -> Channel: ...

    def join_channel(self, channel_id: str) -> Channel: ...

    def unarchive_channel(self, channel_id: str) -> None: ...

    def set_purpose(self, channel_id: str, purpose: str) -> None: ...

    def find_channel(self, name: str) -> Optional[Channel]: ...

    def post_message(
        self,
        channel_id: str,
        text: str,
        username: str = "",
        icon_url: str = "",
        thread_ts: str = "",
    ) -> str: ...


def display_name(reference: Reference) -> str:
    """Name to post as for a Yammer user reference."""
    return strip_forbidden(reference.full_name).strip()


class NetworkCache:
    """
    Network lookup backed by the thread cache's network list.

    On a miss the whole list is fetched again once; a network still
    missing after that means the token belongs to a different tenant.
    """

    def __init__(self, cache: ThreadCache, source: Source):
        self.cache = cache
        self.source = source
        self._lock = threading.Lock()

    def get(self, network_id: int) -> Network:
        """
        Find a network by id.

        Raises:
            UnknownNetworkError: If the id is absent even after a refresh
        """
        network = self.cache.find_network(network_id)
        if network is not None:
            return network

        with self._lock:
            # Another caller may have refreshed while we waited
            network = self.cache.find_network(network_id)
            if network is not None:
                return network
            networks = self.source.get_networks()
            self.cache.replace_networks(networks)
            logger.info("Network list refreshed", count=len(networks))

        network = self.cache.find_network(network_id)
        if network is None:
            raise UnknownNetworkError("yammer", network_id)
        return network


class ThreadChannelResolver:
    """Maps Yammer thread ids to Slack threads, creating them on demand."""

    def __init__(
        self,
        source: Source,
        destination: Destination,
        cache: ThreadCache,
        network_name_filter: str = "",
        shortener: Optional[NameShortener] = None,
    ):
        """
        Initialize resolver.

        Args:
            source: Yammer client
            destination: Slack client
            cache: Persistent thread cache
            network_name_filter: Regex removed from network names before
                they are shortened
            shortener: Name shortener for both channel name parts
        """
        self.source = source
        self.destination = destination
        self.cache = cache
        self.networks = NetworkCache(cache, source)
        self.shortener = shortener or NameShortener(NAME_PART_LENGTH, NAME_HASH_LENGTH)
        self._name_filter = re.compile(network_name_filter) if network_name_filter else None

        self._thread_locks = KeyedLock()
        self._channel_lock = threading.Lock()
        self._channels: dict[str, Channel] = {}  # by name
        self._ready: set[str] = set()  # channel ids checked in this process

    def channel_name(self, network_name: str, group_name: str) -> str:
        """Slack channel name for a network and group."""
        if self._name_filter is not None:
            network_name = self._name_filter.sub("", network_name)
        network_part = self.shortener.shorten(network_name.strip())
        group_part = self.shortener.shorten(group_name)
        return f"{network_part}-{group_part}".lower()

    def resolve(self, message: Message, references: list[Reference]) -> Thread:
        """
        Find or create the Slack thread for ``message``'s Yammer thread.

        Args:
            message: Incoming Yammer message
            references: References delivered with the message

        Returns:
            The Slack thread to post into

        Raises:
            DataError: If the thread starter or its network cannot be found
            NetworkError: If a Yammer or Slack call fails
            AuthenticationError: If Yammer credentials are unusable
            PersistenceError: If the cache cannot be written
        """
        with self._thread_locks.hold(message.thread_id):
            thread = self.cache.get_thread(message.thread_id)
            if thread is not None:
                self.ensure_ready(thread.channel_id, message.web_url)
                return thread
            return self._create_thread(message, references)

    def forget(self, channel_id: str) -> None:
        """Recheck the channel's state on its next use."""
        with self._channel_lock:
            self._ready.discard(channel_id)
            for name in [n for n, c in self._channels.items() if c.id == channel_id]:
                del self._channels[name]

    def _create_thread(self, message: Message, references: list[Reference]) -> Thread:
        thread_feed = self.source.get_thread(message.thread_id)
        parent = self._find_parent(message.thread_id, thread_feed)
        if parent.network_id is None:
            raise UnknownNetworkError("yammer", 0)
        network = self.networks.get(parent.network_id)

        if message.is_direct:
            group_name = DIRECT_MESSAGE_GROUP
        else:
            group = find_reference(references, message.group_id, "group")
            group_name = group.full_name or str(message.group_id)

        channel, created = self._channel_for(self.channel_name(network.name, group_name))
        if not created:
            # A known channel may have been archived or left since it was last checked
            with self._channel_lock:
                self._ready.discard(channel.id)
        self.ensure_ready(channel.id, parent.web_url, channel if created else None)

        sender = find_reference(references + thread_feed.references, parent.sender_id, "user")
        try:
            ts = self.destination.post_message(
                channel.id,
                f"{parent.body}\nsee: {parent.web_url}",
                username=display_name(sender),
                icon_url=sender.mugshot_url,
            )
        except CommunicationError:
            self.forget(channel.id)
            raise

        thread = Thread(channel_id=channel.id, channel_name=channel.name, ts=ts)
        self.cache.put_thread(message.thread_id, thread)
        logger.info(
            "Thread resolved",
            thread_id=message.thread_id,
            channel=channel.name,
            ts=ts,
        )
        return thread

    @staticmethod
    def _find_parent(thread_id: int, thread_feed: Feed) -> Reference:
        for ref in thread_feed.references:
            if ref.is_thread_starter:
                return ref
        raise ParentNotFoundError("yammer", thread_id)

    def _channel_for(self, name: str) -> tuple[Channel, bool]:
        """
        Create the channel, or adopt the existing one with that name.

        Returns:
            The channel and whether its state was fetched just now
        """
        with self._channel_lock:
            known = self._channels.get(name)
        if known is not None:
            return known, False

        try:
            channel = self.destination.create_channel(name)
        except ChannelExistsError:
            channel = self.destination.find_channel(name)
            if channel is None:
                raise NetworkError(
                    "slack", message=f"Channel {name} is taken but not listed"
                ) from None
            logger.info("Adopted existing channel", channel=name, id=channel.id)

        with self._channel_lock:
            self._channels[name] = channel
        return channel, True

    def ensure_ready(
        self, channel_id: str, purpose: str = "", channel: Optional[Channel] = None
    ) -> None:
        """
        Bring a channel to a usable state.

        Unarchives it, joins it and sets its purpose when missing. Repeated
        calls are harmless.

        Args:
            channel_id: Channel to check
            purpose: Purpose to set if the channel has none
            channel: Already fetched channel state, if at hand
        """
        with self._channel_lock:
            if channel_id in self._ready:
                return

        if channel is None:
            channel = self.destination.get_channel(channel_id)

        if channel.is_archived:
            self.destination.unarchive_channel(channel.id)
            logger.info("Channel unarchived", channel=channel.name)
        if not channel.is_member:
            self.destination.join_channel(channel.id)
            logger.info("Channel joined", channel=channel.name)
        if not channel.purpose_set and purpose:
            self.destination.set_purpose(channel.id, purpose)
            logger.debug("Channel purpose set", channel=channel.name, purpose=purpose)

        with self._channel_lock:
            self._ready.add(channel_id)
