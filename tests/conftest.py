"""Shared fixtures: in-memory Yammer and Slack stand-ins and sample feed data."""

import threading
import time

import pytest

from yammer2slack.error_handling import ChannelExistsError, NetworkError
from yammer2slack.models import Channel, Feed, Message, Network, Reference
from yammer2slack.state import ThreadCache, WatermarkTracker

STARTER_URL = "https://www.yammer.com/contoso/threads/42"


class FakeSource:
    """Yammer stand-in serving fixed thread feeds and networks."""

    def __init__(self, threads=None, networks=None):
        self.threads: dict[int, Feed] = threads or {}
        self.networks: list[Network] = networks or []
        self.feeds: dict[str, Feed] = {}
        self.feed_errors: dict[str, Exception] = {}
        self.thread_calls: list[int] = []
        self.network_calls = 0
        self.feed_calls: list[tuple[str, int]] = []

    def get_thread(self, thread_id):
        self.thread_calls.append(thread_id)
        return self.threads.get(thread_id, Feed())

    def get_networks(self):
        self.network_calls += 1
        return list(self.networks)

    def get_feed(self, feed, newer_than=0, limit=0):
        self.feed_calls.append((feed, newer_than))
        if feed in self.feed_errors:
            raise self.feed_errors.pop(feed)
        page = self.feeds.get(feed, Feed())
        # Newest first, like Yammer
        messages = sorted(
            (m for m in page.messages if m.id > newer_than), key=lambda m: -m.id
        )
        return Feed(messages=messages, references=page.references)


class FakeDestination:
    """Slack stand-in keeping channels and posts in memory."""

    def __init__(self, create_delay: float = 0.0):
        self.create_delay = create_delay
        self.channels: dict[str, Channel] = {}
        self.create_calls: list[str] = []
        self.joined: list[str] = []
        self.unarchived: list[str] = []
        self.purposes: dict[str, str] = {}
        self.posts: list[dict] = []
        self.fail_texts: set[str] = set()
        self._lock = threading.Lock()
        self._seq = 0

    def add_channel(self, name, **kwargs) -> Channel:
        channel = Channel(id=f"C{len(self.channels) + 100}", name=name, **kwargs)
        self.channels[channel.id] = channel
        return channel

    def create_channel(self, name):
        with self._lock:
            self.create_calls.append(name)
        time.sleep(self.create_delay)
        with self._lock:
            if any(c.name == name for c in self.channels.values()):
                raise ChannelExistsError("slack", name)
            return self.add_channel(name, is_member=True)

    def get_channel(self, channel_id):
        return self.channels[channel_id]

    def join_channel(self, channel_id):
        self.joined.append(channel_id)
        self.channels[channel_id].is_member = True
        return self.channels[channel_id]

    def unarchive_channel(self, channel_id):
        self.unarchived.append(channel_id)
        self.channels[channel_id].is_archived = False

    def set_purpose(self, channel_id, purpose):
        self.purposes[channel_id] = purpose
        self.channels[channel_id].purpose = purpose

    def find_channel(self, name):
        for channel in self.channels.values():
            if channel.name == name:
                return channel
        return None

    def post_message(self, channel_id, text, username="", icon_url="", thread_ts=""):
        if text in self.fail_texts:
            raise NetworkError("slack", 500, "chat_postMessage: internal_error")
        channel = self.channels.get(channel_id)
        if channel is not None and channel.is_archived:
            raise NetworkError("slack", 200, "chat_postMessage: is_archived")
        with self._lock:
            self._seq += 1
            ts = f"1700000000.{self._seq:06d}"
            self.posts.append(
                {
                    "channel": channel_id,
                    "text": text,
                    "username": username,
                    "icon_url": icon_url,
                    "thread_ts": thread_ts,
                    "ts": ts,
                }
            )
        return ts


def user_ref(user_id, name, mugshot=""):
    return Reference(id=user_id, type="user", full_name=name, mugshot_url=mugshot)


def starter_ref(thread_id, body="Kickoff", sender_id=100, network_id=1, url=STARTER_URL):
    return Reference(
        id=thread_id,
        type="message",
        web_url=url,
        network_id=network_id,
        sender_id=sender_id,
        body=body,
    )


def reply(message_id, thread_id=42, body="", sender_id=101, group_id=7, is_direct=False):
    return Message(
        id=message_id,
        thread_id=thread_id,
        sender_id=sender_id,
        body=body or f"Reply {message_id}",
        web_url=f"https://www.yammer.com/contoso/messages/{message_id}",
        group_id=None if is_direct else group_id,
        is_direct=is_direct,
        network_id=1,
        replied_to_id=thread_id,
    )


@pytest.fixture
def references():
    """References delivered with feed messages."""
    return [
        Reference(id=7, type="group", full_name="Engineering Team"),
        user_ref(100, "Ada Lovelace", "https://mug.example/100.png"),
        user_ref(101, "Grace (Hopper)", "https://mug.example/101.png"),
    ]


@pytest.fixture
def source():
    """Yammer stand-in knowing thread 42 and the Contoso network."""
    thread_feed = Feed(
        messages=[],
        references=[
            starter_ref(42),
            Reference(id=43, type="message", replied_to_id=42, network_id=1),
            user_ref(100, "Ada Lovelace", "https://mug.example/100.png"),
        ],
    )
    return FakeSource(threads={42: thread_feed}, networks=[Network(id=1, name="Contoso")])


@pytest.fixture
def destination():
    return FakeDestination()


@pytest.fixture
def cache(tmp_path):
    return ThreadCache.load(tmp_path / "cache.json")


@pytest.fixture
def watermarks(tmp_path):
    return WatermarkTracker(tmp_path / "watermark.json")
