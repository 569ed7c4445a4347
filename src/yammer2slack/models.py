"""Data models shared by the Yammer client, the Slack client and the resolver."""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class Network:
    """A Yammer network (tenant)."""

    id: int
    name: str

    def to_dict(self) -> dict:
        return {"ID": self.id, "Name": self.name}

    @classmethod
    def from_dict(cls, data: dict) -> "Network":
        return cls(id=int(data["ID"]), name=data.get("Name", ""))


@dataclass
class Message:
    """A message from a Yammer feed. Read-only input."""

    id: int
    thread_id: int
    sender_id: int
    body: str
    web_url: str = ""
    group_id: Optional[int] = None
    is_direct: bool = False
    network_id: Optional[int] = None
    replied_to_id: Optional[int] = None

    @classmethod
    def from_api(cls, data: dict) -> "Message":
        """Create from a Yammer ``messages`` entry."""
        return cls(
            id=int(data["id"]),
            thread_id=int(data.get("thread_id") or data["id"]),
            sender_id=int(data.get("sender_id") or 0),
            body=(data.get("body") or {}).get("plain", ""),
            web_url=data.get("web_url", ""),
            group_id=data.get("group_id"),
            is_direct=bool(data.get("direct_message")),
            network_id=data.get("network_id"),
            replied_to_id=data.get("replied_to_id"),
        )


@dataclass
class Reference:
    """
    A Yammer ``references`` entry: user, group, thread or message.

    Message references also carry body, sender and reply target.
    """

    id: int
    type: str
    full_name: str = ""
    web_url: str = ""
    mugshot_url: str = ""
    network_id: Optional[int] = None
    replied_to_id: Optional[int] = None
    sender_id: Optional[int] = None
    body: str = ""

    @classmethod
    def from_api(cls, data: dict) -> "Reference":
        """Create from a Yammer ``references`` entry."""
        return cls(
            id=int(data["id"]),
            type=data.get("type", ""),
            full_name=data.get("full_name") or data.get("name") or "",
            web_url=data.get("web_url", ""),
            mugshot_url=data.get("mugshot_url", ""),
            network_id=data.get("network_id"),
            replied_to_id=data.get("replied_to_id"),
            sender_id=data.get("sender_id"),
            body=(data.get("body") or {}).get("plain", ""),
        )

    @property
    def is_thread_starter(self) -> bool:
        """True for the message a thread replies to."""
        return self.type == "message" and not self.replied_to_id


@dataclass
class Feed:
    """A page of Yammer messages with the references they point at."""

    messages: list[Message] = field(default_factory=list)
    references: list[Reference] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict) -> "Feed":
        return cls(
            messages=[Message.from_api(m) for m in data.get("messages") or []],
            references=[Reference.from_api(r) for r in data.get("references") or []],
        )


def find_reference(
    references: list[Reference], ref_id: Optional[int], ref_type: Optional[str] = None
) -> Reference:
    """Find a reference by id (and type); an empty one if absent."""
    for ref in references:
        if ref.id == ref_id and (ref_type is None or ref.type == ref_type):
            return ref
    return Reference(id=ref_id or 0, type=ref_type or "")


@dataclass
class Thread:
    """Slack-side identity of one Yammer thread."""

    channel_id: str
    channel_name: str
    ts: str = ""  # Slack timestamp of the opening post; replies thread under it

    def to_dict(self) -> dict:
        return {"ChannelID": self.channel_id, "ChannelName": self.channel_name, "TS": self.ts}

    @classmethod
    def from_dict(cls, data: dict) -> "Thread":
        return cls(
            channel_id=data.get("ChannelID", ""),
            channel_name=data.get("ChannelName", ""),
            ts=data.get("TS", ""),
        )


@dataclass
class Channel:
    """A Slack channel as observed through the API."""

    id: str
    name: str
    is_archived: bool = False
    is_member: bool = False
    purpose: str = ""

    @property
    def purpose_set(self) -> bool:
        return bool(self.purpose)

    @classmethod
    def from_api(cls, data: dict) -> "Channel":
        """Create from a Slack ``channel`` object."""
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            is_archived=bool(data.get("is_archived")),
            is_member=bool(data.get("is_member")),
            purpose=(data.get("purpose") or {}).get("value", ""),
        )
