"""
OAuth token record.

Holds the bearer token used for Yammer calls together with its refresh
token and expiry, and converts it to and from the JSON layout kept in the
credential file.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

# Serialized form of a token without expiry
ZERO_TIME = "0001-01-01T00:00:00Z"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_expiry(expiry: Optional[datetime]) -> str:
    """Render an expiry as RFC 3339, or the zero value when unset."""
    if expiry is None:
        return ZERO_TIME
    return expiry.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_expiry(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 3339 expiry; the zero value and empty input mean no expiry."""
    if not value or value.startswith("0001-01-01"):
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class Token:
    """An end-user's tokens; the data that must be stored to stay authenticated."""

    access_token: str
    refresh_token: Optional[str] = None
    expiry: Optional[datetime] = None  # None: no known expiry
    extra: dict[str, str] = field(default_factory=dict)
    token_type: str = "Bearer"

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """
        Check if the token has expired.

        Args:
            now: Reference time (defaults to the current UTC time)
        """
        if self.expiry is None:
            return False  # No expiry info means we assume valid
        return (now or _utcnow()) >= self.expiry

    def expires_in(self, seconds: int) -> None:
        """Set the expiry ``seconds`` from now; zero or less clears it."""
        self.expiry = _utcnow() + timedelta(seconds=seconds) if seconds > 0 else None

    def authorization_header(self) -> dict[str, str]:
        """Create Authorization header for this token."""
        return {"Authorization": f"{self.token_type} {self.access_token}"}

    def to_dict(self) -> dict:
        """Convert to the credential file layout."""
        return {
            "AccessToken": self.access_token,
            "RefreshToken": self.refresh_token or "",
            "Expiry": format_expiry(self.expiry),
            "Extra": dict(self.extra),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Token":
        """Create from the credential file layout."""
        return cls(
            access_token=data.get("AccessToken", ""),
            refresh_token=data.get("RefreshToken") or None,
            expiry=parse_expiry(data.get("Expiry")),
            extra=dict(data.get("Extra") or {}),
        )
