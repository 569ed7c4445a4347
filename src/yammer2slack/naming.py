"""
Length-bounded channel name derivation.

Slack channel names have a hard length ceiling, so long Yammer network and
group names are cut down. Plain truncation would map names sharing a long
prefix onto the same channel, so a short content hash is appended to the
truncated part.

The output is used as the durable channel name, so it must depend on
nothing but its inputs.
"""

import base64
import hashlib

from .error_handling import ConfigurationError

# Characters Slack rejects or that make poor channel names
FORBIDDEN_CHARS = " ().#$@%^&*+=[]{}:;'<>/?,|`\""

_FORBIDDEN_TABLE = str.maketrans("", "", FORBIDDEN_CHARS)

# md5 digest is 16 bytes, 24 characters once base64 encoded
HASH_SOURCE_LENGTH = len(base64.b64encode(hashlib.md5(b"").digest()))


def strip_forbidden(name: str) -> str:
    """Remove every character of FORBIDDEN_CHARS from ``name``."""
    return name.translate(_FORBIDDEN_TABLE)


class NameShortener:
    """
    Shortens names to at most ``target_length`` characters.

    Parameters are checked once, here, so a bad combination fails at
    startup rather than on the first long name.

    Args:
        target_length: Maximum length of the result
        hash_length: Number of hash characters appended to truncated names

    Raises:
        ConfigurationError: If hash_length is negative, exceeds
            target_length, or exceeds the encoded hash length
    """

    def __init__(self, target_length: int, hash_length: int):
        if target_length <= 0:
            raise ConfigurationError(
                "naming", f"target_length must be positive, got {target_length}"
            )
        if hash_length < 0:
            raise ConfigurationError(
                "naming", f"hash_length must not be negative, got {hash_length}"
            )
        if hash_length > HASH_SOURCE_LENGTH:
            raise ConfigurationError(
                "naming",
                f"hash_length {hash_length} exceeds available hash characters "
                f"({HASH_SOURCE_LENGTH})",
            )
        if hash_length > target_length:
            raise ConfigurationError(
                "naming",
                f"hash_length {hash_length} exceeds target_length {target_length}",
            )
        self.target_length = target_length
        self.hash_length = hash_length

    def shorten(self, raw_name: str) -> str:
        """
        Shorten ``raw_name``.

        Names shorter than ``target_length`` after stripping come back
        unchanged. Longer names keep their first
        ``target_length - hash_length`` characters, gain a hash suffix and
        are lower-cased.
        """
        name = strip_forbidden(raw_name)
        if len(name) < self.target_length:
            return name

        digest = hashlib.md5(name.encode("utf-8")).digest()
        suffix = base64.b64encode(digest).decode("ascii")[: self.hash_length]
        head = name[: self.target_length - self.hash_length]
        # base64 may contribute '+' or '/'
        return strip_forbidden(head + suffix).lower()

    __call__ = shorten


def shorten(raw_name: str, target_length: int, hash_length: int) -> str:
    """Shorten ``raw_name`` with a one-off NameShortener."""
    return NameShortener(target_length, hash_length).shorten(raw_name)
