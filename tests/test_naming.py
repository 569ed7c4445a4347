"""Tests for channel name shortening."""

import pytest

from yammer2slack.error_handling import ConfigurationError
from yammer2slack.naming import (
    FORBIDDEN_CHARS,
    HASH_SOURCE_LENGTH,
    NameShortener,
    shorten,
    strip_forbidden,
)

NAMES = [
    "",
    "dm",
    "Contoso",
    "Engineering Team",
    "Engineering Team (EMEA)",
    "abcdefghij",
    "abcdefghijk",
    "A very long group name with $pecial ch@racters & more",
    "日本語のグループ名前ですよね",
]


def test_hash_source_length():
    """md5 digests encode to 24 base64 characters."""
    assert HASH_SOURCE_LENGTH == 24


def test_strip_forbidden():
    assert strip_forbidden("Grace (Hopper)") == "GraceHopper"
    assert strip_forbidden(FORBIDDEN_CHARS) == ""
    assert strip_forbidden("team-name_1") == "team-name_1"


def test_short_name_unchanged():
    """Names shorter than the target come back stripped but otherwise intact."""
    assert shorten("Contoso", 10, 3) == "Contoso"
    assert shorten("dm", 10, 3) == "dm"
    assert shorten("R&D", 10, 3) == "RD"


def test_long_name_truncated_with_hash():
    result = shorten("Engineering Team", 10, 3)

    assert result.startswith("enginee")
    assert len(result) <= 10
    assert result == result.lower()


def test_name_at_target_length_is_hashed():
    """Only names strictly shorter than the target are left alone."""
    result = shorten("abcdefghij", 10, 3)

    assert result.startswith("abcdefg")
    assert result != "abcdefghij"


def test_shared_prefix_names_differ():
    first = shorten("Engineering Team Alpha", 10, 3)
    second = shorten("Engineering Team Beta", 10, 3)

    assert first[:7] == second[:7]
    assert first != second


@pytest.mark.parametrize("name", NAMES)
@pytest.mark.parametrize("target,hash_len", [(10, 3), (21, 6), (5, 0), (24, 24)])
def test_shorten_properties(name, target, hash_len):
    """Bounded, deterministic, and stable when re-shortened."""
    result = shorten(name, target, hash_len)

    assert len(result) <= target
    assert shorten(name, target, hash_len) == result
    if len(result) < target:
        assert shorten(result, target, hash_len) == result


def test_shortener_is_callable():
    shortener = NameShortener(10, 3)
    assert shortener("Engineering Team") == shortener.shorten("Engineering Team")


@pytest.mark.parametrize(
    "target,hash_len",
    [(10, 11), (30, 25), (10, -1), (0, 0)],
)
def test_invalid_parameters_rejected_at_construction(target, hash_len):
    with pytest.raises(ConfigurationError) as exc_info:
        NameShortener(target, hash_len)

    assert exc_info.value.recoverable is False


def test_hash_length_may_equal_available_hash():
    shortener = NameShortener(30, 24)
    result = shortener.shorten("x" * 40)

    assert result.startswith("xxxxxx")
    assert len(result) <= 30
