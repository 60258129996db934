"""Metasys utilities."""

from __future__ import annotations

from datetime import UTC, datetime
import re

# Precompile the patterns for performance
RE_TO_UNDER1 = re.compile(r"([A-Z]+)([A-Z][a-z])")
RE_TO_UNDER2 = re.compile(r"([a-z\d])([A-Z])")


def to_under(word: str) -> str:
    """Convert itemReference to item_reference."""
    # Ripped from inflection
    word = RE_TO_UNDER1.sub(r"\1_\2", word)
    word = RE_TO_UNDER2.sub(r"\1_\2", word)
    word = word.replace("-", "_")
    return word.lower()


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 timestamp from the server.

    Timestamps without an offset are taken as UTC. Raises ValueError if the
    value isn't a timestamp.
    """
    if not isinstance(value, str):
        raise ValueError(f"Expected a timestamp string, got {type(value).__qualname__}")
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts


def utcnow() -> datetime:
    """Return the current time in UTC."""
    return datetime.now(UTC)
