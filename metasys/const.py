"""Metasys API client constants."""

from __future__ import annotations

from enum import StrEnum
from uuid import UUID


class ApiVersion(StrEnum):
    """Supported versions of the Metasys REST API."""

    V1 = "v1"
    V2 = "v2"
    V3 = "v3"


API_URL = "https://{host}/api/{version}/"
"""Base URL of the API. Relative request paths are appended to it."""

API_RETRIES = 3
"""Number of retries for API requests."""

API_RETRY_INIT_DELAY = 0.3
"""Initial delay for the first API retry."""

API_RETRY_FACTOR = 2.1
"""Factor for exponential backoff in API retries."""

API_RETRY_JITTER = 0.1
"""Jitter to add to the API retry delay to avoid thundering herd problem."""

API_RETRY_MAXTIME = 30
"""Maximum time to wait for API retries."""

API_TIMEOUT = 30
"""The maximum time to wait for a response from the API."""

API_RATELIMIT_PERIOD = 1
"""Period in seconds for the bursting API rate limit."""

API_RATELIMIT_MAX_REQUEST_RATE = 50
"""Maximum number of requests allowed per API rate limit period."""

MAX_DEBUG_TEXT_LEN_ON_500 = 150
"""Maximum text length to add to debug log without truncating."""

REFRESH_MARGIN = 60
"""Seconds before the token expires when the scheduled refresh fires."""

MAX_REFRESH_DELAY = (2**31 - 1) / 1000
"""Longest refresh delay in seconds. Longer delays are clamped to this."""

EMPTY_ID = UUID(int=0)
"""Object identifier returned when a reference can't be resolved."""

RELIABLE = "reliabilityEnumSet.reliable"
"""Reliability of a value the server considers trustworthy.

This is the full enumeration member the server reports, used as the default
instead of the short form "reliable". `Variant.is_reliable` accepts both.
"""

UNSUPPORTED_DATA_TYPE = "Unsupported Data Type"
"""String value of attributes whose content type can't be determined."""

ARRAY_STRING = "Array"
"""String value of array attributes."""
