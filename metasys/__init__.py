"""Access library for the Metasys REST API."""

from __future__ import annotations

from .api import Metasys
from .const import EMPTY_ID, RELIABLE, UNSUPPORTED_DATA_TYPE, ApiVersion
from .exceptions import (
    MetasysApiError,
    RequestConnectionError,
    RequestDataError,
    RequestError,
    RequestRetryError,
    RequestTimeoutError,
)
from .models import Command, CommandItem, MetasysObject, TypeDescriptor
from .redact import Redactor
from .session import Session, SessionManager
from .sync import MetasysClient
from .variant import Variant, normalize

__all__ = [
    "EMPTY_ID",
    "RELIABLE",
    "UNSUPPORTED_DATA_TYPE",
    "ApiVersion",
    "Command",
    "CommandItem",
    "Metasys",
    "MetasysApiError",
    "MetasysClient",
    "MetasysObject",
    "Redactor",
    "RequestConnectionError",
    "RequestDataError",
    "RequestError",
    "RequestRetryError",
    "RequestTimeoutError",
    "Session",
    "SessionManager",
    "TypeDescriptor",
    "Variant",
    "normalize",
]
