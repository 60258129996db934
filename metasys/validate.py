"""Data validator for Metasys API data."""

from __future__ import annotations

import logging
import re
from typing import Any

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

_LOGGER = logging.getLogger(__name__)

__all__ = ["ValidationError", "validate"]


class AccessToken(BaseModel):
    """Pydantic model for the login and refresh responses."""

    model_config = ConfigDict(extra="allow")
    accessToken: str
    expires: str


class AttributeItem(BaseModel):
    """Pydantic model for a single attribute read."""

    model_config = ConfigDict(extra="allow")
    item: dict[str, Any]


class ObjectPage(BaseModel):
    """Pydantic model for a page of child objects."""

    model_config = ConfigDict(extra="allow")
    total: int
    items: list[dict[str, Any]] | None = None
    next: str | None = None


class NetworkDevicePage(BaseModel):
    """Pydantic model for a page of network devices."""

    model_config = ConfigDict(extra="allow")
    items: list[dict[str, Any]]
    next: str | None = None


class AvailableTypes(BaseModel):
    """Pydantic model for the list of available network device types."""

    model_config = ConfigDict(extra="allow")
    items: list[dict[str, Any]]


class EnumMember(BaseModel):
    """Pydantic model for a type enumeration member."""

    model_config = ConfigDict(extra="allow")
    id: int
    description: str


OBJECT_IDENTIFIER = TypeAdapter(str)
OBJECT = TypeAdapter(dict[str, Any])
COMMANDS = TypeAdapter(list[dict[str, Any]])

# Mapping of URL to pydantic model
# - None for no validation check
# - TypeAdapter-instances for validation of primitives (list, dict etc.)
# - BaseModel-classes for validation of custom classes
UUID_RE = r"[0-9a-fA-F\-]+"
URLS = {
    "login": AccessToken,
    "refreshToken": AccessToken,
    "objectIdentifiers": OBJECT_IDENTIFIER,
    "networkDevices": NetworkDevicePage,
    "networkDevices/availableTypes": AvailableTypes,
    rf"objects/{UUID_RE}": OBJECT,
    rf"objects/{UUID_RE}/attributes/[^/]+": AttributeItem,
    rf"objects/{UUID_RE}/objects": ObjectPage,
    rf"objects/{UUID_RE}/commands": COMMANDS,
    rf"objects/{UUID_RE}/commands/[^/]+": None,
    r"https?://.+/enumSets/\d+/members/\d+": EnumMember,
    # Absolute urls are only requested for type urls
    r"https?://.+": EnumMember,
}

_URLS = [(k, re.compile(k), v) for k, v in URLS.items()]


def validate(data: Any, url: str) -> None:
    """
    Validate the data.

    Raises:
        ValidationError: If data doesn't match the pydantic model associated with the url.

    """

    # Query parameters are not part of the pattern
    url = url.split("?", 1)[0]

    for pat, re_pat, model in _URLS:
        # Mathes either the exact string or its regexp
        if url == pat or re_pat.fullmatch(url):
            try:
                if isinstance(model, type) and issubclass(model, BaseModel):
                    model.model_validate(data, strict=True)

                elif isinstance(model, TypeAdapter):
                    model.validate_python(data, strict=True)

            except ValidationError as err:
                _LOGGER.error("Failed to validate %s (pattern %s): %s", url, pat, err)
                raise

            return

    _LOGGER.warning("Missing validator for url %s", url)
    _LOGGER.debug("Data: %s", data)
