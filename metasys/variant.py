"""Normalized attribute values read from Metasys objects."""

from __future__ import annotations

from dataclasses import dataclass, replace
import logging
from typing import Any
from uuid import UUID

from .const import ARRAY_STRING, RELIABLE, UNSUPPORTED_DATA_TYPE

_LOGGER = logging.getLogger(__name__)

# Type definitions
TNumber = int | float


@dataclass(frozen=True, slots=True)
class Variant:
    """The value of one attribute of one object.

    Every attribute payload maps to exactly one Variant. Payloads with a
    content type that can't be determined still produce a fully populated
    Variant, with `string_value` set to "Unsupported Data Type".
    """

    id: UUID | None
    attribute: str
    numeric_value: TNumber = 1
    string_value: str = UNSUPPORTED_DATA_TYPE
    boolean_value: bool = False
    array_value: list[Variant] | None = None
    priority: str | None = None
    reliability: str = RELIABLE

    @property
    def is_reliable(self) -> bool:
        """Return True if the server reports the value as reliable."""
        return self.reliability in (RELIABLE, "reliable")

    @property
    def is_supported(self) -> bool:
        """Return False if the content type of the value is unknown."""
        return self.array_value is not None or self.string_value != UNSUPPORTED_DATA_TYPE

    def __str__(self) -> str:
        return self.string_value


def _scalar(node: Any) -> dict[str, Any]:
    """Classify a scalar JSON node into the value fields of a Variant."""
    # bool must be tested before int, since bool is a subclass of int
    if isinstance(node, bool):
        return {
            "numeric_value": 1 if node else 0,
            "string_value": str(node),
            "boolean_value": node,
        }
    if isinstance(node, (int, float)):
        return {
            "numeric_value": node,
            "string_value": str(node),
            "boolean_value": node != 0,
        }
    if isinstance(node, str):
        return {
            "numeric_value": 0,
            "string_value": node,
            "boolean_value": False,
        }
    return {}


def normalize(node: Any, id: UUID | None, attribute: str) -> Variant:
    """Convert the JSON value of an attribute into a Variant.

    The classification never fails. `None`, objects without a `value` field
    and other unknown shapes give the unsupported sentinel value. Arrays are
    converted element by element. Objects carrying a `value` field are
    unwrapped, and their `reliability` and `priority` fields are kept.
    """

    if node is None:
        return Variant(id, attribute)

    if isinstance(node, list):
        return Variant(
            id,
            attribute,
            numeric_value=0,
            string_value=ARRAY_STRING,
            boolean_value=False,
            array_value=[_element(item, id, attribute) for item in node],
        )

    if isinstance(node, dict):
        reliability = node.get("reliability")
        priority = node.get("priority")
        if not isinstance(reliability, str):
            reliability = RELIABLE
        if not isinstance(priority, str):
            priority = None

        if "value" in node:
            fields = _scalar(node["value"])
            if not fields:
                _LOGGER.debug(
                    "Unsupported value <%s> in attribute %s",
                    type(node["value"]).__qualname__,
                    attribute,
                )
        else:
            fields = {}
        return Variant(id, attribute, priority=priority, reliability=reliability, **fields)

    return Variant(id, attribute, **_scalar(node))


def _element(node: Any, id: UUID | None, attribute: str) -> Variant:
    """Convert one element of an array attribute."""
    element = normalize(node, id, attribute)
    if element.priority is None:
        return element
    return replace(element, priority=None)
