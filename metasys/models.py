"""Objects, commands and types returned by the Metasys API."""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, ClassVar
from uuid import UUID

from .utils import to_under


@dataclass(frozen=True, slots=True)
class TypeDescriptor:
    """A type enumeration member resolved from a `typeUrl`."""

    id: int
    description: str

    UNRESOLVED: ClassVar[TypeDescriptor]

    @property
    def is_resolved(self) -> bool:
        """Return False if the type could not be resolved."""
        return self.id != -1


TypeDescriptor.UNRESOLVED = TypeDescriptor(-1, "")


def parse_id(value: Any) -> UUID | None:
    """Return the value as a UUID, or None if it isn't one."""
    if isinstance(value, UUID):
        return value
    if not isinstance(value, str):
        return None
    try:
        return UUID(value)
    except ValueError:
        return None


class MetasysObject(Mapping[str, Any]):
    """An object or network device found when enumerating the server.

    The raw list item is available as a read-only mapping with snake_case
    keys. `description` is the resolved description of the item type.
    `children` is None unless the children of the object were enumerated.
    """

    def __init__(
        self,
        data: Mapping[str, Any],
        description: str,
        children: list[MetasysObject] | None = None,
    ) -> None:
        """Initialize the MetasysObject."""
        self._attrs: dict[str, Any] = {to_under(k): v for k, v in data.items()}
        self.description = description
        self.children = children

    # =======================================================================
    #   MAPPING METHODS

    def __getitem__(self, key: str) -> Any:
        """Get an attribute by name."""
        return self._attrs[to_under(key)]

    def __len__(self) -> int:
        """Return the number of attributes."""
        return len(self._attrs)

    def __iter__(self) -> Iterator[str]:
        """Iterate over the attribute names."""
        return iter(self._attrs)

    def __repr__(self) -> str:
        return f"<{self.qual_id} {self.item_reference!r}>"

    @property
    def id(self) -> UUID | None:
        """Return the id of the object, if it has a valid one."""
        return parse_id(self._attrs.get("id"))

    @property
    def item_reference(self) -> str | None:
        """Return the fully qualified reference of the object."""
        return self._attrs.get("item_reference")

    @property
    def name(self) -> str | None:
        """Return the name of the object."""
        return self._attrs.get("name")

    @property
    def type_url(self) -> str | None:
        """Return the url describing the type of the object."""
        return self._attrs.get("type_url")

    @property
    def qual_id(self) -> str:
        """Return a qualified name for the object."""
        qn = self.__class__.__qualname__
        objid = self._attrs.get("id")
        if not isinstance(objid, str):
            return qn
        return f"{qn}[{objid[-6:]}]"

    @property
    def children_count(self) -> int:
        """Return the number of enumerated children."""
        return len(self.children) if self.children is not None else 0

    def asdict(self) -> dict[str, Any]:
        """Return the attributes as a dict."""
        return self._attrs

    def walk(self) -> Iterator[MetasysObject]:
        """Iterate depth-first over this object and all its enumerated children."""
        yield self
        for child in self.children or ():
            yield from child.walk()


@dataclass(frozen=True, slots=True)
class CommandItem:
    """Description of one parameter of a command."""

    title: str | None = None
    type: str | None = None
    minimum: float | None = None
    maximum: float | None = None
    enum: list[Any] | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CommandItem:
        """Create the item from the descriptor json."""
        enum = data.get("enum")
        # Enumerated parameters list their members under oneOf
        if enum is None and isinstance(data.get("oneOf"), list):
            enum = [m.get("const", m.get("id")) for m in data["oneOf"] if isinstance(m, dict)]
        return cls(
            title=data.get("title"),
            type=data.get("type"),
            minimum=data.get("minimum"),
            maximum=data.get("maximum"),
            enum=enum,
        )

    def check(self, value: Any) -> str | None:
        """Return a reason the value doesn't fit this parameter, or None."""
        if self.enum is not None and value not in self.enum:
            return f"{value!r} is not one of {self.enum!r}"
        if self.type in ("number", "integer"):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                return f"{value!r} is not a number"
            if self.minimum is not None and value < self.minimum:
                return f"{value!r} is less than {self.minimum}"
            if self.maximum is not None and value > self.maximum:
                return f"{value!r} is greater than {self.maximum}"
        elif self.type == "string" and not isinstance(value, str):
            return f"{value!r} is not a string"
        elif self.type == "boolean" and not isinstance(value, bool):
            return f"{value!r} is not a boolean"
        return None


@dataclass(frozen=True, slots=True)
class Command:
    """A command that can be sent to an object."""

    command_id: str
    title: str | None = None
    items: list[CommandItem] = field(default_factory=list)
    min_items: int = 0
    max_items: int | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Command:
        """Create the command from the descriptor json."""
        raw_items = data.get("items")
        if isinstance(raw_items, dict):
            raw_items = [raw_items]
        items = [CommandItem.from_dict(i) for i in raw_items or () if isinstance(i, dict)]
        max_items = data.get("maxItems")
        return cls(
            command_id=str(data.get("commandId", data.get("id", ""))),
            title=data.get("title"),
            items=items,
            min_items=int(data.get("minItems", 0) or 0),
            max_items=int(max_items) if max_items is not None else None,
        )

    def validate_values(self, values: Sequence[Any] | None) -> list[Any]:
        """Check that the values fit the command parameters.

        Returns the value list to send. Raises ValueError if the number of
        values or any of the values are invalid.
        """
        values = list(values or ())
        if len(values) < self.min_items:
            raise ValueError(
                f"Command {self.command_id!r} needs at least {self.min_items} values"
            )
        if self.max_items is not None and len(values) > self.max_items:
            raise ValueError(
                f"Command {self.command_id!r} takes at most {self.max_items} values"
            )
        for idx, (item, value) in enumerate(zip(self.items, values, strict=False)):
            if reason := item.check(value):
                raise ValueError(f"Command {self.command_id!r} value {idx}: {reason}")
        return values
