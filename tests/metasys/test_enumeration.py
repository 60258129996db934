"""Tests for the object and network device enumeration in metasys/api.py."""

from uuid import UUID

from conftest import OBJECT_ID, FakeSession, MockResponse
import pytest

from metasys.api import Metasys
from metasys.models import MetasysObject, TypeDescriptor

ROOT = UUID(OBJECT_ID)
TYPE_URL = "https://hostname/api/v2/enumSets/508/members/"


def oid(n: int) -> str:
    """Return a fake object id."""
    return f"00000000-0000-0000-0000-{n:012d}"


def item(n: int, type_id: int = 1, **kwargs) -> dict:
    """Return a list item as returned by the server."""
    return {
        "id": oid(n),
        "itemReference": f"site:nae/obj{n}",
        "name": f"Object {n}",
        "typeUrl": f"{TYPE_URL}{type_id}",
        **kwargs,
    }


def page(*items: dict, next: str | None = None) -> dict:
    """Return a page of child objects."""
    return {"total": len(items), "items": list(items), "next": next, "previous": None}


def add_types(fake: FakeSession, *type_ids: int) -> None:
    """Add the type enumeration members."""
    for type_id in type_ids:
        fake.add("get", f"{TYPE_URL}{type_id}", {"id": type_id, "description": f"Type {type_id}"})


def add_children(fake: FakeSession, parent: str, *pages: dict) -> None:
    """Add the pages of children of an object."""
    for n, data in enumerate(pages, start=1):
        fake.add("get", f"objects/{parent}/objects", data, params={"page": n})


@pytest.mark.asyncio
async def test_get_objects_levels_below_one(fake: FakeSession) -> None:
    """Test that no enumeration is done for less than one level."""
    async with Metasys("hostname", client=fake) as metasys:
        assert await metasys.get_objects(ROOT, levels=0) is None
        assert await metasys.get_objects(ROOT, levels=-1) is None
    assert fake.calls == []


@pytest.mark.asyncio
async def test_get_objects_one_level(fake: FakeSession) -> None:
    """Test that the immediate children are returned without their children."""
    add_types(fake, 1, 2)
    add_children(fake, OBJECT_ID, page(item(1), item(2, type_id=2), item(3)))
    async with Metasys("hostname", client=fake) as metasys:
        objects = await metasys.get_objects(ROOT)

    assert [o.name for o in objects] == ["Object 1", "Object 2", "Object 3"]
    assert [o.description for o in objects] == ["Type 1", "Type 2", "Type 1"]
    assert all(o.children is None for o in objects)
    assert objects[0].id == UUID(oid(1))
    assert objects[0].item_reference == "site:nae/obj1"
    assert objects[0]["typeUrl"] == f"{TYPE_URL}1"
    # Nothing is requested for the children
    assert fake.calls_to("get", f"objects/{oid(1)}/objects") == []


@pytest.mark.asyncio
async def test_get_objects_follows_pages(fake: FakeSession) -> None:
    """Test that all pages of children are read."""
    add_types(fake, 1)
    add_children(
        fake,
        OBJECT_ID,
        page(item(1), item(2), next="https://hostname/api/v2/objects/x/objects?page=2"),
        page(item(3), next="https://hostname/api/v2/objects/x/objects?page=3"),
        page(item(4)),
    )
    async with Metasys("hostname", client=fake) as metasys:
        objects = await metasys.get_objects(ROOT)

    assert [o.name for o in objects] == [f"Object {n}" for n in range(1, 5)]
    calls = fake.calls_to("get", f"objects/{OBJECT_ID}/objects")
    assert [c["params"]["page"] for c in calls] == [1, 2, 3]


@pytest.mark.asyncio
async def test_get_objects_empty(fake: FakeSession) -> None:
    """Test that an object without children gives an empty list."""
    add_children(fake, OBJECT_ID, {"total": 0, "items": [], "next": None})
    async with Metasys("hostname", client=fake) as metasys:
        assert await metasys.get_objects(ROOT) == []


@pytest.mark.asyncio
async def test_get_objects_two_levels(fake: FakeSession) -> None:
    """Test that the grandchildren are attached depth-first."""
    add_types(fake, 1)
    add_children(fake, OBJECT_ID, page(item(1), item(2)))
    add_children(fake, oid(1), page(item(11), item(12)))
    add_children(fake, oid(2), {"total": 0, "items": None, "next": None})
    async with Metasys("hostname", client=fake) as metasys:
        objects = await metasys.get_objects(ROOT, levels=2)

    first, second = objects
    assert [c.name for c in first.children] == ["Object 11", "Object 12"]
    assert second.children == []
    # The leaves are not enumerated any further
    assert all(c.children is None for c in first.children)
    assert fake.calls_to("get", f"objects/{oid(11)}/objects") == []

    # Depth-first: the children of the first object are read before the second
    urls = [u for m, u, _ in fake.calls if u.endswith("/objects")]
    assert urls.index(f"https://hostname/api/v2/objects/{oid(1)}/objects") < urls.index(
        f"https://hostname/api/v2/objects/{oid(2)}/objects"
    )

    assert [o.name for o in first.walk()] == ["Object 1", "Object 11", "Object 12"]
    assert first.children_count == 2  # noqa: PLR2004


@pytest.mark.asyncio
async def test_get_objects_three_levels(fake: FakeSession) -> None:
    """Test a deeper tree."""
    add_types(fake, 1)
    add_children(fake, OBJECT_ID, page(item(1)))
    add_children(fake, oid(1), page(item(11)))
    add_children(fake, oid(11), page(item(111), item(112)))
    async with Metasys("hostname", client=fake) as metasys:
        (obj,) = await metasys.get_objects(ROOT, levels=3)

    assert [o.name for o in obj.walk()] == ["Object 1", "Object 11", "Object 111", "Object 112"]


@pytest.mark.asyncio
async def test_get_objects_child_failure(fake: FakeSession) -> None:
    """Test that a failed child enumeration leaves the siblings intact."""
    add_types(fake, 1)
    add_children(fake, OBJECT_ID, page(item(1), item(2)))
    fake.add("get", f"objects/{oid(1)}/objects", MockResponse(403, reason="Forbidden"))
    add_children(fake, oid(2), page(item(21)))
    async with Metasys("hostname", client=fake) as metasys:
        first, second = await metasys.get_objects(ROOT, levels=2)

    assert first.children == []
    assert [c.name for c in second.children] == ["Object 21"]


@pytest.mark.asyncio
async def test_get_objects_invalid_id_is_leaf(fake: FakeSession) -> None:
    """Test that an item without a valid id is not enumerated further."""
    add_types(fake, 1)
    add_children(fake, OBJECT_ID, page(item(1, id="bogus")))
    async with Metasys("hostname", client=fake) as metasys:
        (obj,) = await metasys.get_objects(ROOT, levels=2)
    assert obj.id is None
    assert obj.children is None


@pytest.mark.asyncio
async def test_type_resolution_is_cached(fake: FakeSession) -> None:
    """Test that each type url is only requested once."""
    add_types(fake, 1)
    add_children(fake, OBJECT_ID, page(item(1), item(2), item(3)))
    async with Metasys("hostname", client=fake) as metasys:
        await metasys.get_objects(ROOT)
        await metasys.get_objects(ROOT)
    assert len(fake.calls_to("get", f"{TYPE_URL}1")) == 1


@pytest.mark.asyncio
async def test_type_cache_is_shared(fake: FakeSession) -> None:
    """Test that an injected cache is used and filled."""
    add_children(fake, OBJECT_ID, page(item(1), item(2, type_id=2)))
    add_types(fake, 2)
    cache = {f"{TYPE_URL}1": TypeDescriptor(1, "Cached")}
    async with Metasys("hostname", client=fake, type_cache=cache) as metasys:
        first, second = await metasys.get_objects(ROOT)

    assert first.description == "Cached"
    assert second.description == "Type 2"
    assert fake.calls_to("get", f"{TYPE_URL}1") == []
    assert cache[f"{TYPE_URL}2"] == TypeDescriptor(2, "Type 2")


@pytest.mark.asyncio
async def test_type_failures_are_not_cached(fake: FakeSession) -> None:
    """Test that unresolved types give an empty description and are retried."""
    add_children(fake, OBJECT_ID, page(item(1), item(2), {"id": oid(3), "name": "No type"}))
    async with Metasys("hostname", client=fake) as metasys:
        objects = await metasys.get_objects(ROOT)
        assert [o.description for o in objects] == ["", "", ""]
        assert len(fake.calls_to("get", f"{TYPE_URL}1")) == 2  # noqa: PLR2004
        assert metasys._type_cache == {}


@pytest.mark.asyncio
async def test_get_network_devices(fake: FakeSession) -> None:
    """Test that all network devices are listed."""
    add_types(fake, 185)
    fake.add(
        "get",
        "networkDevices",
        {"items": [item(1, 185), item(2, 185)], "next": "https://hostname/api/v2/networkDevices?page=2"},
        params={"page": 1},
    )
    fake.add("get", "networkDevices", {"items": [item(3, 185)], "next": None}, params={"page": 2})
    async with Metasys("hostname", client=fake) as metasys:
        devices = await metasys.get_network_devices()

    assert all(isinstance(d, MetasysObject) for d in devices)
    assert [d.name for d in devices] == ["Object 1", "Object 2", "Object 3"]
    assert {d.description for d in devices} == {"Type 185"}


@pytest.mark.asyncio
async def test_get_network_devices_of_type(fake: FakeSession) -> None:
    """Test that the device type is sent as a query parameter."""
    add_types(fake, 185)
    fake.add(
        "get",
        "networkDevices",
        {"items": [item(1, 185)], "next": None},
        params={"type": "185", "page": 1},
    )
    async with Metasys("hostname", client=fake) as metasys:
        devices = await metasys.get_network_devices(type="185")
        assert len(devices) == 1
        # Other types are not found
        assert await metasys.get_network_devices(type="186") == []

    first = fake.calls_to("get", "networkDevices")[0]
    assert first["params"] == {"type": "185", "page": 1}


@pytest.mark.asyncio
async def test_get_network_devices_failure(fake: FakeSession) -> None:
    """Test that a failed listing gives an empty list."""
    async with Metasys("hostname", client=fake) as metasys:
        assert await metasys.get_network_devices() == []


@pytest.mark.asyncio
async def test_get_network_device_types(fake: FakeSession) -> None:
    """Test listing the available network device types."""
    add_types(fake, 185, 195)
    fake.add(
        "get",
        "networkDevices/availableTypes",
        {
            "items": [
                {"typeUrl": f"{TYPE_URL}185", "count": 2},
                {"typeUrl": f"{TYPE_URL}195", "count": 1},
                {"typeUrl": f"{TYPE_URL}999", "count": 1},
            ]
        },
    )
    async with Metasys("hostname", client=fake) as metasys:
        types = await metasys.get_network_device_types()

    assert types == [TypeDescriptor(185, "Type 185"), TypeDescriptor(195, "Type 195")]
