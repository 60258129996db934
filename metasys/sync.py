"""Blocking interface to the Metasys client."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from concurrent.futures import TimeoutError as FuturesTimeoutError
import threading
from typing import Any, TypeVar
from uuid import UUID

from .api import Metasys, TAttributeValues
from .models import Command, MetasysObject, TypeDescriptor
from .session import TToken
from .variant import Variant


T = TypeVar("T")


class _LoopThread:
    """An event loop running in a background thread."""

    def __init__(self) -> None:
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, name="metasys", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    def run(self, coro: Awaitable[T], timeout: float | None = None) -> T:
        """Run the coroutine in the loop and wait for the result."""
        if threading.current_thread() is self._thread:
            raise RuntimeError("Blocking calls can't be made from the client event loop")
        fut = asyncio.run_coroutine_threadsafe(coro, self._loop)
        try:
            return fut.result(timeout=timeout)
        except FuturesTimeoutError as err:
            fut.cancel()
            raise TimeoutError(f"Timeout waiting for Metasys operation ({timeout}s)") from err

    def stop(self) -> None:
        """Stop the loop and wait for the thread to finish."""
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join()
        self._loop.close()


class MetasysClient:
    """Metasys client with blocking methods.

    Each method blocks until the corresponding coroutine of `Metasys` has
    completed in a private event loop. The methods must not be called from
    code running in that loop.
    """

    def __init__(self, host: str, *, timeout: float | None = None, **kwargs: Any) -> None:
        """Initialize the client. The keyword arguments are passed to `Metasys`."""
        self._timeout = timeout
        self._loop = _LoopThread()

        async def create() -> Metasys:
            # The aiohttp session must be created in the loop that uses it
            return Metasys(host, **kwargs)

        try:
            self.api: Metasys = self._loop.run(create())
        except BaseException:
            self._loop.stop()
            raise
        self._closed = False

    def __enter__(self) -> MetasysClient:
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> bool:
        self.close()
        return False

    def close(self) -> None:
        """Close the client and stop its event loop."""
        if self._closed:
            return
        self._closed = True
        try:
            self._loop.run(self.api.close(), self._timeout)
        finally:
            self._loop.stop()

    def _call(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        if self._closed:
            raise RuntimeError("The client is closed")
        return self._loop.run(fn(*args, **kwargs), self._timeout)

    def login(self, username: str, password: str, refresh: bool = True) -> TToken:
        return self._call(self.api.login, username, password, refresh=refresh)

    def refresh(self) -> TToken:
        return self._call(self.api.refresh)

    def get_access_token(self) -> TToken:
        return self.api.get_access_token()

    def get_object_identifier(self, item_reference: str) -> UUID:
        return self._call(self.api.get_object_identifier, item_reference)

    def read_property(self, id: UUID, attribute_name: str) -> Variant:
        return self._call(self.api.read_property, id, attribute_name)

    def read_property_multiple(
        self, ids: Iterable[UUID] | None, attribute_names: Iterable[str] | None
    ) -> dict[UUID, list[Variant]] | None:
        return self._call(self.api.read_property_multiple, ids, attribute_names)

    def write_property(
        self, id: UUID, attribute_name: str, new_value: Any, priority: str | None = None
    ) -> None:
        self._call(self.api.write_property, id, attribute_name, new_value, priority)

    def write_property_multiple(
        self,
        ids: Iterable[UUID] | None,
        attribute_values: TAttributeValues | None,
        priority: str | None = None,
    ) -> None:
        self._call(self.api.write_property_multiple, ids, attribute_values, priority)

    def get_commands(self, id: UUID) -> list[Command]:
        return self._call(self.api.get_commands, id)

    def send_command(self, id: UUID, command: str, values: Iterable[Any] | None = None) -> None:
        self._call(self.api.send_command, id, command, values)

    def get_network_devices(self, type: str | None = None) -> list[MetasysObject]:
        return self._call(self.api.get_network_devices, type)

    def get_network_device_types(self) -> list[TypeDescriptor]:
        return self._call(self.api.get_network_device_types)

    def get_objects(self, id: UUID, levels: int = 1) -> list[MetasysObject] | None:
        return self._call(self.api.get_objects, id, levels)
