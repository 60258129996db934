"""Main API for Metasys."""

from __future__ import annotations

import asyncio
from collections.abc import (
    AsyncGenerator,
    Iterable,
    Mapping,
    MutableMapping,
)
from contextlib import aclosing
from dataclasses import dataclass
from http import HTTPStatus
import json
import logging
import random
import time
from typing import Any, Protocol, Self
from uuid import UUID

import aiohttp
from aiolimiter import AsyncLimiter
import pydantic

from .const import (
    API_RATELIMIT_MAX_REQUEST_RATE,
    API_RATELIMIT_PERIOD,
    API_RETRIES,
    API_RETRY_FACTOR,
    API_RETRY_INIT_DELAY,
    API_RETRY_JITTER,
    API_RETRY_MAXTIME,
    API_TIMEOUT,
    API_URL,
    EMPTY_ID,
    MAX_DEBUG_TEXT_LEN_ON_500,
    ApiVersion,
)
from .exceptions import (
    MetasysApiError,
    RequestConnectionError,
    RequestDataError,
    RequestError,
    RequestRetryError,
    RequestTimeoutError,
)
from .models import Command, MetasysObject, TypeDescriptor, parse_id
from .redact import Redactor
from .session import Session, SessionManager, TToken
from .validate import validate
from .variant import Variant, normalize

_LOGGER = logging.getLogger(__name__)

# API debug flags
DEBUG_API_CALLS = True
DEBUG_API_DATA = False
DEBUG_API_EXCEPTIONS = False

# Type definitions
TAttributeValues = Mapping[str, Any] | Iterable[tuple[str, Any]]


class TLogExc(Protocol):
    """Protocol for logging exceptions."""

    def __call__(self, exc: Exception) -> Exception: ...


@dataclass
class _Branch:
    """One level of an object tree being enumerated."""

    pages: AsyncGenerator[dict[str, Any], None]
    levels: int
    objects: list[MetasysObject]


class Metasys:
    """Client for the REST API of a Metasys server."""

    def __init__(
        self,
        host: str,
        *,
        version: ApiVersion | str = ApiVersion.V2,
        client: aiohttp.ClientSession | None = None,
        ignore_certificate_errors: bool = False,
        retries: int = API_RETRIES,
        max_time: float = API_RETRY_MAXTIME,
        timeout: float = API_TIMEOUT,
        redact_logs: bool = True,
        type_cache: MutableMapping[str, TypeDescriptor] | None = None,
    ) -> None:
        """Initialize the Metasys client.

        `client` can be an existing aiohttp session, which is then left open
        when the client closes. Otherwise a session is created, and
        `ignore_certificate_errors` turns off certificate verification for it.
        `type_cache` holds resolved type descriptions by type url and can be
        shared between clients of the same server.
        """
        self.host = host
        self.base_url = API_URL.format(host=host, version=ApiVersion(version))
        if client is None:
            connector = aiohttp.TCPConnector(ssl=False) if ignore_certificate_errors else None
            client = aiohttp.ClientSession(connector=connector)
            self._client_internal = True
        else:
            self._client_internal = False
        self._client = client
        self._retries = retries
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._max_time = max_time
        self._ratelimiter = AsyncLimiter(
            max_rate=API_RATELIMIT_MAX_REQUEST_RATE, time_period=API_RATELIMIT_PERIOD
        )
        self._sessions = SessionManager(self)
        self._type_cache: MutableMapping[str, TypeDescriptor] = (
            type_cache if type_cache is not None else {}
        )

        self.redact = Redactor(redact_logs)
        """Redactor for sensitive data in logs."""

    async def __aenter__(self) -> Self:
        """Enter the context manager."""
        return self

    async def __aexit__(self, exc_type, exc_value, traceback):
        """Exit the context manager."""
        await self.close()
        return False

    async def close(self) -> None:
        """Stop refreshing the token and close the connection."""
        await self._sessions.close()
        if self._client_internal:
            # If the client was created internally, close it
            await self._client.close()

    # =======================================================================
    #   SESSION METHODS

    @property
    def session(self) -> Session:
        """Return the current session."""
        return self._sessions.session

    async def login(self, username: str, password: str, refresh: bool = True) -> TToken:
        """Login to the Metasys server and get an access token.

        Returns the `Bearer` token and its expiration time. If the login
        fails, the token is None and the expiration time is now.
        """
        return await self._sessions.login(username, password, refresh=refresh)

    async def refresh(self) -> TToken:
        """Request a new access token before the current one expires."""
        return await self._sessions.refresh()

    def get_access_token(self) -> TToken:
        """Return the current access token and its expiration time."""
        return self._sessions.get_access_token()

    # =======================================================================
    #   REQUEST METHODS

    @staticmethod
    def _request_log(url, method, iteration, **kwargs):
        """Helper that yields request log entries."""
        try:
            jdata = kwargs.get("json", "")
            jlength = f" json length {len(jdata)}" if "json" in kwargs else ""
            attempt = f" (attempt {iteration})" if iteration > 1 else ""
            yield f"@@@  REQUEST {method.upper()} to '{url}'{jlength}{attempt}"
            if not DEBUG_API_DATA:
                return
            if "params" in kwargs:
                yield f"     params {kwargs['params']}"
            if "headers" in kwargs:
                headers = kwargs["headers"].copy()
                # Remove the Authorization header from the log
                if "Authorization" in headers:
                    headers["Authorization"] = "<Removed for security>"
                yield f"     headers {dict((k, v) for k, v in headers.items())}"
            if "json" in kwargs:
                yield f"     json '{kwargs['json']}'"
        except Exception:
            _LOGGER.exception("Failed to log request (ignored exception)")

    @staticmethod
    async def _response_log(resp: aiohttp.ClientResponse):
        """Helper that yield response log entries."""
        try:
            contents = await resp.read()
            yield f"@@@  RESPONSE {resp.status} length {len(contents)}"
            if not DEBUG_API_DATA:
                return
            yield f"     headers {dict((k, v) for k, v in resp.headers.items())}"
            if not contents:
                return
            yield f"     data '{await resp.text()}'"
        except Exception:
            _LOGGER.exception("Failed to log response (ignored exception)")

    async def _request_worker(
        self, url: str, method="get", retries=API_RETRIES, **kwargs
    ) -> AsyncGenerator[tuple[aiohttp.ClientResponse, TLogExc], None]:
        """API request generator that handles retries.

        This function handles logging and error handling. The generator will
        yield responses. If the request needs to be retried, the caller must
        call __next__.
        """

        error: Exception | None = None
        delay: float = API_RETRY_INIT_DELAY
        sleep_delay: float = 0.0
        start_time: float = time.perf_counter()
        iteration = 0
        for iteration in range(1, retries + 1):
            try:
                # Sleep before retrying the request
                if sleep_delay > 0:
                    if DEBUG_API_CALLS:
                        _LOGGER.debug("@@@  SLEEP for %.1f seconds", sleep_delay)
                    await asyncio.sleep(sleep_delay)

                # Log the request
                log_req = list(
                    self._request_log(
                        self.redact(url), method, iteration, **self.redact(kwargs)
                    )
                )
                if DEBUG_API_CALLS:
                    for msg in log_req:
                        _LOGGER.debug(msg)

                # Capture the current time
                start_time = time.perf_counter()

                # Make the request
                async with (
                    self._ratelimiter,
                    self._client.request(method=method, url=url, **kwargs) as response,
                ):
                    # Log the response
                    log_resp = [m async for m in self._response_log(response)]
                    if DEBUG_API_CALLS:
                        for msg in log_resp:
                            _LOGGER.debug(self.redact(msg))

                    # Prepare the exception handler
                    def log_exc(exc: Exception) -> Exception:
                        """Log the exception and return it."""
                        if DEBUG_API_EXCEPTIONS:
                            if not DEBUG_API_CALLS:
                                for msg in log_req + log_resp:
                                    _LOGGER.debug(self.redact(msg))
                            _LOGGER.error(str(exc), exc_info=exc)
                        return exc

                    # Let the caller handle the response. If the caller
                    # calls __next__ on the generator the request will be
                    # retried.
                    yield response, log_exc

            # Exceptions that can be retried
            except (TimeoutError, aiohttp.ClientError) as err:
                error = err  # Capture the last error
                if DEBUG_API_EXCEPTIONS:
                    _LOGGER.error(
                        "Request to %s failed (attempt %s): %s",
                        self.redact(url),
                        iteration,
                        type(err).__qualname__,
                        exc_info=err,
                    )

            finally:
                # Calculate the next exponential backoff delay with jitter
                delay = delay * API_RETRY_FACTOR
                delay = random.normalvariate(delay, delay * API_RETRY_JITTER)
                delay = min(delay, self._max_time)

                # If the sleep time is negative, it means the request took
                # longer than the calculated delay, so we don't need to sleep.
                sleep_delay = delay - time.perf_counter() + start_time

        if isinstance(error, TimeoutError):
            raise RequestTimeoutError(
                f"Request to {url} timed out after {iteration} retries"
            ) from None

        if isinstance(error, aiohttp.ClientError):
            raise RequestConnectionError(
                f"Request to {url} failed after {iteration} retries: {error}"
            ) from None

        raise RequestRetryError(f"Request to {url} failed after {iteration} retries") from None

    async def request(
        self,
        url: str,
        *,
        method: str = "get",
        data: Any = None,
        params: Mapping[str, str | int] | None = None,
        base_url: str | None = None,
    ) -> Any:
        """Make a request to the API.

        `url` is relative to the API base url unless `base_url` is given.
        The access token of the current session, if any, is sent with the
        request. Raises a MetasysApiError if the request fails.
        """

        full_url = (self.base_url if base_url is None else base_url) + url
        kwargs: dict[str, Any] = {
            "timeout": self._timeout,
            "headers": {
                "Accept": "application/json",
                **self.session.headers,
            },
        }
        if data is not None:
            kwargs["json"] = data
        if params:
            kwargs["params"] = dict(params)

        # Run the _request_worker() in a context manager that will close the
        # generator when the context is exited, ensuring the request and
        # connection is closed when done.
        async with aclosing(
            self._request_worker(
                full_url,
                method=method,
                retries=self._retries,
                **kwargs,
            )
        ) as ctx:
            # Each iteration is a new request. resp is the response object, while
            # log_exc is a callback that will log the exception if the request
            # fails.
            async for response, log_exc in ctx:
                if response.status in (
                    HTTPStatus.CREATED,
                    HTTPStatus.ACCEPTED,
                    HTTPStatus.NO_CONTENT,
                ):
                    return await response.read()

                if response.status == HTTPStatus.OK:
                    # Read the JSON payload
                    try:
                        json_result = await response.json(content_type=None)
                    except (json.JSONDecodeError, UnicodeDecodeError) as err:
                        raise log_exc(
                            RequestDataError(f"Failed to decode json: {err}"),
                        ) from err

                    # Validate the incoming json data. Writes and commands
                    # share urls with reads, but their results are not used.
                    if method.lower() in ("get", "post"):
                        try:
                            validate(json_result, url=url)
                        except pydantic.ValidationError as err:
                            raise log_exc(
                                RequestDataError(f"Failed to validate data: {err}"),
                            ) from err

                    return json_result

                error = RequestError(
                    f"{method.upper()} request to {self.redact(full_url)} failed with status {response.status}: {response.reason}",  # noqa: E501
                    response.status,
                )

                # Internal server errors on GET are logged and retried, while
                # other methods are not retried.
                if response.status == HTTPStatus.INTERNAL_SERVER_ERROR:
                    log_exc(error)  # Log the error
                    if DEBUG_API_CALLS:
                        text = await response.text()
                        if len(text) > MAX_DEBUG_TEXT_LEN_ON_500:
                            text = text[:MAX_DEBUG_TEXT_LEN_ON_500] + "..."
                        _LOGGER.debug("     PAYLOAD %r", self.redact(text))
                    if method.lower() == "get":
                        continue  # GET: Retry request
                    raise error  # PATCH/PUT/POST: Raise error

                # All other error codes will be raised
                raise log_exc(error)
            return None  # Should not happen, but the linter likes it.

    # =======================================================================
    #   OBJECT METHODS

    async def get_object_identifier(self, item_reference: str) -> UUID:
        """Return the object identifier of a fully qualified reference.

        Returns EMPTY_ID if the reference can't be resolved.
        """
        try:
            data = await self.request("objectIdentifiers", params={"fqr": item_reference})
        except MetasysApiError as err:
            _LOGGER.error("Could not get object identifier of %r: %s", item_reference, err)
            return EMPTY_ID

        objid = parse_id(data)
        if objid is None:
            _LOGGER.error("Invalid object identifier %r for %r", data, item_reference)
            return EMPTY_ID
        return objid

    async def read_property(self, id: UUID, attribute_name: str) -> Variant:
        """Read one attribute of an object.

        Failed reads give the unsupported value rather than an error.
        """
        try:
            data = await self.request(f"objects/{id}/attributes/{attribute_name}")
        except MetasysApiError as err:
            _LOGGER.error("Could not read %s of %s: %s", attribute_name, id, err)
            return Variant(id, attribute_name)

        item = data.get("item") if isinstance(data, dict) else None
        node = item.get(attribute_name) if isinstance(item, dict) else None
        return normalize(node, id, attribute_name)

    async def read_property_multiple(
        self, ids: Iterable[UUID] | None, attribute_names: Iterable[str] | None
    ) -> dict[UUID, list[Variant]] | None:
        """Read many attributes of many objects.

        The result maps each id to its values, in the order of the given ids
        and attribute names. Returns None if either argument is None, and an
        empty dict if either is empty.
        """
        if ids is None or attribute_names is None:
            return None

        ids = list(dict.fromkeys(ids))
        attribute_names = list(dict.fromkeys(attribute_names))
        if not ids or not attribute_names:
            return {}

        # Reading single attributes is faster than reading entire objects on
        # the server, even though it makes more requests.
        pairs = [(objid, attr) for objid in ids for attr in attribute_names]
        variants = await asyncio.gather(
            *(self.read_property(objid, attr) for objid, attr in pairs)
        )

        results: dict[UUID, list[Variant]] = {objid: [] for objid in ids}
        for (objid, _attr), variant in zip(pairs, variants, strict=True):
            results[objid].append(variant)
        return results

    async def read_object(self, id: UUID) -> dict[str, Any] | None:
        """Read an entire object. Returns None if the read fails."""
        try:
            return await self.request(f"objects/{id}")
        except MetasysApiError as err:
            _LOGGER.error("Could not read object %s: %s", id, err)
            return None

    @staticmethod
    def _write_body(
        attribute_values: TAttributeValues, priority: str | None
    ) -> dict[str, dict[str, Any]]:
        """Create the body of a write request."""
        if isinstance(attribute_values, Mapping):
            attribute_values = attribute_values.items()
        item = dict(attribute_values)
        if priority is not None:
            item["priority"] = priority
        return {"item": item}

    async def _write(self, id: UUID, body: dict[str, dict[str, Any]]) -> bool:
        """Patch the object with the body."""
        try:
            await self.request(f"objects/{id}", method="patch", data=body)
        except MetasysApiError as err:
            _LOGGER.error(
                "Could not write %s to %s: %s", ", ".join(body["item"]), id, err
            )
            return False
        return True

    async def write_property(
        self, id: UUID, attribute_name: str, new_value: Any, priority: str | None = None
    ) -> None:
        """Write one attribute of an object."""
        await self._write(id, self._write_body([(attribute_name, new_value)], priority))

    async def write_property_multiple(
        self,
        ids: Iterable[UUID] | None,
        attribute_values: TAttributeValues | None,
        priority: str | None = None,
    ) -> None:
        """Write the same attribute values to many objects."""
        if ids is None or attribute_values is None:
            return

        body = self._write_body(attribute_values, priority)
        await asyncio.gather(*(self._write(objid, body) for objid in dict.fromkeys(ids)))

    async def get_commands(self, id: UUID) -> list[Command]:
        """Return the commands available on an object."""
        try:
            data = await self.request(f"objects/{id}/commands")
        except MetasysApiError as err:
            _LOGGER.error("Could not get commands of %s: %s", id, err)
            return []

        if not isinstance(data, list):
            _LOGGER.error("Could not parse commands of %s", id)
            return []

        commands = []
        for item in data:
            try:
                commands.append(Command.from_dict(item))
            except (TypeError, ValueError) as err:
                _LOGGER.warning("Skipping invalid command %r of %s: %s", item, id, err)
        return commands

    async def send_command(
        self, id: UUID, command: str, values: Iterable[Any] | None = None
    ) -> None:
        """Send a command to an object."""
        _LOGGER.debug("Command %s to %s", command, id)
        try:
            await self.request(
                f"objects/{id}/commands/{command}", method="put", data=list(values or ())
            )
        except MetasysApiError as err:
            _LOGGER.error("Could not send command %s to %s: %s", command, id, err)

    # =======================================================================
    #   ENUMERATION METHODS

    async def _get_type(self, item: Mapping[str, Any]) -> TypeDescriptor:
        """Resolve the type of an item from its typeUrl."""
        url = item.get("typeUrl")
        if not isinstance(url, str) or not url:
            _LOGGER.warning("Could not get type enumeration. Item is missing typeUrl")
            return TypeDescriptor.UNRESOLVED

        if (cached := self._type_cache.get(url)) is not None:
            return cached

        # Type urls are normally absolute
        base_url = "" if url.startswith(("http://", "https://")) else None
        try:
            data = await self.request(url, base_url=base_url)
        except MetasysApiError as err:
            _LOGGER.error("Could not get type enumeration %s: %s", self.redact(url), err)
            return TypeDescriptor.UNRESOLVED

        typeid = data.get("id") if isinstance(data, dict) else None
        description = data.get("description") if isinstance(data, dict) else None
        if not isinstance(typeid, int) or isinstance(typeid, bool) or not isinstance(
            description, str
        ):
            _LOGGER.error("Could not get type enumeration %s. Missing required field", url)
            return TypeDescriptor.UNRESOLVED

        descriptor = TypeDescriptor(typeid, description)
        self._type_cache[url] = descriptor
        return descriptor

    async def _paginate(
        self, url: str, params: Mapping[str, str | int] | None = None, *, counted: bool = False
    ) -> AsyncGenerator[dict[str, Any], None]:
        """Yield the items of a paged collection.

        The next page is requested when the items of the previous page have
        been consumed, and only while the page has a `next` link. If
        `counted` is set, a page with `total` 0 has no items. Pagination
        stops at the first page that fails.
        """
        page = 1
        while True:
            try:
                data = await self.request(url, params={**(params or {}), "page": page})
            except MetasysApiError as err:
                _LOGGER.error("Could not get page %s of %s: %s", page, url, err)
                return

            if not isinstance(data, dict):
                _LOGGER.error("Could not format page %s of %s", page, url)
                return
            if counted and not data.get("total"):
                return

            items = data.get("items")
            if not isinstance(items, list):
                _LOGGER.error("Could not format page %s of %s. Missing items", page, url)
                return

            for item in items:
                if isinstance(item, dict):
                    yield item

            if data.get("next") is None:
                return
            page += 1

    async def get_network_devices(self, type: str | None = None) -> list[MetasysObject]:
        """Return all network devices, optionally of a given type."""
        params = {"type": type} if type is not None else None
        devices: list[MetasysObject] = []
        async with aclosing(self._paginate("networkDevices", params)) as items:
            async for item in items:
                info = await self._get_type(item)
                devices.append(MetasysObject(item, info.description))
        return devices

    async def get_network_device_types(self) -> list[TypeDescriptor]:
        """Return the available network device types."""
        try:
            data = await self.request("networkDevices/availableTypes")
        except MetasysApiError as err:
            _LOGGER.error("Could not get network device types: %s", err)
            return []

        items = data.get("items") if isinstance(data, dict) else None
        if not isinstance(items, list):
            _LOGGER.error("Could not format network device types")
            return []

        types = []
        for item in items:
            if not isinstance(item, dict):
                continue
            info = await self._get_type(item)
            if info.is_resolved:
                types.append(info)
        return types

    async def get_objects(self, id: UUID, levels: int = 1) -> list[MetasysObject] | None:
        """Return the child objects of an object.

        `levels` is the depth of the tree to enumerate, where 1 only gives
        the immediate children. Returns None if `levels` is less than 1.
        Children are enumerated depth-first, finishing each object before
        moving on to its next sibling.
        """
        if levels < 1:
            return None

        root: list[MetasysObject] = []
        stack = [_Branch(self._paginate(f"objects/{id}/objects", counted=True), levels, root)]
        try:
            while stack:
                branch = stack[-1]
                item = await anext(branch.pages, None)
                if item is None:
                    stack.pop()
                    continue

                info = await self._get_type(item)
                obj = MetasysObject(item, info.description)
                branch.objects.append(obj)
                if branch.levels <= 1:
                    continue

                objid = obj.id
                if objid is None:
                    _LOGGER.warning("Object %r has no valid id, children are skipped", item)
                    continue
                obj.children = []
                stack.append(
                    _Branch(
                        self._paginate(f"objects/{objid}/objects", counted=True),
                        branch.levels - 1,
                        obj.children,
                    )
                )
        finally:
            for branch in stack:
                await branch.pages.aclose()
        return root
