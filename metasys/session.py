"""Session and access token handling for the Metasys API."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
import logging
from typing import TYPE_CHECKING, Any, Self

from .const import MAX_REFRESH_DELAY, REFRESH_MARGIN
from .exceptions import MetasysApiError
from .utils import parse_timestamp, utcnow

if TYPE_CHECKING:
    from .api import Metasys

_LOGGER = logging.getLogger(__name__)

# Type definitions
TToken = tuple[str | None, datetime]


@dataclass(frozen=True, slots=True)
class Session:
    """The access token of a logged in client.

    Sessions are never modified. Login and refresh replace the session of
    the client with a new one, so a request always sees a consistent token
    and expiry.
    """

    token: str | None
    """The Authorization header value, `Bearer <token>`."""

    expires: datetime
    auto_refresh: bool = True

    @classmethod
    def empty(cls, auto_refresh: bool = True) -> Self:
        """Return a session without a token that has already expired."""
        return cls(None, utcnow(), auto_refresh)

    @property
    def headers(self) -> dict[str, str]:
        """Return the headers to authenticate requests with."""
        if not self.token:
            return {}
        return {"Authorization": self.token}

    def astuple(self) -> TToken:
        """Return the token and its expiration time."""
        return self.token, self.expires


def refresh_delay(expires: datetime, now: datetime) -> float:
    """Return the seconds to wait before refreshing a token.

    The refresh is due REFRESH_MARGIN seconds before the token expires, or
    immediately if that time has passed. Delays longer than MAX_REFRESH_DELAY
    are clamped, so the token is refreshed early rather than never.
    """
    delay = (expires - now).total_seconds() - REFRESH_MARGIN
    if delay <= 0:
        return 0.0
    if delay > MAX_REFRESH_DELAY:
        _LOGGER.debug(
            "Token refresh in %.0f seconds is too far ahead, clamping to %.0f seconds",
            delay,
            MAX_REFRESH_DELAY,
        )
        return MAX_REFRESH_DELAY
    return delay


class SessionManager:
    """Login, refresh and keep the access token of a client alive."""

    def __init__(self, metasys: Metasys) -> None:
        """Initialize the session manager."""
        self._metasys = metasys
        self._refresh_task: asyncio.Task | None = None
        self.session: Session = Session.empty()

    @property
    def refresh_pending(self) -> bool:
        """Return True if a token refresh is scheduled."""
        return self._refresh_task is not None and not self._refresh_task.done()

    def get_access_token(self) -> TToken:
        """Return the current token and its expiration time."""
        return self.session.astuple()

    async def login(self, username: str, password: str, refresh: bool = True) -> TToken:
        """Login and get an access token.

        If `refresh` is set, the token is refreshed automatically before it
        expires. Failures are logged and leave the client without a token.
        """
        data = await self._token_request(
            "login",
            method="post",
            data={"username": username, "password": password},
        )
        return self._update(data, auto_refresh=refresh, action="login")

    async def refresh(self) -> TToken:
        """Replace the access token with a new one."""
        data = await self._token_request("refreshToken")
        return self._update(data, auto_refresh=self.session.auto_refresh, action="refresh")

    async def close(self) -> None:
        """Cancel any scheduled refresh."""
        task = self._refresh_task
        self._refresh_task = None
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _token_request(self, url: str, **kwargs: Any) -> Any:
        """Request a token, returning None if the request fails."""
        try:
            return await self._metasys.request(url, **kwargs)
        except MetasysApiError as err:
            _LOGGER.error("Could not get access token: %s", err)
            return None

    def _update(self, data: Any, *, auto_refresh: bool, action: str) -> TToken:
        """Replace the session from a token response."""
        token = data.get("accessToken") if isinstance(data, dict) else None
        expires = data.get("expires") if isinstance(data, dict) else None

        if not isinstance(token, str) or not token or not isinstance(expires, str):
            if data is not None:
                _LOGGER.error("Could not get access token from %s response", action)
            self._clear(auto_refresh)
            return self.session.astuple()

        try:
            expires_at = parse_timestamp(expires)
        except ValueError as err:
            _LOGGER.error("Invalid token expiration %r in %s response: %s", expires, action, err)
            self._clear(auto_refresh)
            return self.session.astuple()

        self._metasys.redact.add_token(token)
        self.session = Session(f"Bearer {token}", expires_at, auto_refresh)
        _LOGGER.debug("Token from %s expires %s", action, expires_at.isoformat())

        if auto_refresh:
            self._schedule_refresh()
        else:
            self._cancel_refresh()
        return self.session.astuple()

    def _clear(self, auto_refresh: bool) -> None:
        """Drop the token and any scheduled refresh."""
        self._cancel_refresh()
        self.session = Session.empty(auto_refresh)

    def _cancel_refresh(self) -> None:
        """Cancel the pending refresh, unless it is the one running now."""
        task = self._refresh_task
        self._refresh_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    def _schedule_refresh(self) -> None:
        """Schedule a refresh ahead of the token expiry."""
        self._cancel_refresh()
        delay = refresh_delay(self.session.expires, utcnow())
        _LOGGER.debug("Scheduling token refresh in %.1f seconds", delay)
        self._refresh_task = asyncio.create_task(self._refresh_later(delay))

    async def _refresh_later(self, delay: float) -> None:
        """Wait and refresh the token."""
        await asyncio.sleep(delay)
        try:
            await self.refresh()
        except Exception as err:
            # Do this in order to show the error in the log.
            _LOGGER.exception("Scheduled token refresh failed: %s", err)
