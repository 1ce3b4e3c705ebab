"""Entitlement revalidation controller.

State machine::

    unknown -> checking -> valid(expires_at) | invalid

A previously confirmed cache entry is shown as ``valid`` straight away and
then re-confirmed in the background. Any negative server answer clears the
cache and wins over the optimistic state. Transport failures are not
negative answers; they only resolve a ``checking`` state to ``invalid``.

Checks never overlap: a tick that arrives while a check is in flight joins
that check instead of starting another.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from enum import Enum
from urllib.parse import parse_qs, urlsplit

from keygate.client.api_client import KeyGateClient
from keygate.client.cache import CachedEntitlement, EntitlementCache
from keygate.client.config import get_client_settings
from keygate.client.device import DeviceIdentityProvider
from keygate.client.exceptions import ClientError, RequestRejectedError

logger = logging.getLogger(__name__)

Listener = Callable[["EntitlementState", datetime | None], None]


class EntitlementState(str, Enum):
    UNKNOWN = "unknown"
    CHECKING = "checking"
    VALID = "valid"
    INVALID = "invalid"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def extract_token(callback_url: str) -> str | None:
    """Return the ``token`` query parameter of a callback URL, if non-empty."""
    try:
        query = parse_qs(urlsplit(callback_url).query)
    except ValueError:
        return None
    values = query.get("token") or []
    token = values[0].strip() if values else ""
    return token or None


def format_time_remaining(expires_at: datetime | None, now: datetime) -> str:
    if expires_at is None or expires_at <= now:
        return "Expired"
    total_minutes = int((expires_at - now).total_seconds() // 60)
    hours, minutes = divmod(total_minutes, 60)
    if hours > 0:
        return f"{hours}h {minutes}m remaining"
    return f"{minutes}m remaining"


class EntitlementController:
    """Keeps the local entitlement in sync with the KeyGate service."""

    def __init__(
        self,
        api: KeyGateClient,
        device: DeviceIdentityProvider,
        cache: EntitlementCache,
        interval: float | None = None,
        clock: Callable[[], datetime] = _utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.api = api
        self.device = device
        self.cache = cache
        self.interval = (
            interval if interval is not None else get_client_settings().REVALIDATION_INTERVAL_SECONDS
        )
        self._clock = clock
        self._sleep = sleep

        self._state = EntitlementState.UNKNOWN
        self._expires_at: datetime | None = None
        self._listeners: list[Listener] = []
        self._inflight: asyncio.Task | None = None
        self._loop_task: asyncio.Task | None = None

    @property
    def state(self) -> EntitlementState:
        return self._state

    @property
    def expires_at(self) -> datetime | None:
        return self._expires_at

    @property
    def is_entitled(self) -> bool:
        return self._state == EntitlementState.VALID

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        self._listeners.remove(listener)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, run_loop: bool = True) -> None:
        """Show any cached entitlement optimistically, then confirm it."""
        entry = self.cache.load(self._clock())
        if entry is not None:
            self._set_state(EntitlementState.VALID, entry.expires_at)
        else:
            self._set_state(EntitlementState.CHECKING, None)

        self.tick()

        if run_loop and self._loop_task is None:
            self._loop_task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        for task in (self._loop_task, self._inflight):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._loop_task = None
        self._inflight = None

    def tick(self) -> asyncio.Task:
        """Start a check unless one is already in flight; return that check."""
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.create_task(self._check())
        return self._inflight

    async def check_now(self) -> EntitlementState:
        await self.tick()
        return self._state

    async def settle(self) -> None:
        """Wait for the in-flight check, if any."""
        if self._inflight is not None:
            await self._inflight

    async def _run(self) -> None:
        while True:
            await self._sleep(self._next_delay())
            await self.tick()

    def _next_delay(self) -> float:
        if self._state == EntitlementState.VALID and self._expires_at is not None:
            remaining = (self._expires_at - self._clock()).total_seconds()
            return max(0.0, min(self.interval, remaining))
        return self.interval

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    async def _check(self) -> None:
        entry = self.cache.load(self._clock())
        device_id = self.device.get_device_id()

        try:
            if entry is not None:
                result = await self.api.validate(entry.token_id, device_id)
                token_id, valid, expires_at = entry.token_id, result.valid, result.expires_at
            else:
                found = await self.api.current_entitlement(device_id)
                token_id, valid, expires_at = found.token_id, found.valid, found.expires_at
        except RequestRejectedError:
            logger.info("Cached entitlement rejected by service")
            self._apply_negative(entry.token_id if entry else None)
            return
        except ClientError as e:
            self._apply_transient(e)
            return

        if valid and token_id and expires_at is not None:
            if entry is not None and self._cache_changed(entry.token_id):
                return
            self._accept(token_id, expires_at)
        else:
            self._apply_negative(entry.token_id if entry else None)

    def _cache_changed(self, checked_token_id: str) -> bool:
        """True if another flow replaced the cache entry while we were checking."""
        current = self.cache.load(self._clock())
        return current is not None and current.token_id != checked_token_id

    def _accept(self, token_id: str, expires_at: datetime) -> bool:
        if expires_at <= self._clock():
            self.cache.clear()
            self._set_state(EntitlementState.INVALID, None)
            return False
        self.cache.save(CachedEntitlement(token_id=token_id, expires_at=expires_at))
        self._set_state(EntitlementState.VALID, expires_at)
        return True

    def _apply_negative(self, checked_token_id: str | None) -> None:
        if checked_token_id is not None and self._cache_changed(checked_token_id):
            return
        self.cache.clear()
        self._set_state(EntitlementState.INVALID, None)

    def _apply_transient(self, error: Exception) -> None:
        logger.warning("Entitlement check failed: %s", error)
        if self._state in (EntitlementState.UNKNOWN, EntitlementState.CHECKING):
            self._set_state(EntitlementState.INVALID, None)
        elif (
            self._state == EntitlementState.VALID
            and self._expires_at is not None
            and self._expires_at <= self._clock()
        ):
            self.cache.clear()
            self._set_state(EntitlementState.INVALID, None)

    # ------------------------------------------------------------------
    # Redirect flow
    # ------------------------------------------------------------------

    async def request_key(self, callback_url: str | None = None) -> str:
        """Issue a token and return the gate URL to open."""
        ticket = await self.api.issue(self.device.get_device_id(), callback_url)
        return ticket.completion_url

    async def complete_redirect(self, callback_url: str) -> bool:
        """
        Finish the redirect flow from the callback URL.

        The token in the URL is always confirmed with the service before
        anything is unlocked. Transport failures propagate as
        ``ServiceUnavailableError`` so the caller can offer a retry.
        """
        token_id = extract_token(callback_url)
        if token_id is None:
            return False

        try:
            result = await self.api.validate(token_id, self.device.get_device_id())
        except RequestRejectedError:
            return False

        if not result.valid or result.expires_at is None:
            return False
        return self._accept(token_id, result.expires_at)

    def time_remaining(self) -> str:
        expires_at = self._expires_at if self._state == EntitlementState.VALID else None
        return format_time_remaining(expires_at, self._clock())

    def _set_state(self, state: EntitlementState, expires_at: datetime | None) -> None:
        if state == self._state and expires_at == self._expires_at:
            return
        self._state = state
        self._expires_at = expires_at
        for listener in list(self._listeners):
            try:
                listener(state, expires_at)
            except Exception:
                logger.exception("Entitlement listener failed")
