"""Auth state change bus.

Every session store sharing a bus sees the sign-ins, refreshes and
sign-outs of the others. Consumers either register a callback with
``on()`` or iterate ``subscribe()``::

    async for change in bus.subscribe():
        if change.event is AuthEvent.SIGNED_OUT:
            ...

Free-threading safety:
    - AuthStateChange is a frozen dataclass (immutable, safe to share)
    - AuthEventBus uses a Lock to protect the subscriber and listener sets
    - Each subscriber gets its own asyncio.Queue
"""

import asyncio
import logging
import threading
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

logger = logging.getLogger("certiwize.auth")


class AuthEvent(Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"


@dataclass(frozen=True, slots=True)
class AuthStateChange:
    """One auth transition. ``session`` is None after a sign-out."""

    event: AuthEvent
    session: dict[str, Any] | None = None

    @property
    def user(self) -> dict[str, Any] | None:
        return self.session.get("user") if self.session else None


type AuthListener = Callable[[AuthStateChange], None]


class AuthEventBus:
    """Broadcast channel for auth state changes.

    ``publish()`` calls every listener synchronously, in registration
    order, then queues the change for every active subscriber. A failing
    listener is logged and does not stop delivery to the others.
    """

    __slots__ = ("_closed", "_listeners", "_lock", "_subscribers")

    def __init__(self) -> None:
        self._subscribers: set[asyncio.Queue[AuthStateChange | None]] = set()
        self._listeners: list[AuthListener] = []
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, change: AuthStateChange) -> None:
        with self._lock:
            if self._closed:
                return
            listeners = list(self._listeners)
            subscribers = set(self._subscribers)

        for listener in listeners:
            try:
                listener(change)
            except Exception:
                logger.exception("Auth listener %r failed on %s", listener, change.event.value)

        for queue in subscribers:
            try:
                queue.put_nowait(change)
            except asyncio.QueueFull:
                logger.warning("Dropping %s for a slow auth subscriber", change.event.value)

    def on(self, listener: AuthListener) -> Callable[[], None]:
        """Register *listener*; returns a function that unregisters it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    async def subscribe(self) -> AsyncIterator[AuthStateChange]:
        """Iterate over changes published from now on, until ``close()``."""
        queue: asyncio.Queue[AuthStateChange | None] = asyncio.Queue(maxsize=256)
        with self._lock:
            if self._closed:
                return
            self._subscribers.add(queue)
        try:
            while True:
                change = await queue.get()
                if change is None:
                    break
                yield change
        finally:
            with self._lock:
                self._subscribers.discard(queue)

    def close(self) -> None:
        """Stop every subscriber and drop every listener."""
        with self._lock:
            self._closed = True
            for queue in self._subscribers:
                try:
                    queue.put_nowait(None)
                except asyncio.QueueFull:
                    pass
            self._subscribers.clear()
            self._listeners.clear()
