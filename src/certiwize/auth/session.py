"""Auth session store.

Holds the current session and user for one client of the auth service,
and keeps them in step with an ``AuthEventBus`` shared by other stores::

    bus = AuthEventBus()
    store = AuthSessionStore(SupabaseAuth(client, url, anon_key), bus)
    await store.initialize()
    await store.sign_in("ada@example.com", "secret")
    store.user["email"]
"""

import logging
from collections.abc import Callable
from typing import Any

from certiwize.auth.events import AuthEvent, AuthEventBus, AuthStateChange
from certiwize.errors import AuthSessionError
from certiwize.upstream.supabase import SupabaseAuth

logger = logging.getLogger("certiwize.auth")


class AuthSessionStore:
    """Current session and user, synchronised through the event bus.

    Errors from the auth service (``UpstreamError``, ``UpstreamTimeout``)
    propagate to the caller and leave the store unchanged.
    """

    __slots__ = ("_auth", "_bus", "_session", "_unsubscribe", "_user")

    def __init__(self, auth: SupabaseAuth, bus: AuthEventBus | None = None) -> None:
        self._auth = auth
        self._bus = bus if bus is not None else AuthEventBus()
        self._session: dict[str, Any] | None = None
        self._user: dict[str, Any] | None = None
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def bus(self) -> AuthEventBus:
        return self._bus

    @property
    def session(self) -> dict[str, Any] | None:
        return self._session

    @property
    def user(self) -> dict[str, Any] | None:
        return self._user

    @property
    def access_token(self) -> str | None:
        return self._session.get("access_token") if self._session else None

    async def initialize(self, session: dict[str, Any] | None = None) -> dict[str, Any] | None:
        """Adopt a previously stored *session* and start following the bus.

        A session without its ``user`` is completed from the auth service.
        Calling this again only replaces the session.
        """
        if session is not None:
            if not session.get("user"):
                user = await self._auth.get_user(session["access_token"])
                session = {**session, "user": user}
            self._apply(session)

        if self._unsubscribe is None:
            self._unsubscribe = self._bus.on(self._on_change)
        return self._session

    async def sign_in(self, email: str, password: str) -> dict[str, Any]:
        session = await self._auth.sign_in_with_password(email, password)
        self._publish(AuthEvent.SIGNED_IN, session)
        return session

    async def refresh(self) -> dict[str, Any]:
        refresh_token = self._session.get("refresh_token") if self._session else None
        if not refresh_token:
            msg = "Cannot refresh: no active session"
            raise AuthSessionError(msg)
        session = await self._auth.refresh(refresh_token)
        self._publish(AuthEvent.TOKEN_REFRESHED, session)
        return session

    async def sign_out(self) -> None:
        """Revoke the session with the auth service, then forget it.

        Signing out without a session only clears local state.
        """
        if self.access_token:
            await self._auth.sign_out(self.access_token)
        self._publish(AuthEvent.SIGNED_OUT, None)

    async def update_user(self, **attributes: Any) -> dict[str, Any]:
        token = self.access_token
        if not token:
            msg = "Cannot update the user: no active session"
            raise AuthSessionError(msg)
        user = await self._auth.update_user(token, attributes)
        self._publish(AuthEvent.USER_UPDATED, {**self._session, "user": user})
        return user

    def close(self) -> None:
        """Stop following the bus. The current session is kept."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _publish(self, event: AuthEvent, session: dict[str, Any] | None) -> None:
        # Applied here too, for stores that never called initialize()
        self._apply(session)
        logger.debug("Auth state change: %s", event.value)
        self._bus.publish(AuthStateChange(event, session))

    def _on_change(self, change: AuthStateChange) -> None:
        self._apply(change.session)

    def _apply(self, session: dict[str, Any] | None) -> None:
        self._session = session
        self._user = session.get("user") if session else None
