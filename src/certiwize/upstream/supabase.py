"""Clients for the hosted database/auth service (Supabase).

``SupabaseAdmin`` uses the service-role key: table REST calls (PostgREST)
and the auth admin API. ``SupabaseAuth`` uses the public anon key and a
user's tokens: password sign-in, refresh, sign-out, user lookup.
"""

from typing import Any
from urllib.parse import urlencode

import httpx

from certiwize.upstream.client import DEFAULT_TIMEOUT, fetch_with_timeout, raise_for_upstream

SERVICE = "Supabase"


class _SupabaseBase:
    __slots__ = ("_base_url", "_client", "_key", "_timeout")

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        key: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._key = key
        self._timeout = timeout

    @property
    def base_url(self) -> str:
        return self._base_url

    def _headers(self, bearer: str | None = None, **extra: str) -> dict[str, str]:
        return {"apikey": self._key, "Authorization": f"Bearer {bearer or self._key}", **extra}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        bearer: str | None = None,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        response = await fetch_with_timeout(
            self._client,
            method,
            f"{self._base_url}{path}",
            timeout=self._timeout,
            headers=self._headers(bearer, **(headers or {})),
            **kwargs,
        )
        return raise_for_upstream(SERVICE, response)


class SupabaseAdmin(_SupabaseBase):
    """Service-role client. Never expose its key to a browser."""

    __slots__ = ()

    # -- REST (tables) --

    async def insert(self, table: str, row: dict[str, Any]) -> None:
        """Insert one row without asking for it back."""
        await self._request(
            "POST", f"/rest/v1/{table}", json=row, headers={"Prefer": "return=minimal"},
        )

    async def select(self, table: str, *, columns: str = "*", **filters: str) -> list[dict[str, Any]]:
        """Rows of *table* where each ``column=value`` filter holds (PostgREST ``eq``)::

            await admin.select("subscription_plans", columns="id", name="monthly")
        """
        params = {column: f"eq.{value}" for column, value in filters.items()}
        params["select"] = columns
        response = await self._request("GET", f"/rest/v1/{table}", params=params)
        return response.json()

    async def upsert(self, table: str, row: dict[str, Any]) -> None:
        """Insert *row*, merging into an existing row on key conflict."""
        await self._request(
            "POST",
            f"/rest/v1/{table}",
            json=row,
            headers={"Prefer": "resolution=merge-duplicates"},
        )

    # -- Auth admin --

    async def find_user_by_email(self, email: str) -> dict[str, Any] | None:
        response = await self._request(
            "GET",
            "/auth/v1/admin/users",
            params={"page": 1, "per_page": 1, "filter": email},
        )
        users = response.json().get("users") or []
        return next((user for user in users if user.get("email") == email), None)

    async def create_user(self, email: str, *, user_metadata: dict[str, Any]) -> dict[str, Any]:
        """Create a user whose email is already confirmed."""
        response = await self._request(
            "POST",
            "/auth/v1/admin/users",
            json={"email": email, "email_confirm": True, "user_metadata": user_metadata},
        )
        return response.json()

    async def generate_magic_link(self, user_id: str, email: str, redirect_to: str) -> dict[str, Any]:
        response = await self._request(
            "POST",
            f"/auth/v1/admin/users/{user_id}/generate_link",
            json={"type": "magiclink", "email": email, "options": {"redirect_to": redirect_to}},
        )
        return response.json()

    def verify_url(self, hashed_token: str, redirect_to: str) -> str:
        """One-time login URL for a magic-link token."""
        query = urlencode({"token": hashed_token, "type": "magiclink", "redirect_to": redirect_to})
        return f"{self._base_url}/auth/v1/verify?{query}"


class SupabaseAuth(_SupabaseBase):
    """End-user auth client (anon key + user access tokens)."""

    __slots__ = ()

    async def sign_in_with_password(self, email: str, password: str) -> dict[str, Any]:
        """Returns the session: ``access_token``, ``refresh_token``, ``user``..."""
        response = await self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        return response.json()

    async def refresh(self, refresh_token: str) -> dict[str, Any]:
        response = await self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )
        return response.json()

    async def sign_out(self, access_token: str) -> None:
        await self._request("POST", "/auth/v1/logout", bearer=access_token)

    async def get_user(self, access_token: str) -> dict[str, Any]:
        response = await self._request("GET", "/auth/v1/user", bearer=access_token)
        return response.json()

    async def update_user(self, access_token: str, attributes: dict[str, Any]) -> dict[str, Any]:
        response = await self._request("PUT", "/auth/v1/user", bearer=access_token, json=attributes)
        return response.json()
