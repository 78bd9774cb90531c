"""GoCardless REST client (direct-debit mandates and subscriptions).

Only the three calls the checkout needs: create a redirect flow, complete
it, and create a subscription on the resulting mandate. Every write sends
an ``Idempotency-Key`` so a retried browser request never double-charges.
"""

from typing import Any

import httpx

from certiwize.upstream.client import DEFAULT_TIMEOUT, fetch_with_timeout, raise_for_upstream

SERVICE = "GoCardless"
API_VERSION = "2015-07-06"

BASE_URLS = {
    "live": "https://api.gocardless.com",
    "sandbox": "https://api-sandbox.gocardless.com",
}


class GoCardless:
    """Thin async client over ``httpx``."""

    __slots__ = ("_access_token", "_base_url", "_client", "_timeout")

    def __init__(
        self,
        client: httpx.AsyncClient,
        access_token: str,
        environment: str = "sandbox",
        *,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._client = client
        self._access_token = access_token
        # anything but "live" talks to the sandbox
        self._base_url = BASE_URLS["live" if environment == "live" else "sandbox"]
        self._timeout = timeout

    @property
    def base_url(self) -> str:
        return self._base_url

    def _headers(self, idempotency_key: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._access_token}",
            "GoCardless-Version": API_VERSION,
            "Idempotency-Key": idempotency_key,
        }

    async def _post(self, path: str, body: dict[str, Any], idempotency_key: str) -> dict[str, Any]:
        response = await fetch_with_timeout(
            self._client,
            "POST",
            f"{self._base_url}{path}",
            timeout=self._timeout,
            json=body,
            headers=self._headers(idempotency_key),
        )
        return raise_for_upstream(SERVICE, response).json()

    async def create_redirect_flow(
        self,
        *,
        description: str,
        session_token: str,
        success_redirect_url: str,
        prefilled_customer: dict[str, str],
    ) -> dict[str, Any]:
        """Start mandate collection; returns the ``redirect_flows`` object."""
        data = await self._post(
            "/redirect_flows",
            {
                "redirect_flows": {
                    "description": description,
                    "session_token": session_token,
                    "success_redirect_url": success_redirect_url,
                    "prefilled_customer": prefilled_customer,
                }
            },
            f"create-flow-{session_token}",
        )
        return data["redirect_flows"]

    async def complete_redirect_flow(self, flow_id: str, session_token: str) -> dict[str, Any]:
        """Confirm a flow after the customer returns; ``links`` holds mandate and customer."""
        data = await self._post(
            f"/redirect_flows/{flow_id}/actions/complete",
            {"data": {"session_token": session_token}},
            f"complete-flow-{flow_id}",
        )
        return data["redirect_flows"]

    async def create_subscription(
        self,
        *,
        mandate: str,
        amount: int,
        interval_unit: str,
        name: str,
        idempotency_key: str,
        currency: str = "EUR",
        interval: int = 1,
    ) -> dict[str, Any]:
        data = await self._post(
            "/subscriptions",
            {
                "subscriptions": {
                    "amount": amount,
                    "currency": currency,
                    "interval_unit": interval_unit,
                    "interval": interval,
                    "name": name,
                    "links": {"mandate": mandate},
                }
            },
            idempotency_key,
        )
        return data["subscriptions"]


def field_errors(payload: Any) -> str:
    """Flatten GoCardless validation errors to ``"field: message, ..."``."""
    if not isinstance(payload, dict):
        return ""
    error = payload.get("error")
    if not isinstance(error, dict):
        return ""
    errors = error.get("errors") or []
    return ", ".join(f"{e.get('field')}: {e.get('message')}" for e in errors if isinstance(e, dict))
