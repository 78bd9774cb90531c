"""Bounded-time outbound HTTP calls.

Every upstream request goes through ``fetch_with_timeout``: the call is
made inside an anyio cancel scope and aborted once the time budget is
spent, so no request can hang a handler indefinitely.
"""

import logging
from typing import Any

import anyio
import httpx

from certiwize.errors import UpstreamError, UpstreamTimeout

logger = logging.getLogger("certiwize.upstream")

DEFAULT_TIMEOUT = 60.0


async def fetch_with_timeout(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    **kwargs: Any,
) -> httpx.Response:
    """Send a request, aborting it after *timeout* seconds.

    Raises:
        UpstreamTimeout: The request did not complete in time.
        httpx.HTTPError: Transport failure (DNS, connection refused, ...).
    """
    with anyio.move_on_after(timeout):
        return await client.request(method, url, **kwargs)
    logger.warning("%s %s aborted after %gs", method, url, timeout)
    raise UpstreamTimeout(timeout)


def decode_payload(response: httpx.Response) -> Any:
    """Body as JSON when it parses, else as text."""
    try:
        return response.json()
    except ValueError:
        return response.text


def raise_for_upstream(service: str, response: httpx.Response) -> httpx.Response:
    """Return *response* when it succeeded, else raise ``UpstreamError``."""
    if response.is_success:
        return response
    payload = decode_payload(response)
    logger.error("%s answered %d: %r", service, response.status_code, payload)
    raise UpstreamError(service, response.status_code, payload, response.reason_phrase)
