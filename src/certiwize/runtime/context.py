"""Per-request execution context.

Carries the shared outbound HTTP client and collects background work
registered with ``wait_until``; the ASGI adapter settles that work once
the response has been sent.
"""

import logging
from collections.abc import Awaitable
from typing import Any

import anyio
import httpx

from certiwize.errors import ConfigurationError

logger = logging.getLogger("certiwize.runtime")


class ExecutionContext:
    """Lifetime hooks for one inbound request."""

    __slots__ = ("_http", "_pending", "upstream_timeout")

    def __init__(
        self,
        http: httpx.AsyncClient | None = None,
        *,
        upstream_timeout: float = 60.0,
    ) -> None:
        self._http = http
        self._pending: list[Awaitable[Any]] = []
        self.upstream_timeout = upstream_timeout

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            msg = "No outbound HTTP client is configured for this request"
            raise ConfigurationError(msg)
        return self._http

    @property
    def pending(self) -> int:
        return len(self._pending)

    def wait_until(self, awaitable: Awaitable[Any]) -> None:
        """Keep *awaitable* running after the response is produced."""
        self._pending.append(awaitable)

    async def settle(self) -> None:
        """Await every registered background task concurrently.

        Failures are logged; a failing task never affects its siblings.
        """
        pending, self._pending = self._pending, []
        if not pending:
            return

        async def _run(awaitable: Awaitable[Any]) -> None:
            try:
                await awaitable
            except Exception:
                logger.exception("Background task registered with wait_until() failed")

        async with anyio.create_task_group() as tg:
            for awaitable in pending:
                tg.start_soon(_run, awaitable)
