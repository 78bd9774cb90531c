"""Request dispatcher: drives a handler chain through ``next()``.

For each inbound request the route table produces a lazy enumeration of
handler steps. Every call to ``next()`` advances it by one step and
invokes that handler with a fresh ``DispatchContext``. A handler may
answer directly, or call ``ctx.next()`` (optionally with a rewritten
request) to delegate to the following step. When the enumeration is
exhausted, the request falls through to the static asset layer.
"""

import logging
from collections.abc import Awaitable, Iterator, MutableMapping
from typing import Any, Protocol
from urllib.parse import urljoin

import httpx

from certiwize._internal.invoke import invoke
from certiwize.config import Env
from certiwize.errors import DispatchError
from certiwize.http.request import Request
from certiwize.http.response import NULL_BODY_STATUSES, Response
from certiwize.routing.matcher import ParamValue
from certiwize.routing.table import HandlerStep, RouteTable
from certiwize.runtime.context import ExecutionContext

logger = logging.getLogger("certiwize.runtime")


class AssetFetcher(Protocol):
    """Anything that can answer a request from static assets."""

    async def fetch(self, request: Request, ctx: ExecutionContext) -> Response: ...


def clone_response(response: Response) -> Response:
    """Copy of *response* that carries no body for null-body statuses."""
    if response.status in NULL_BODY_STATUSES and response.body:
        return response.without_body()
    return response


class _ChainState:
    """Mutable state shared by every step of one request's chain."""

    __slots__ = ("data", "fail_open", "request", "steps")

    def __init__(self, request: Request, steps: Iterator[HandlerStep]) -> None:
        self.request = request
        self.steps = steps
        self.data: MutableMapping[str, Any] = {}
        self.fail_open = False


class DispatchContext:
    """What a handler sees: the request, its params, and the continuation.

    ``data`` is shared by every handler in the chain; it can be replaced,
    but only with another mutable mapping.
    """

    __slots__ = ("_ctx", "_dispatcher", "_state", "env", "function_path", "params", "request")

    def __init__(
        self,
        dispatcher: "Dispatcher",
        state: _ChainState,
        step: HandlerStep,
        env: Env,
        ctx: ExecutionContext,
    ) -> None:
        self._dispatcher = dispatcher
        self._state = state
        self._ctx = ctx
        self.request = state.request
        self.function_path = step.path
        self.params: dict[str | int, ParamValue] = step.params
        self.env = env

    @property
    def data(self) -> MutableMapping[str, Any]:
        return self._state.data

    @data.setter
    def data(self, value: MutableMapping[str, Any]) -> None:
        if not isinstance(value, MutableMapping):
            msg = "context.data must be a mutable mapping"
            raise TypeError(msg)
        self._state.data = value

    @property
    def http(self) -> httpx.AsyncClient:
        """Shared outbound client for upstream calls."""
        return self._ctx.http

    @property
    def upstream_timeout(self) -> float:
        return self._ctx.upstream_timeout

    async def next(self, input: str | Request | None = None, **init: Any) -> Response:  # noqa: A002
        """Run the next handler in the chain.

        ``input`` rewrites the request first: a string is resolved against
        the current URL and builds a new request from ``init`` (method,
        headers, body); a ``Request`` is used as is, with ``init`` applied
        on top. ``init`` alone overrides fields of the current request.
        """
        return await self._dispatcher._advance(self._state, self.env, self._ctx, input, init)

    def wait_until(self, awaitable: Awaitable[Any]) -> None:
        self._ctx.wait_until(awaitable)

    def pass_through_on_exception(self) -> None:
        """If the chain later raises, answer from static assets instead."""
        self._state.fail_open = True


class OutboundFetch:
    """Fallback that forwards the request to its own URL over HTTP."""

    __slots__ = ()

    async def fetch(self, request: Request, ctx: ExecutionContext) -> Response:
        upstream = await ctx.http.request(
            request.method,
            request.url,
            headers=[(k, v) for k, v in request.headers.pairs() if k.lower() != "host"],
            content=await request.body() if request.method not in ("GET", "HEAD") else None,
        )
        headers = tuple(
            (name, value)
            for name, value in upstream.headers.multi_items()
            if name.lower() not in ("content-type", "content-length", "content-encoding", "transfer-encoding")
        )
        return Response(
            body=upstream.content,
            status=upstream.status_code,
            content_type=upstream.headers.get("content-type", "application/octet-stream"),
            headers=headers,
        )


class Dispatcher:
    """Entry handler for a route table.

    ``assets`` answers requests that no handler claims; without it the
    request is forwarded over HTTP with ``OutboundFetch``.
    """

    __slots__ = ("_assets", "_routes")

    def __init__(self, routes: RouteTable, assets: AssetFetcher | None = None) -> None:
        self._routes = routes
        self._assets: AssetFetcher = assets if assets is not None else OutboundFetch()

    @property
    def routes(self) -> RouteTable:
        return self._routes

    @property
    def assets(self) -> AssetFetcher:
        return self._assets

    async def fetch(self, request: Request, env: Env, ctx: ExecutionContext) -> Response:
        """Dispatch *request* through the chain and return its response."""
        state = _ChainState(request, self._routes.dispatch(request.method, request.path))
        try:
            return await self._advance(state, env, ctx, None, {})
        except Exception:
            if not state.fail_open:
                raise
            logger.warning(
                "Handler chain failed for %s %s; serving static assets",
                state.request.method, state.request.path, exc_info=True,
            )
            return clone_response(await self._assets.fetch(state.request, ctx))

    async def _advance(
        self,
        state: _ChainState,
        env: Env,
        ctx: ExecutionContext,
        input: str | Request | None,  # noqa: A002
        init: dict[str, Any],
    ) -> Response:
        if isinstance(input, str):
            state.request = Request.build(urljoin(state.request.url, input), **init)
        elif isinstance(input, Request):
            state.request = input.replace(**init) if init else input
        elif init:
            state.request = state.request.replace(**init)

        step = next(state.steps, None)
        if step is None:
            return clone_response(await self._assets.fetch(state.request, ctx))

        context = DispatchContext(self, state, step, env, ctx)
        response = await invoke(step.handler, context)
        if not isinstance(response, Response):
            name = getattr(step.handler, "__qualname__", repr(step.handler))
            msg = f"Handler {name} should return a Response, got {type(response).__name__}"
            raise DispatchError(msg)
        return clone_response(response)
