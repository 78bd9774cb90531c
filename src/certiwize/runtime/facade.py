"""Outer facade: internal middleware wrapped around the entrypoint.

Two internal middlewares always run, outermost first:

- ``drain_body``: after the inner chain settles, reads any request body
  nobody consumed
- ``json_error``: turns any uncaught exception into a JSON 500

An entrypoint is one of two shapes, resolved once by ``wrap_entrypoint``:

- ``ExportedHandler``: plain functions ``fetch(request, env, ctx)`` and
  optionally ``scheduled(controller, env, ctx)``
- ``EntrypointClass``: a class instantiated per event with ``(ctx, env)``
  whose instances define ``fetch(request)`` and optionally
  ``scheduled(controller)``
"""

import logging
import time
import traceback
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from certiwize._internal.invoke import invoke
from certiwize.config import Env
from certiwize.errors import ConfigurationError
from certiwize.http.request import Request
from certiwize.http.response import Response, json_response
from certiwize.runtime.context import ExecutionContext

logger = logging.getLogger("certiwize.runtime")

ERROR_STACK_HEADER = "MF-Experimental-Error-Stack"

type FetchHandler = Callable[[Request, Env, ExecutionContext], Awaitable[Response] | Response]
type Next = Callable[[Request, Env], Awaitable[Response]]


@dataclass(frozen=True, slots=True)
class MiddlewareContext:
    """Passed to internal middleware: continue with ``next`` or fire an event with ``dispatch``."""

    next: Next
    dispatch: Callable[..., Awaitable[Any]]


type InternalMiddleware = Callable[
    [Request, Env, ExecutionContext, MiddlewareContext], Awaitable[Response]
]


class ScheduledController:
    """Describes one scheduled (cron) invocation."""

    __slots__ = ("_no_retry", "cron", "scheduled_time")

    def __init__(
        self,
        scheduled_time: float,
        cron: str = "",
        no_retry: Callable[[], None] | None = None,
    ) -> None:
        self.scheduled_time = scheduled_time
        self.cron = cron
        self._no_retry = no_retry

    def no_retry(self) -> None:
        """Ask the host not to retry this invocation if it fails."""
        if self._no_retry is not None:
            self._no_retry()

    def __repr__(self) -> str:
        return f"ScheduledController(cron={self.cron!r}, scheduled_time={self.scheduled_time!r})"


# -- Internal middleware --


async def drain_body(
    request: Request,
    env: Env,
    ctx: ExecutionContext,
    mw: MiddlewareContext,
) -> Response:
    """Run the chain, then read whatever body is left on the transport."""
    try:
        return await mw.next(request, env)
    finally:
        try:
            if not request.body_used:
                await request.drain()
        except Exception:
            logger.exception("Failed to drain the unused request body.")


def reduce_error(error: BaseException) -> dict[str, Any]:
    """Flatten an exception and its cause chain into plain data.

    ``cause`` follows ``__cause__`` (explicit ``raise ... from``) and is
    omitted at the end of the chain.
    """
    reduced: dict[str, Any] = {
        "name": type(error).__name__,
        "message": str(error),
        "stack": "".join(traceback.format_exception(error, chain=False)),
    }
    if error.__cause__ is not None:
        reduced["cause"] = reduce_error(error.__cause__)
    return reduced


async def json_error(
    request: Request,
    env: Env,
    ctx: ExecutionContext,
    mw: MiddlewareContext,
) -> Response:
    """Answer uncaught exceptions with a structured JSON 500."""
    try:
        return await mw.next(request, env)
    except Exception as exc:
        logger.exception("Unhandled error for %s %s", request.method, request.path)
        return json_response(reduce_error(exc), status=500, headers={ERROR_STACK_HEADER: "true"})


INTERNAL_MIDDLEWARE: tuple[InternalMiddleware, ...] = (drain_body, json_error)


def invoke_chain(
    request: Request,
    env: Env,
    ctx: ExecutionContext,
    dispatch: Callable[..., Awaitable[Any]],
    chain: Sequence[InternalMiddleware | FetchHandler],
) -> Awaitable[Response]:
    """Run *chain* head first; the last element is the final fetch handler."""
    head, *tail = chain
    if not tail:
        return invoke(head, request, env, ctx)

    def _next(new_request: Request, new_env: Env) -> Awaitable[Response]:
        return invoke_chain(new_request, new_env, ctx, dispatch, tail)

    return head(request, env, ctx, MiddlewareContext(next=_next, dispatch=dispatch))


# -- Entrypoints --


@dataclass(frozen=True, slots=True)
class ExportedHandler:
    """A plain set of event handler functions."""

    fetch: FetchHandler | None
    scheduled: Callable[[ScheduledController, Env, ExecutionContext], Any] | None = None


@dataclass(frozen=True, slots=True)
class EntrypointClass:
    """A class whose instances handle events.

    Instances are created per event as ``cls(ctx, env)``; ``env`` and
    ``ctx`` are also set as attributes before ``fetch`` runs.
    """

    cls: type


type Entrypoint = ExportedHandler | EntrypointClass


@dataclass(frozen=True, slots=True)
class Worker:
    """A wrapped entrypoint, ready to receive events from the host."""

    entrypoint: Entrypoint
    middleware: tuple[InternalMiddleware, ...] = field(default=INTERNAL_MIDDLEWARE)

    async def fetch(self, request: Request, env: Env, ctx: ExecutionContext) -> Response:
        final, instance = self._final_fetch(env, ctx)

        async def dispatch(event: str, **init: Any) -> Any:
            if event == "scheduled":
                return await self._run_scheduled(init.get("cron", ""), env, ctx, instance)
            return None

        return await invoke_chain(request, env, ctx, dispatch, (*self.middleware, final))

    async def scheduled(self, cron: str, env: Env, ctx: ExecutionContext) -> Any:
        """Deliver a scheduled event; a no-op when the entrypoint has no handler."""
        return await self._run_scheduled(cron, env, ctx, None)

    def _final_fetch(self, env: Env, ctx: ExecutionContext) -> tuple[FetchHandler, Any]:
        match self.entrypoint:
            case ExportedHandler(fetch=fetch):
                return fetch, None  # type: ignore[return-value]
            case EntrypointClass(cls=cls):
                instance = _instantiate(cls, env, ctx)

                async def _fetch(request: Request, env: Env, ctx: ExecutionContext) -> Response:
                    instance.env = env
                    instance.ctx = ctx
                    return await invoke(instance.fetch, request)

                return _fetch, instance

    async def _run_scheduled(self, cron: str, env: Env, ctx: ExecutionContext, instance: Any) -> Any:
        controller = ScheduledController(time.time() * 1000, cron)
        match self.entrypoint:
            case ExportedHandler(scheduled=None):
                logger.debug("Entrypoint has no scheduled() handler; ignoring cron %r", cron)
                return None
            case ExportedHandler(scheduled=scheduled):
                return await invoke(scheduled, controller, env, ctx)
            case EntrypointClass(cls=cls):
                target = instance if instance is not None else _instantiate(cls, env, ctx)
                if not callable(getattr(target, "scheduled", None)):
                    logger.debug("Entrypoint class has no scheduled() method; ignoring cron %r", cron)
                    return None
                return await invoke(target.scheduled, controller)


def _instantiate(cls: type, env: Env, ctx: ExecutionContext) -> Any:
    instance = cls(ctx, env)
    instance.env = env
    instance.ctx = ctx
    return instance


def wrap_entrypoint(
    entrypoint: Entrypoint,
    middleware: Sequence[InternalMiddleware] = INTERNAL_MIDDLEWARE,
) -> Worker:
    """Validate *entrypoint* and wrap it in the internal middleware chain.

    Raises:
        ConfigurationError: The entrypoint cannot handle fetch events.
    """
    match entrypoint:
        case ExportedHandler(fetch=fetch):
            if fetch is None:
                msg = "Handler does not export a fetch() function."
                raise ConfigurationError(msg)
        case EntrypointClass(cls=cls):
            if not callable(getattr(cls, "fetch", None)):
                msg = f"Entrypoint class {cls.__qualname__} does not define a fetch() function."
                raise ConfigurationError(msg)
        case _:
            msg = f"Unsupported entrypoint: {entrypoint!r}"
            raise ConfigurationError(msg)
    return Worker(entrypoint, tuple(middleware))
