"""Shared plumbing for the HTTP functions.

Handlers raise ``ApiError`` for anything that should reach the client as
a JSON error; ``@endpoint`` renders it. ``@authorization_required``
rejects requests without a non-empty ``Authorization`` header. Only the
presence of the header is checked here; token validation is left to the
services the token is forwarded to.

Usage::

    @endpoint()
    @authorization_required
    async def chat(ctx: DispatchContext) -> Response:
        payload = await read_json(ctx)
        ...
"""

import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from functools import wraps
from typing import Any

import httpx

from certiwize.errors import HTTPError, UpstreamError, UpstreamTimeout
from certiwize.http.response import Response, json_response
from certiwize.runtime.dispatcher import DispatchContext

logger = logging.getLogger("certiwize.api")

type Handler = Callable[[DispatchContext], Awaitable[Response]]

# Anything an upstream call can fail with once it has been attempted
UPSTREAM_FAILURES: tuple[type[Exception], ...] = (UpstreamError, UpstreamTimeout, httpx.HTTPError)

CORS_HEADERS = {"Access-Control-Allow-Origin": "*"}
PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}


class ApiError(HTTPError):
    """An HTTP error answered as ``{"error": detail, ...extra}``.

    ``details`` carries diagnostics (usually the upstream error payload);
    further keyword fields are merged into the body as is.
    """

    def __init__(self, status: int, detail: str, details: Any = None, **extra: Any) -> None:
        super().__init__(status=status, detail=detail)
        body: dict[str, Any] = {"error": detail}
        if details is not None:
            body["details"] = details
        body.update(extra)
        object.__setattr__(self, "body", body)

    def to_response(self) -> Response:
        return json_response(self.body, status=self.status)


def endpoint(*, cors: bool = False) -> Callable[[Handler], Handler]:
    """Render ``ApiError`` as JSON; with ``cors`` every answer allows any origin."""

    def decorate(handler: Handler) -> Handler:
        @wraps(handler)
        async def wrapper(ctx: DispatchContext) -> Response:
            try:
                response = await handler(ctx)
            except ApiError as exc:
                if exc.status >= 500:
                    logger.error("%s failed: %s", handler.__name__, exc.body)
                response = exc.to_response()
            if cors:
                response = response.with_headers(CORS_HEADERS)
            return response

        return wrapper

    return decorate


def authorization_required(handler: Handler) -> Handler:
    """Answer 401 unless the request carries a non-empty Authorization header."""

    @wraps(handler)
    async def wrapper(ctx: DispatchContext) -> Response:
        if not authorization(ctx):
            raise ApiError(401, "Unauthorized: missing token")
        return await handler(ctx)

    return wrapper


def authorization(ctx: DispatchContext) -> str:
    return (ctx.request.headers.get("authorization") or "").strip()


async def preflight(ctx: DispatchContext) -> Response:  # noqa: ARG001
    """CORS preflight for the browser-facing POST functions."""
    return Response(status=204).with_headers(PREFLIGHT_HEADERS)


async def read_json(ctx: DispatchContext) -> dict[str, Any]:
    """The request body as a JSON object, or a 400."""
    try:
        payload = await ctx.request.json()
    except ValueError:
        raise ApiError(400, "Invalid JSON") from None
    if not isinstance(payload, dict):
        raise ApiError(400, "JSON body must be an object")
    return payload


def require_fields(payload: Mapping[str, Any], fields: Iterable[str]) -> None:
    """400 naming every required field that is missing or empty."""
    fields = tuple(fields)
    if any(not payload.get(name) for name in fields):
        raise ApiError(400, f"Missing required fields: {', '.join(fields)}")


def require_binding(ctx: DispatchContext, name: str, message: str) -> str:
    """The env binding *name*, or a 500 with *message* when it is unset."""
    value = ctx.env.get_nonempty(name)
    if value is None:
        raise ApiError(500, message)
    return value


def blank_to_space(data: Mapping[str, Any]) -> dict[str, Any]:
    """Replace None and blank strings with a single space.

    The document templates behind the workflows render an empty string
    as a missing placeholder, a space renders as nothing.
    """
    return {
        key: " " if value is None or (isinstance(value, str) and not value.strip()) else value
        for key, value in data.items()
    }


def object_field(payload: Mapping[str, Any], name: str) -> dict[str, Any]:
    """``payload[name]`` as a dict (absent means empty), or a 400."""
    value = payload.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ApiError(400, f"{name} must be an object")
    return value


def upstream_details(exc: Exception) -> Any:
    """Diagnostic payload for a failed upstream call."""
    if isinstance(exc, UpstreamError) and exc.payload not in (None, ""):
        return exc.payload
    return str(exc)
