"""Immutable HTTP request.

Frozen metadata (method, absolute URL, headers) with async body access.
Copies made by ``replace()`` share the same body source, so the body can
be read by any handler in a chain and is only pulled from the transport
once.
"""

from __future__ import annotations

import json as json_module
from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from urllib.parse import urljoin, urlsplit

from certiwize._internal.asgi import Receive, Scope
from certiwize.http.headers import HeaderInput, Headers
from certiwize.http.query import QueryParams

if TYPE_CHECKING:
    from certiwize.http.forms import FormData


class BodySource:
    """Single-reader request body with a replayable chunk cache.

    Wraps either an ASGI ``receive`` callable or fixed bytes.
    """

    __slots__ = ("_chunks", "_done", "_receive", "_used")

    def __init__(self, receive: Receive | None = None, content: bytes = b"") -> None:
        self._receive = receive
        self._chunks: list[bytes] = [content] if content else []
        self._done = receive is None
        self._used = False

    @property
    def empty(self) -> bool:
        """True when there is provably no body at all."""
        return self._done and not self._chunks

    @property
    def used(self) -> bool:
        return self._used

    async def chunks(self) -> AsyncGenerator[bytes]:
        self._used = True
        index = 0
        while True:
            while index < len(self._chunks):
                yield self._chunks[index]
                index += 1
            if self._done:
                return
            await self._pull()

    async def _pull(self) -> None:
        assert self._receive is not None
        message = await self._receive()
        if message.get("type") == "http.disconnect":
            self._done = True
            return
        body = message.get("body", b"")
        if body:
            self._chunks.append(body)
        if not message.get("more_body", False):
            self._done = True

    async def read(self) -> bytes:
        return b"".join([chunk async for chunk in self.chunks()])

    async def drain(self) -> int:
        """Pull whatever the transport still holds. Returns bytes pulled."""
        before = sum(len(chunk) for chunk in self._chunks)
        while not self._done:
            await self._pull()
        return sum(len(chunk) for chunk in self._chunks) - before


def _to_bytes(body: str | bytes | None) -> bytes:
    if body is None:
        return b""
    if isinstance(body, str):
        return body.encode("utf-8")
    return body


@dataclass(frozen=True, slots=True)
class Request:
    """An immutable HTTP request.

    ``url`` is always absolute. Body access is asynchronous via
    ``.body()``, ``.json()``, ``.text()``, ``.form()`` or ``.stream()``.
    """

    method: str
    url: str
    headers: Headers = field(default_factory=Headers)

    # Shared across copies made by replace()
    _body: BodySource = field(default_factory=BodySource, repr=False, compare=False)

    # Parsed form data, cached per body source
    _cache: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    # -- Computed properties --

    @property
    def path(self) -> str:
        return urlsplit(self.url).path or "/"

    @property
    def query(self) -> QueryParams:
        return QueryParams(urlsplit(self.url).query)

    @property
    def content_type(self) -> str | None:
        return self.headers.get("content-type")

    @property
    def content_length(self) -> int | None:
        value = self.headers.get("content-length")
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            return None

    @property
    def has_body(self) -> bool:
        return not self._body.empty

    @property
    def body_used(self) -> bool:
        """True once any reader has started consuming the body."""
        return self._body.used

    # -- Async body access --

    async def body(self) -> bytes:
        return await self._body.read()

    async def stream(self) -> AsyncGenerator[bytes]:
        async for chunk in self._body.chunks():
            yield chunk

    async def json(self) -> Any:
        """Parse the body as JSON. Raises ``ValueError`` on malformed input."""
        return json_module.loads(await self.body())

    async def text(self) -> str:
        return (await self.body()).decode("utf-8")

    async def form(self) -> FormData:
        """Parse the body as URL-encoded or multipart form data.

        Raises:
            ValueError: If the Content-Type is not a form encoding.
        """
        if "_form" in self._cache:
            return self._cache["_form"]

        from certiwize.http.forms import parse_form_data

        content_type = self.content_type or "application/x-www-form-urlencoded"
        result = await parse_form_data(await self.body(), content_type)
        self._cache["_form"] = result
        return result

    async def drain(self) -> int:
        """Read any body bytes still pending on the transport."""
        return await self._body.drain()

    # -- Derivation --

    def replace(
        self,
        *,
        url: str | None = None,
        method: str | None = None,
        headers: HeaderInput | Headers = None,
        body: str | bytes | None = None,
    ) -> Request:
        """Return a copy with overrides; the body is shared unless replaced."""
        return Request(
            method=(method or self.method).upper(),
            url=urljoin(self.url, url) if url is not None else self.url,
            headers=Headers.build(headers) if headers is not None else self.headers,
            _body=BodySource(content=_to_bytes(body)) if body is not None else self._body,
            _cache={} if body is not None else self._cache,
        )

    # -- Factories --

    @classmethod
    def build(
        cls,
        url: str,
        *,
        method: str = "GET",
        headers: HeaderInput | Headers = None,
        body: str | bytes | None = None,
    ) -> Request:
        """Build a request from scratch, e.g. for a rewritten dispatch."""
        return cls(
            method=method.upper(),
            url=url,
            headers=Headers.build(headers),
            _body=BodySource(content=_to_bytes(body)),
        )

    @classmethod
    def from_asgi(cls, scope: Scope, receive: Receive) -> Request:
        """Create a Request from an ASGI HTTP scope and receive callable."""
        headers = Headers(tuple(scope.get("headers", ())))
        scheme = scope.get("scheme", "http")
        host = headers.get("host")
        if host is None:
            server = scope.get("server")
            host = f"{server[0]}:{server[1]}" if server else "localhost"
        path = scope.get("root_path", "") + scope["path"]
        url = f"{scheme}://{host}{path}"
        query = scope.get("query_string", b"")
        if query:
            url = f"{url}?{query.decode('latin-1')}"
        return cls(
            method=scope["method"],
            url=url,
            headers=headers,
            _body=BodySource(receive),
        )
