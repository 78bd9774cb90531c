"""HTTP response with a chainable ``.with_*()`` transformation API.

Each transformation returns a new Response.
"""

from __future__ import annotations

import json as json_module
from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any

# Statuses that never carry a body on the wire
NULL_BODY_STATUSES = frozenset({101, 204, 205, 304})


@dataclass(frozen=True, slots=True)
class Response:
    """An HTTP response built through immutable transformations.

    Construct with a body, then chain ``.with_*()`` calls to set the
    status and headers::

        Response("created").with_status(201).with_header("X-Id", "42")
    """

    body: str | bytes = b""
    status: int = 200
    content_type: str = "text/plain; charset=utf-8"
    headers: tuple[tuple[str, str], ...] = ()

    # -- Chainable transformations --

    def with_status(self, status: int) -> Response:
        return replace(self, status=status)

    def with_header(self, name: str, value: str) -> Response:
        """Return a new Response with an additional header."""
        return replace(self, headers=(*self.headers, (name, value)))

    def with_headers(self, headers: Mapping[str, str]) -> Response:
        return replace(self, headers=(*self.headers, *headers.items()))

    def with_content_type(self, content_type: str) -> Response:
        return replace(self, content_type=content_type)

    def without_body(self) -> Response:
        return replace(self, body=b"")

    # -- Inspection --

    def header(self, name: str, default: str | None = None) -> str | None:
        """First value of header *name* (case-insensitive)."""
        if name.lower() == "content-type":
            return self.content_type
        lowered = name.lower()
        for key, value in self.headers:
            if key.lower() == lowered:
                return value
        return default

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def body_bytes(self) -> bytes:
        if isinstance(self.body, str):
            return self.body.encode("utf-8")
        return self.body

    @property
    def text(self) -> str:
        if isinstance(self.body, bytes):
            return self.body.decode("utf-8")
        return self.body

    def json(self) -> Any:
        return json_module.loads(self.body_bytes)


def json_response(
    data: Any,
    status: int = 200,
    headers: Mapping[str, str] | None = None,
) -> Response:
    """Serialize *data* as a JSON response."""
    response = Response(
        body=json_module.dumps(data, ensure_ascii=False, default=str),
        status=status,
        content_type="application/json",
    )
    if headers:
        response = response.with_headers(headers)
    return response
