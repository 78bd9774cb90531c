"""ASGI response sending: translates a Response into ASGI messages."""

from certiwize._internal.asgi import Send
from certiwize.http.response import NULL_BODY_STATUSES, Response


def _body_allowed(status: int) -> bool:
    """Whether an HTTP status code permits a response body."""
    return not (100 <= status < 200 or status in NULL_BODY_STATUSES)


async def send_response(response: Response, send: Send, *, head: bool = False) -> None:
    """Send *response* as one start message and one body message.

    For ``HEAD`` requests the headers (including ``content-length``) are
    those of the full response but no body is sent.
    """
    raw_headers: list[tuple[bytes, bytes]] = [
        (b"content-type", response.content_type.encode("latin-1")),
    ]
    for name, value in response.headers:
        if name.lower() in ("content-type", "content-length"):
            continue
        raw_headers.append((name.lower().encode("latin-1"), value.encode("latin-1")))

    body = response.body_bytes if _body_allowed(response.status) else b""
    raw_headers.append((b"content-length", str(len(body)).encode("latin-1")))

    await send(
        {
            "type": "http.response.start",
            "status": response.status,
            "headers": raw_headers,
        }
    )
    await send(
        {
            "type": "http.response.body",
            "body": b"" if head else body,
        }
    )
