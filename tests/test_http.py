"""Tests for certiwize.http: Request, Response, Headers, QueryParams."""

import json

import pytest

from certiwize.http.headers import Headers
from certiwize.http.query import QueryParams
from certiwize.http.request import Request
from certiwize.http.response import Response, json_response


def _make_scope(**overrides: object) -> dict[str, object]:
    """Build a minimal valid ASGI HTTP scope."""
    base: dict[str, object] = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "GET",
        "path": "/",
        "raw_path": b"/",
        "query_string": b"",
        "root_path": "",
        "headers": [],
        "server": ("localhost", 8000),
        "client": ("127.0.0.1", 54321),
    }
    base.update(overrides)
    return base


def _make_receive(*bodies: bytes):
    """Create an ASGI receive callable that yields bodies."""
    messages = []
    for i, body in enumerate(bodies):
        is_last = i == len(bodies) - 1
        messages.append({"type": "http.request", "body": body, "more_body": not is_last})
    if not messages:
        messages.append({"type": "http.request", "body": b"", "more_body": False})
    it = iter(messages)

    async def receive():
        return next(it)

    return receive


class TestRequestFromASGI:
    def test_absolute_url_from_host_header(self) -> None:
        scope = _make_scope(
            method="POST",
            path="/api/chat",
            query_string=b"a=1&a=2",
            headers=[(b"host", b"app.test")],
            scheme="https",
        )
        req = Request.from_asgi(scope, _make_receive())
        assert req.method == "POST"
        assert req.url == "https://app.test/api/chat?a=1&a=2"
        assert req.path == "/api/chat"
        assert req.query.get_list("a") == ["1", "2"]

    def test_url_falls_back_to_server(self) -> None:
        req = Request.from_asgi(_make_scope(path="/x"), _make_receive())
        assert req.url == "http://localhost:8000/x"

    def test_root_path_is_prefixed(self) -> None:
        req = Request.from_asgi(_make_scope(root_path="/app", path="/x"), _make_receive())
        assert req.path == "/app/x"


class TestRequestBody:
    async def test_multi_chunk_body(self) -> None:
        req = Request.from_asgi(_make_scope(method="POST"), _make_receive(b"hel", b"lo"))
        assert await req.body() == b"hello"
        assert req.body_used

    async def test_body_can_be_read_twice(self) -> None:
        req = Request.from_asgi(_make_scope(method="POST"), _make_receive(b"data"))
        assert await req.body() == b"data"
        assert await req.text() == "data"

    async def test_replaced_copy_shares_body(self) -> None:
        req = Request.from_asgi(_make_scope(method="POST"), _make_receive(b'{"a": 1}'))
        copy = req.replace(url="/elsewhere")
        assert await copy.json() == {"a": 1}
        assert req.body_used
        assert copy.url == "http://localhost:8000/elsewhere"

    async def test_invalid_json_raises_value_error(self) -> None:
        req = Request.build("http://test/", method="POST", body=b"{not json")
        with pytest.raises(ValueError):
            await req.json()

    async def test_stream(self) -> None:
        req = Request.from_asgi(_make_scope(method="POST"), _make_receive(b"a", b"b"))
        assert [chunk async for chunk in req.stream()] == [b"a", b"b"]

    async def test_drain(self) -> None:
        req = Request.from_asgi(_make_scope(method="POST"), _make_receive(b"abc", b"de"))
        assert await req.drain() == 5
        assert not req.body_used

    def test_build_and_replace(self) -> None:
        req = Request.build("http://test/a", method="post", headers={"X-Test": "1"})
        assert req.method == "POST"
        assert req.headers["x-test"] == "1"
        other = req.replace(method="get", headers={"X-Other": "2"})
        assert other.method == "GET"
        assert "x-test" not in other.headers

    async def test_urlencoded_form(self) -> None:
        req = Request.build(
            "http://test/",
            method="POST",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            body="docType=kbis&tag=a&tag=b",
        )
        form = await req.form()
        assert form["docType"] == "kbis"
        assert form.get_list("tag") == ["a", "b"]
        assert await req.form() is form

    async def test_multipart_form_with_file(self) -> None:
        boundary = "XyZ"
        body = (
            f"--{boundary}\r\n"
            'Content-Disposition: form-data; name="docType"\r\n\r\n'
            "kbis\r\n"
            f"--{boundary}\r\n"
            'Content-Disposition: form-data; name="file"; filename="kbis.pdf"\r\n'
            "Content-Type: application/pdf\r\n\r\n"
            "%PDF-1.4\r\n"
            f"--{boundary}--\r\n"
        ).encode()
        req = Request.build(
            "http://test/",
            method="POST",
            headers={"Content-Type": f"multipart/form-data; boundary={boundary}"},
            body=body,
        )
        form = await req.form()
        assert form.get("docType") == "kbis"
        upload = form.files["file"]
        assert upload.filename == "kbis.pdf"
        assert upload.content_type == "application/pdf"
        assert await upload.read() == b"%PDF-1.4"
        assert "file" in form

    async def test_non_form_content_type(self) -> None:
        req = Request.build("http://test/", method="POST", headers={"Content-Type": "application/json"})
        with pytest.raises(ValueError, match="Unsupported form content type"):
            await req.form()


class TestHeaders:
    def test_case_insensitive_and_repeats(self) -> None:
        headers = Headers.build([("Accept", "a"), ("accept", "b")])
        assert headers["ACCEPT"] == "a"
        assert headers.get_list("accept") == ["a", "b"]
        assert len(headers) == 1

    def test_merged_replaces_named_headers(self) -> None:
        headers = Headers.build({"A": "1", "B": "2"}).merged({"a": "3"})
        assert headers.pairs() == [("b", "2"), ("a", "3")]


class TestQueryParams:
    def test_blank_values_kept(self) -> None:
        query = QueryParams(b"a=&b=2")
        assert query["a"] == ""
        assert query.get("missing") is None


class TestResponse:
    def test_chainable(self) -> None:
        response = Response("hi").with_status(201).with_header("X-Id", "42")
        assert response.status == 201
        assert response.header("x-id") == "42"
        assert response.ok

    def test_json_response(self) -> None:
        response = json_response({"name": "Émile"}, status=400, headers={"X-A": "1"})
        assert response.status == 400
        assert response.content_type == "application/json"
        assert "Émile" in response.text
        assert response.json() == {"name": "Émile"}
        assert json.loads(response.body_bytes) == {"name": "Émile"}

    def test_without_body(self) -> None:
        assert Response("x").without_body().body_bytes == b""
