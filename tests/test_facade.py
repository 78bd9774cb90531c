"""Tests for certiwize.runtime.facade: internal middleware and entrypoints."""

import pytest

from certiwize.config import Env
from certiwize.errors import ConfigurationError
from certiwize.http.request import BodySource, Request
from certiwize.http.response import Response
from certiwize.runtime.context import ExecutionContext
from certiwize.runtime.facade import (
    ERROR_STACK_HEADER,
    EntrypointClass,
    ExportedHandler,
    ScheduledController,
    reduce_error,
    wrap_entrypoint,
)


def _request_with_pending_body(chunks: list[bytes]) -> tuple[Request, list[str]]:
    """A request whose body is still on the transport; returns (request, received types)."""
    received: list[str] = []
    messages = [
        {"type": "http.request", "body": chunk, "more_body": i < len(chunks) - 1}
        for i, chunk in enumerate(chunks)
    ]
    it = iter(messages)

    async def receive() -> dict[str, object]:
        message = next(it)
        received.append(message["type"])
        return message

    request = Request(method="POST", url="http://test/upload", _body=BodySource(receive))
    return request, received


class TestInternalMiddleware:
    async def test_unread_body_is_drained(self) -> None:
        async def fetch(request: Request, env: Env, ctx: ExecutionContext) -> Response:
            return Response("ignored the body")

        request, received = _request_with_pending_body([b"a", b"b"])
        worker = wrap_entrypoint(ExportedHandler(fetch=fetch))
        response = await worker.fetch(request, Env(), ExecutionContext())
        assert response.text == "ignored the body"
        assert received == ["http.request", "http.request"]

    async def test_read_body_is_left_alone(self) -> None:
        async def fetch(request: Request, env: Env, ctx: ExecutionContext) -> Response:
            return Response(await request.body())

        request, received = _request_with_pending_body([b"payload"])
        worker = wrap_entrypoint(ExportedHandler(fetch=fetch))
        response = await worker.fetch(request, Env(), ExecutionContext())
        assert response.body_bytes == b"payload"
        assert received == ["http.request"]

    async def test_drain_failure_is_logged_not_raised(self, caplog) -> None:
        async def receive() -> dict[str, object]:
            raise ConnectionResetError("client went away")

        async def fetch(request: Request, env: Env, ctx: ExecutionContext) -> Response:
            return Response("answered before the body")

        request = Request(method="POST", url="http://test/upload", _body=BodySource(receive))
        worker = wrap_entrypoint(ExportedHandler(fetch=fetch))

        with caplog.at_level("ERROR", logger="certiwize.runtime"):
            response = await worker.fetch(request, Env(), ExecutionContext())

        assert response.status == 200
        assert response.text == "answered before the body"
        assert "Failed to drain the unused request body." in caplog.text

    async def test_uncaught_exception_becomes_json_500(self) -> None:
        async def fetch(request: Request, env: Env, ctx: ExecutionContext) -> Response:
            raise ValueError("bad things")

        worker = wrap_entrypoint(ExportedHandler(fetch=fetch))
        response = await worker.fetch(Request.build("http://test/"), Env(), ExecutionContext())
        assert response.status == 500
        assert response.content_type == "application/json"
        assert response.header(ERROR_STACK_HEADER) == "true"
        body = response.json()
        assert body["name"] == "ValueError"
        assert body["message"] == "bad things"
        assert "Traceback" in body["stack"]

    def test_reduce_error_follows_cause(self) -> None:
        try:
            try:
                raise KeyError("inner")
            except KeyError as inner:
                raise RuntimeError("outer") from inner
        except RuntimeError as exc:
            reduced = reduce_error(exc)

        assert reduced["name"] == "RuntimeError"
        assert reduced["cause"]["name"] == "KeyError"
        assert "cause" not in reduced["cause"]


class TestEntrypoints:
    def test_missing_fetch_is_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match=r"does not export a fetch\(\) function"):
            wrap_entrypoint(ExportedHandler(fetch=None))

    def test_class_without_fetch_is_rejected(self) -> None:
        class NoFetch:
            def __init__(self, ctx: ExecutionContext, env: Env) -> None: ...

        with pytest.raises(ConfigurationError, match=r"NoFetch does not define a fetch\(\) function"):
            wrap_entrypoint(EntrypointClass(NoFetch))

    def test_unknown_entrypoint_is_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="Unsupported entrypoint"):
            wrap_entrypoint(object())  # type: ignore[arg-type]

    async def test_entrypoint_class_is_instantiated_per_event(self) -> None:
        instances: list[object] = []

        class Site:
            def __init__(self, ctx: ExecutionContext, env: Env) -> None:
                self.greeting = env["GREETING"]
                instances.append(self)

            async def fetch(self, request: Request) -> Response:
                return Response(f"{self.greeting} {request.path}")

        worker = wrap_entrypoint(EntrypointClass(Site))
        env = Env(GREETING="hi")
        first = await worker.fetch(Request.build("http://test/a"), env, ExecutionContext())
        await worker.fetch(Request.build("http://test/b"), env, ExecutionContext())
        assert first.text == "hi /a"
        assert len(instances) == 2
        assert instances[0].env is env  # type: ignore[attr-defined]

    async def test_scheduled_exported_handler(self) -> None:
        seen: list[ScheduledController] = []

        def scheduled(controller: ScheduledController, env: Env, ctx: ExecutionContext) -> None:
            seen.append(controller)

        async def fetch(request: Request, env: Env, ctx: ExecutionContext) -> Response:
            return Response("ok")

        worker = wrap_entrypoint(ExportedHandler(fetch=fetch, scheduled=scheduled))
        await worker.scheduled("*/5 * * * *", Env(), ExecutionContext())
        assert seen[0].cron == "*/5 * * * *"
        assert seen[0].scheduled_time > 0

    async def test_scheduled_without_handler_is_a_no_op(self) -> None:
        async def fetch(request: Request, env: Env, ctx: ExecutionContext) -> Response:
            return Response("ok")

        worker = wrap_entrypoint(ExportedHandler(fetch=fetch))
        assert await worker.scheduled("0 0 * * *", Env(), ExecutionContext()) is None

    async def test_scheduled_on_entrypoint_class(self) -> None:
        crons: list[str] = []

        class Jobs:
            def __init__(self, ctx: ExecutionContext, env: Env) -> None: ...

            def fetch(self, request: Request) -> Response:
                return Response("ok")

            def scheduled(self, controller: ScheduledController) -> None:
                crons.append(controller.cron)

        worker = wrap_entrypoint(EntrypointClass(Jobs))
        await worker.scheduled("@daily", Env(), ExecutionContext())
        assert crons == ["@daily"]

    def test_no_retry_callback(self) -> None:
        calls: list[bool] = []
        controller = ScheduledController(1.0, "@hourly", no_retry=lambda: calls.append(True))
        controller.no_retry()
        assert calls == [True]
