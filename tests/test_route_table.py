"""Tests for certiwize.routing.table: entry normalisation and dispatch order."""

import pytest

from certiwize.errors import PatternSyntaxError
from certiwize.routing.table import RouteEntry, RouteTable


def a() -> None: ...
def b() -> None: ...
def c() -> None: ...
def d() -> None: ...


def _handlers(table: RouteTable, method: str, path: str) -> list[object]:
    return [step.handler for step in table.dispatch(method, path)]


class TestRouteEntry:
    def test_nested_handlers_are_flattened(self) -> None:
        entry = RouteEntry("/api", middlewares=(a, [b, (c,)]))
        assert entry.middlewares == (a, b, c)

    def test_method_is_uppercased(self) -> None:
        assert RouteEntry("/api", method="post").method == "POST"

    def test_defaults(self) -> None:
        entry = RouteEntry("/x")
        assert entry.mount_path == "/"
        assert entry.method is None
        assert entry.modules == ()


class TestRouteTable:
    def test_bad_pattern_fails_at_construction(self) -> None:
        with pytest.raises(PatternSyntaxError):
            RouteTable((RouteEntry("/:"),))

    def test_len_and_iteration(self) -> None:
        entries = (RouteEntry("/a", modules=(a,)), RouteEntry("/b", modules=(b,)))
        table = RouteTable(entries)
        assert len(table) == 2
        assert tuple(table) == entries

    def test_middleware_runs_in_reverse_registration_order(self) -> None:
        table = RouteTable(
            (
                RouteEntry("/", middlewares=(a,)),
                RouteEntry("/api", middlewares=(b,)),
                RouteEntry("/api/chat", modules=(c,)),
            )
        )
        assert _handlers(table, "GET", "/api/chat") == [b, a, c]

    def test_more_specific_middleware_registered_first_runs_last(self) -> None:
        table = RouteTable(
            (
                RouteEntry("/api/x", method="POST", middlewares=(a,)),
                RouteEntry("/api", method="POST", middlewares=(b,)),
            )
        )
        assert _handlers(table, "POST", "/api/x") == [b, a]

    def test_middleware_fires_without_a_terminal_route(self) -> None:
        table = RouteTable(
            (
                RouteEntry("/api", middlewares=(a,)),
                RouteEntry("/api/chat", method="POST", modules=(b,)),
            )
        )
        assert _handlers(table, "POST", "/api/unknown") == [a]
        assert _handlers(table, "GET", "/api/chat") == [a]

    def test_first_terminal_entry_wins(self) -> None:
        table = RouteTable(
            (
                RouteEntry("/api/chat", modules=(a,)),
                RouteEntry("/api/chat", modules=(b,)),
            )
        )
        assert _handlers(table, "GET", "/api/chat") == [a]

    def test_all_modules_of_the_winning_entry(self) -> None:
        table = RouteTable((RouteEntry("/x", modules=(a, b)),))
        assert _handlers(table, "GET", "/x") == [a, b]

    def test_entry_without_modules_does_not_stop_terminal_pass(self) -> None:
        table = RouteTable(
            (
                RouteEntry("/x", middlewares=(a,)),
                RouteEntry("/x", modules=(b,)),
            )
        )
        assert _handlers(table, "GET", "/x") == [a, b]

    def test_method_filter(self) -> None:
        table = RouteTable(
            (
                RouteEntry("/x", method="POST", modules=(a,)),
                RouteEntry("/x", method="OPTIONS", modules=(b,)),
            )
        )
        assert _handlers(table, "post", "/x") == [a]
        assert _handlers(table, "OPTIONS", "/x") == [b]
        assert _handlers(table, "GET", "/x") == []

    def test_terminal_requires_whole_path(self) -> None:
        table = RouteTable((RouteEntry("/api", modules=(a,)),))
        assert _handlers(table, "GET", "/api/chat") == []

    def test_middleware_matches_as_prefix(self) -> None:
        table = RouteTable((RouteEntry("/api", middlewares=(a,)),))
        assert _handlers(table, "GET", "/api/chat") == [a]
        assert _handlers(table, "GET", "/apix") == []

    def test_mount_must_match(self) -> None:
        table = RouteTable((RouteEntry("/api/chat", mount_path="/other", modules=(a,)),))
        assert _handlers(table, "GET", "/api/chat") == []

    def test_params_and_paths(self) -> None:
        table = RouteTable(
            (
                RouteEntry("/api", mount_path="/api", middlewares=(a,)),
                RouteEntry("/api/users/:id", mount_path="/api", modules=(b,)),
            )
        )
        middleware, terminal = list(table.dispatch("GET", "/api/users/7"))
        assert middleware.path == "/api"
        assert terminal.path == "/api/users/7"
        assert terminal.params == {"id": "7"}

    def test_route_path_dots_are_literal(self) -> None:
        table = RouteTable((RouteEntry("/robots.txt", modules=(a,)),))
        assert _handlers(table, "GET", "/robots.txt") == [a]
        assert _handlers(table, "GET", "/robotsxtxt") == []

    def test_enumeration_is_lazy(self) -> None:
        table = RouteTable((RouteEntry("/", middlewares=(a,)), RouteEntry("/x", modules=(b,))))
        steps = table.dispatch("GET", "/x")
        assert next(steps).handler is a
        assert next(steps).handler is b
        assert next(steps, None) is None
