"""Route table and per-request handler enumeration.

The table is built once at startup from ``RouteEntry`` values and never
mutated afterwards. Each entry compiles its three matchers up front:

- route prefix (``end=False``), used by the middleware pass
- route exact (``end=True``), used by the terminal pass
- mount prefix (``end=False``), used by both passes
"""

from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any

from certiwize.routing.matcher import ParamValue, match
from certiwize.routing.pattern import CompiledPattern, compile_pattern, escape_route_path

type Handler = Callable[..., Any]
type HandlerSpec = Handler | Sequence[HandlerSpec]


def _flatten(handlers: Iterable[HandlerSpec]) -> tuple[Handler, ...]:
    flat: list[Handler] = []
    for handler in handlers:
        if isinstance(handler, (list, tuple)):
            flat.extend(_flatten(handler))
        else:
            flat.append(handler)
    return tuple(flat)


@dataclass(frozen=True, slots=True)
class RouteEntry:
    """One static route: where it mounts, which method, and what runs.

    ``method=None`` matches any method. ``middlewares`` run for every
    request under the route prefix; ``modules`` are the terminal handlers.
    Nested handler sequences are flattened.
    """

    route_path: str
    mount_path: str = "/"
    method: str | None = None
    middlewares: tuple[Handler, ...] = ()
    modules: tuple[Handler, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "middlewares", _flatten(self.middlewares))
        object.__setattr__(self, "modules", _flatten(self.modules))
        if self.method is not None:
            object.__setattr__(self, "method", self.method.upper())


@dataclass(frozen=True, slots=True)
class HandlerStep:
    """A handler to invoke, with the params and path it was matched under."""

    handler: Handler
    params: dict[str | int, ParamValue]
    path: str


@dataclass(frozen=True, slots=True)
class _CompiledEntry:
    entry: RouteEntry
    route_prefix: CompiledPattern
    route_exact: CompiledPattern
    mount_prefix: CompiledPattern

    def accepts(self, method: str) -> bool:
        return self.entry.method is None or self.entry.method == method


def _compile_entry(entry: RouteEntry) -> _CompiledEntry:
    route = escape_route_path(entry.route_path)
    mount = escape_route_path(entry.mount_path)
    return _CompiledEntry(
        entry=entry,
        route_prefix=compile_pattern(route, end=False),
        route_exact=compile_pattern(route, end=True),
        mount_prefix=compile_pattern(mount, end=False),
    )


@dataclass(frozen=True, slots=True)
class RouteTable:
    """Immutable, ordered route table.

    Patterns are compiled on construction, so a malformed route raises
    ``PatternSyntaxError`` at startup rather than on the first request.
    """

    entries: tuple[RouteEntry, ...]
    _compiled: tuple[_CompiledEntry, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "entries", tuple(self.entries))
        object.__setattr__(self, "_compiled", tuple(_compile_entry(e) for e in self.entries))

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[RouteEntry]:
        return iter(self.entries)

    def dispatch(self, method: str, path: str) -> Iterator[HandlerStep]:
        """Lazily enumerate the handlers that apply to ``method path``.

        Middleware pass: entries in reverse registration order whose mount
        and route patterns both match as prefixes. Every middleware of
        every such entry is yielded; the route pattern need not consume
        the whole path.

        Terminal pass: entries in registration order whose mount matches
        as a prefix and whose route matches the whole path. The first
        entry carrying modules yields them and the enumeration ends.
        """
        method = method.upper()

        for compiled in reversed(self._compiled):
            if not compiled.accepts(method):
                continue
            route_match = match(compiled.route_prefix, path)
            mount_match = match(compiled.mount_prefix, path)
            if route_match is None or mount_match is None:
                continue
            for handler in compiled.entry.middlewares:
                yield HandlerStep(handler, route_match.params, mount_match.path)

        for compiled in self._compiled:
            if not compiled.accepts(method):
                continue
            route_match = match(compiled.route_exact, path)
            mount_match = match(compiled.mount_prefix, path)
            if route_match is None or mount_match is None or not compiled.entry.modules:
                continue
            for handler in compiled.entry.modules:
                yield HandlerStep(handler, route_match.params, route_match.path)
            return
