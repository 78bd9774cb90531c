"""Match concrete paths against compiled patterns.

A match yields the matched substring, its offset, and the decoded
parameters. Repeat parameters (``*``/``+``) decode to lists.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from urllib.parse import unquote

from certiwize.routing.pattern import CompiledPattern, Key, compile_pattern

type ParamValue = str | list[str]


@dataclass(frozen=True, slots=True)
class MatchResult:
    """A successful match: matched text, its start offset, and params."""

    path: str
    index: int
    params: dict[str | int, ParamValue]


def percent_decode(value: str, key: Key) -> str:  # noqa: ARG001
    """Decoder that undoes percent-encoding in a captured value."""
    return unquote(value)


def match(compiled: CompiledPattern, pathname: str) -> MatchResult | None:
    """Match ``pathname`` against ``compiled``.

    Groups that did not take part in the match (unmatched optional
    parameters) are left out of ``params`` entirely.
    """
    found = compiled.regex.search(pathname)
    if found is None:
        return None

    decode = compiled.options.decode
    params: dict[str | int, ParamValue] = {}
    for position, key in enumerate(compiled.keys, start=1):
        value = found.group(position)
        if value is None:
            continue
        if key.repeat:
            separator = key.prefix + key.suffix
            pieces = value.split(separator) if separator else [value]
            params[key.name] = [decode(piece, key) for piece in pieces]
        else:
            params[key.name] = decode(value, key)

    return MatchResult(path=found.group(0), index=found.start(), params=params)


def matcher(
    pattern: str | re.Pattern[str] | CompiledPattern,
    **options: Any,
) -> Callable[[str], MatchResult | None]:
    """Compile once and return a reusable match function::

        user = matcher("/users/:id", decode=percent_decode)
        user("/users/a%20b").params  # {"id": "a b"}
    """
    compiled = pattern if isinstance(pattern, CompiledPattern) else compile_pattern(pattern, **options)

    def _match(pathname: str) -> MatchResult | None:
        return match(compiled, pathname)

    return _match
