"""Path pattern compiler.

Turns a route pattern such as ``/users/:id`` or ``/files/:path+`` into a
compiled regular expression plus the ordered parameter descriptors (keys)
that map its capture groups back to names.

Syntax::

    /users/:id            named parameter, matches one segment
    /users/:id?           optional
    /files/:path+         one or more segments (list value)
    /files/:path*         zero or more segments (list value)
    /items/:id(\\d+)       custom regex fragment
    /icon-:size.png       parameter bounded by literal text
    /photos{/:year}?      braces group prefix, parameter and suffix
    /(.*)                 unnamed parameter (integer key 0, 1, ...)

Compilation is pure: the same pattern and options always yield the same
regex and keys, so a compiled pattern is built once and reused for every
match attempt.
"""

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from certiwize.errors import PatternSyntaxError


class TokenKind(Enum):
    """Lexical classes of a pattern string."""

    CHAR = "CHAR"
    ESCAPED_CHAR = "ESCAPED_CHAR"
    NAME = "NAME"
    MODIFIER = "MODIFIER"
    OPEN = "OPEN"
    CLOSE = "CLOSE"
    PATTERN = "PATTERN"
    END = "END"


@dataclass(frozen=True, slots=True)
class Token:
    """One lexical unit of a pattern, with its source offset."""

    kind: TokenKind
    index: int
    value: str


@dataclass(frozen=True, slots=True)
class Key:
    """A parameter descriptor.

    ``name`` is the parameter name, or an integer for unnamed parameters.
    ``pattern`` is the regex fragment a value must match; an empty pattern
    marks a braces group that carries only literal text.
    """

    name: str | int
    prefix: str = ""
    suffix: str = ""
    pattern: str = ""
    modifier: str = ""

    @property
    def repeat(self) -> bool:
        """True for ``*`` and ``+`` keys, whose values are lists."""
        return self.modifier in ("*", "+")

    @property
    def optional(self) -> bool:
        return self.modifier in ("*", "?")


# A parsed pattern is a sequence of literal strings and keys
type Segment = str | Key


def _encode_identity(value: str) -> str:
    return value


def _decode_identity(value: str, key: Key) -> str:  # noqa: ARG001
    return value


@dataclass(frozen=True, slots=True)
class PatternOptions:
    """Compile options. Immutable; derive variants with ``dataclasses.replace``.

    ``end=False`` gives prefix semantics (the pattern may be followed by a
    delimiter and more path), ``end=True`` requires the whole path.
    """

    sensitive: bool = False
    strict: bool = False
    start: bool = True
    end: bool = True
    delimiter: str = "/#?"
    prefixes: str = "./"
    ends_with: str = ""
    encode: Callable[[str], str] = _encode_identity
    decode: Callable[[str, Key], str] = _decode_identity


DEFAULT_OPTIONS = PatternOptions()


@dataclass(frozen=True, slots=True)
class CompiledPattern:
    """A compiled pattern: the regex, its keys in group order, and the options used."""

    regex: re.Pattern[str]
    keys: tuple[Key, ...]
    options: PatternOptions = DEFAULT_OPTIONS

    @property
    def source(self) -> str:
        return self.regex.pattern


# -- Lexer --

_NAME_CHARS = frozenset("0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz_")


def lex(pattern: str) -> list[Token]:
    """Split a pattern string into tokens, terminated by an ``END`` token."""
    tokens: list[Token] = []
    length = len(pattern)
    i = 0

    while i < length:
        char = pattern[i]

        if char in "*+?":
            tokens.append(Token(TokenKind.MODIFIER, i, char))
            i += 1
            continue

        if char == "\\":
            tokens.append(Token(TokenKind.ESCAPED_CHAR, i, pattern[i + 1 : i + 2]))
            i += 2
            continue

        if char == "{":
            tokens.append(Token(TokenKind.OPEN, i, char))
            i += 1
            continue

        if char == "}":
            tokens.append(Token(TokenKind.CLOSE, i, char))
            i += 1
            continue

        if char == ":":
            j = i + 1
            while j < length and pattern[j] in _NAME_CHARS:
                j += 1
            name = pattern[i + 1 : j]
            if not name:
                msg = f"Missing parameter name at {i}"
                raise PatternSyntaxError(msg)
            tokens.append(Token(TokenKind.NAME, i, name))
            i = j
            continue

        if char == "(":
            end = _group_end(pattern, i)
            tokens.append(Token(TokenKind.PATTERN, i, pattern[i + 1 : end - 1]))
            i = end
            continue

        tokens.append(Token(TokenKind.CHAR, i, char))
        i += 1

    tokens.append(Token(TokenKind.END, i, ""))
    return tokens


def _group_end(pattern: str, start: int) -> int:
    """Return the offset just past the closing paren of the group at ``start``.

    Raises ``PatternSyntaxError`` for fragments that are empty, unbalanced,
    start with ``?``, or contain a nested capturing group.
    """
    length = len(pattern)
    count = 1
    j = start + 1

    if j < length and pattern[j] == "?":
        msg = f'Pattern cannot start with "?" at {j}'
        raise PatternSyntaxError(msg)

    while j < length:
        char = pattern[j]
        if char == "\\":
            j += 2
            continue
        if char == ")":
            count -= 1
            if count == 0:
                j += 1
                break
        elif char == "(":
            count += 1
            if pattern[j + 1 : j + 2] != "?":
                msg = f"Capturing groups are not allowed at {j}"
                raise PatternSyntaxError(msg)
        j += 1

    if count:
        msg = f"Unbalanced pattern at {start}"
        raise PatternSyntaxError(msg)
    if j - start <= 2:
        msg = f"Missing pattern at {start}"
        raise PatternSyntaxError(msg)
    return j


# -- Parser --

_ESCAPE_RE = re.compile(r"([.+*?=^!:${}()\[\]|/\\])")


def escape_string(value: str) -> str:
    """Backslash-escape regex metacharacters in literal text."""
    return _ESCAPE_RE.sub(r"\\\1", value)


class _Parser:
    """Walks a token list and builds the segment list. Single use."""

    __slots__ = ("_delimiter", "_index", "_next_name", "_prefixes", "_tokens", "result")

    def __init__(self, tokens: list[Token], options: PatternOptions) -> None:
        self._tokens = tokens
        self._prefixes = options.prefixes
        self._delimiter = options.delimiter
        self._index = 0
        self._next_name = 0
        self.result: list[Segment] = []

    def try_consume(self, kind: TokenKind) -> str | None:
        if self._index < len(self._tokens) and self._tokens[self._index].kind is kind:
            value = self._tokens[self._index].value
            self._index += 1
            return value
        return None

    def must_consume(self, kind: TokenKind) -> str:
        value = self.try_consume(kind)
        if value is not None:
            return value
        token = self._tokens[self._index]
        msg = f"Unexpected {token.kind.value} at {token.index}, expected {kind.value}"
        raise PatternSyntaxError(msg)

    def consume_text(self) -> str:
        parts: list[str] = []
        while True:
            value = self.try_consume(TokenKind.CHAR) or self.try_consume(TokenKind.ESCAPED_CHAR)
            if not value:
                return "".join(parts)
            parts.append(value)

    def unnamed(self) -> int:
        name = self._next_name
        self._next_name += 1
        return name

    def safe_pattern(self, prefix: str) -> str:
        """Default fragment for a parameter without an explicit regex.

        Excludes the delimiters, and when the literal text just before the
        parameter holds no delimiter, also refuses to run over that text so
        the parameter cannot swallow a repeated separator.
        """
        prev = self.result[-1] if self.result else None
        prev_text = prefix or (prev if isinstance(prev, str) else "")
        if isinstance(prev, Key) and not prev_text:
            msg = f'Must have text between two parameters, missing text after "{prev.name}"'
            raise PatternSyntaxError(msg)

        delimiter = escape_string(self._delimiter)
        if not prev_text or any(char in prev_text for char in self._delimiter):
            return f"[^{delimiter}]+?"
        return f"(?:(?!{escape_string(prev_text)})[^{delimiter}])+?"

    def parse(self) -> list[Segment]:
        path = ""

        while self._index < len(self._tokens):
            char = self.try_consume(TokenKind.CHAR)
            name = self.try_consume(TokenKind.NAME)
            fragment = self.try_consume(TokenKind.PATTERN)

            if name or fragment:
                prefix = char or ""
                if prefix not in self._prefixes:
                    path += prefix
                    prefix = ""
                if path:
                    self.result.append(path)
                    path = ""
                key_name: str | int = name or self.unnamed()
                self.result.append(
                    Key(
                        name=key_name,
                        prefix=prefix,
                        pattern=fragment or self.safe_pattern(prefix),
                        modifier=self.try_consume(TokenKind.MODIFIER) or "",
                    )
                )
                continue

            value = char or self.try_consume(TokenKind.ESCAPED_CHAR)
            if value:
                path += value
                continue

            if path:
                self.result.append(path)
                path = ""

            if self.try_consume(TokenKind.OPEN) is not None:
                prefix = self.consume_text()
                group_name = self.try_consume(TokenKind.NAME) or ""
                group_fragment = self.try_consume(TokenKind.PATTERN) or ""
                suffix = self.consume_text()
                self.must_consume(TokenKind.CLOSE)
                self.result.append(
                    Key(
                        name=group_name or (self.unnamed() if group_fragment else ""),
                        pattern=(
                            self.safe_pattern(prefix)
                            if group_name and not group_fragment
                            else group_fragment
                        ),
                        prefix=prefix,
                        suffix=suffix,
                        modifier=self.try_consume(TokenKind.MODIFIER) or "",
                    )
                )
                continue

            self.must_consume(TokenKind.END)

        return self.result


def parse(pattern: str, options: PatternOptions = DEFAULT_OPTIONS) -> list[Segment]:
    """Parse a pattern string into literal strings and keys."""
    return _Parser(lex(pattern), options).parse()


# -- Regex assembly --


def tokens_to_regex(
    segments: Sequence[Segment],
    options: PatternOptions = DEFAULT_OPTIONS,
) -> CompiledPattern:
    """Assemble a parsed segment list into a compiled regex and its keys."""
    encode = options.encode
    delimiter_re = f"[{escape_string(options.delimiter)}]"
    ends_with_re = f"[{escape_string(options.ends_with)}]|\\Z" if options.ends_with else r"\Z"

    parts: list[str] = ["^"] if options.start else []
    keys: list[Key] = []

    for segment in segments:
        if isinstance(segment, str):
            parts.append(escape_string(encode(segment)))
            continue

        prefix = escape_string(encode(segment.prefix))
        suffix = escape_string(encode(segment.suffix))

        if not segment.pattern:
            parts.append(f"(?:{prefix}{suffix}){segment.modifier}")
            continue

        keys.append(segment)
        if prefix or suffix:
            if segment.repeat:
                mod = "?" if segment.modifier == "*" else ""
                parts.append(
                    f"(?:{prefix}((?:{segment.pattern})"
                    f"(?:{suffix}{prefix}(?:{segment.pattern}))*){suffix}){mod}"
                )
            else:
                parts.append(f"(?:{prefix}({segment.pattern}){suffix}){segment.modifier}")
        else:
            if segment.repeat:
                msg = f'Can not repeat "{segment.name}" without a prefix and suffix'
                raise PatternSyntaxError(msg)
            parts.append(f"({segment.pattern}){segment.modifier}")

    if options.end:
        if not options.strict:
            parts.append(f"{delimiter_re}?")
        parts.append(f"(?={ends_with_re})" if options.ends_with else r"\Z")
    else:
        last = segments[-1] if segments else None
        if isinstance(last, str):
            is_end_delimited = last[-1] in delimiter_re
        else:
            is_end_delimited = last is None
        if not options.strict:
            parts.append(f"(?:{delimiter_re}(?={ends_with_re}))?")
        if not is_end_delimited:
            parts.append(f"(?={delimiter_re}|{ends_with_re})")

    return CompiledPattern(_compile("".join(parts), options), tuple(keys), options)


def _compile(source: str, options: PatternOptions) -> re.Pattern[str]:
    flags = 0 if options.sensitive else re.IGNORECASE
    try:
        return re.compile(source, flags)
    except re.error as exc:
        msg = f"Invalid route regex {source!r}: {exc}"
        raise PatternSyntaxError(msg) from exc


_GROUP_RE = re.compile(r"\((?:\?P<(.*?)>)?(?!\?)")


def _from_regex(regex: re.Pattern[str], options: PatternOptions) -> CompiledPattern:
    """Wrap a ready-made regex; keys come from its capturing groups."""
    keys: list[Key] = []
    index = 0
    for found in _GROUP_RE.finditer(regex.pattern):
        name: str | int
        if found.group(1):
            name = found.group(1)
        else:
            name = index
            index += 1
        keys.append(Key(name=name))
    return CompiledPattern(regex, tuple(keys), options)


def _from_sequence(patterns: Sequence[Any], options: PatternOptions) -> CompiledPattern:
    """Compile several patterns into one alternation sharing a key list."""
    sources: list[str] = []
    keys: list[Key] = []
    for item in patterns:
        compiled = compile_pattern(item, options)
        sources.append(compiled.source)
        keys.extend(compiled.keys)
    return CompiledPattern(_compile(f"(?:{'|'.join(sources)})", options), tuple(keys), options)


def compile_pattern(
    pattern: str | re.Pattern[str] | Sequence[str],
    options: PatternOptions | None = None,
    **overrides: Any,
) -> CompiledPattern:
    """Compile a pattern string, a regex, or a sequence of patterns.

    Keyword overrides are applied on top of ``options``::

        compile_pattern("/api", end=False)
    """
    opts = options or DEFAULT_OPTIONS
    if overrides:
        opts = replace(opts, **overrides)

    if isinstance(pattern, re.Pattern):
        return _from_regex(pattern, opts)
    if isinstance(pattern, str):
        return tokens_to_regex(parse(pattern, opts), opts)
    return _from_sequence(pattern, opts)


_ROUTE_META_RE = re.compile(r"[.+?^${}()|\[\]\\]")


def escape_route_path(path: str) -> str:
    """Make regex metacharacters in a route-table path literal.

    ``:name`` parameters and the ``*`` modifier stay active.
    """
    return _ROUTE_META_RE.sub(r"\\\g<0>", path)
