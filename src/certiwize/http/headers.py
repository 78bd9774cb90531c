"""Immutable, case-insensitive HTTP headers.

Stores raw latin-1 byte pairs, the representation ASGI scopes and
httpx both speak, and decodes on access.
"""

from collections.abc import Iterable, Iterator, Mapping

type HeaderInput = Mapping[str, str] | Iterable[tuple[str, str]] | None


class Headers(Mapping[str, str]):
    """Immutable, case-insensitive HTTP headers.

    ``__getitem__`` returns the first matching value; ``get_list`` returns
    every value for a repeated header.
    """

    __slots__ = ("_raw",)

    def __init__(self, raw: tuple[tuple[bytes, bytes], ...] = ()) -> None:
        object.__setattr__(self, "_raw", raw)

    @classmethod
    def build(cls, headers: "HeaderInput | Headers" = None) -> "Headers":
        """Build from a mapping, ``(name, value)`` pairs, or another ``Headers``."""
        if headers is None:
            return cls()
        if isinstance(headers, Headers):
            return headers
        pairs = headers.items() if isinstance(headers, Mapping) else headers
        return cls(
            tuple(
                (name.lower().encode("latin-1"), value.encode("latin-1"))
                for name, value in pairs
            )
        )

    def __getitem__(self, key: str) -> str:
        key_lower = key.lower().encode("latin-1")
        for name, value in self._raw:
            if name.lower() == key_lower:
                return value.decode("latin-1")
        raise KeyError(key)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        key_lower = key.lower().encode("latin-1")
        return any(name.lower() == key_lower for name, _ in self._raw)

    def __iter__(self) -> Iterator[str]:
        seen: set[str] = set()
        for name, _ in self._raw:
            key = name.decode("latin-1").lower()
            if key not in seen:
                seen.add(key)
                yield key

    def __len__(self) -> int:
        return len(set(self))

    def __repr__(self) -> str:
        items = ", ".join(f"{k!r}: {self[k]!r}" for k in self)
        return f"Headers({{{items}}})"

    def get(self, key: str, default: str | None = None) -> str | None:  # type: ignore[override]
        """Return the first value for *key*, or *default* if missing."""
        try:
            return self[key]
        except KeyError:
            return default

    def get_list(self, key: str) -> list[str]:
        key_lower = key.lower().encode("latin-1")
        return [value.decode("latin-1") for name, value in self._raw if name.lower() == key_lower]

    def merged(self, overrides: HeaderInput) -> "Headers":
        """Return a copy where every header named in *overrides* is replaced."""
        extra = Headers.build(overrides)
        replaced = {name.lower() for name, _ in extra.raw}
        kept = tuple(pair for pair in self._raw if pair[0].lower() not in replaced)
        return Headers(kept + extra.raw)

    def pairs(self) -> list[tuple[str, str]]:
        """Decoded ``(name, value)`` pairs, repeats included."""
        return [(name.decode("latin-1"), value.decode("latin-1")) for name, value in self._raw]

    @property
    def raw(self) -> tuple[tuple[bytes, bytes], ...]:
        return self._raw
