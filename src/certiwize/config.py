"""Application configuration.

``AppConfig`` is a frozen dataclass holding process settings. ``Env``
holds the string bindings (webhook URLs, API credentials) that the HTTP
functions read per request; it is a read-only mapping built once from
the process environment.
"""

import os
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Literal

DEFAULT_APP_URL = "http://localhost:5173"

type NotFoundHandling = Literal["single-page-application", "404-page", "none"]


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Application configuration. Immutable after creation.

    Override what you need::

        config = AppConfig(debug=True, port=3000, static_dir="dist")
    """

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    debug: bool = False
    workers: int = 1

    # Static assets (the built single-page app)
    static_dir: str | Path | None = "dist"
    not_found_handling: NotFoundHandling = "single-page-application"

    # Outbound calls
    upstream_timeout: float = 60.0

    # Public URL of the front end, used for payment redirects and login links
    app_url: str = DEFAULT_APP_URL

    log_level: str = "info"


class Env(Mapping[str, str]):
    """Read-only string bindings available to every handler as ``ctx.env``."""

    __slots__ = ("_data",)

    def __init__(self, data: Mapping[str, str] | None = None, **bindings: str) -> None:
        merged = dict(data or {})
        merged.update(bindings)
        object.__setattr__(self, "_data", MappingProxyType(merged))

    @classmethod
    def from_environ(cls, environ: Mapping[str, str] | None = None) -> "Env":
        """Snapshot the process environment (or *environ*)."""
        return cls(dict(os.environ if environ is None else environ))

    def __setattr__(self, name: str, value: object) -> None:
        msg = "Env is read-only"
        raise AttributeError(msg)

    def __getitem__(self, key: str) -> str:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"Env({sorted(self._data)!r})"

    def get_nonempty(self, key: str) -> str | None:
        """Value of *key*, treating an empty string as unset."""
        value = self._data.get(key)
        return value or None
