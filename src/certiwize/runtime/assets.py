"""Static asset layer: the fallback answer for unclaimed requests.

Serves the built front end from a directory. Unknown paths are handled
according to ``not_found``:

- ``"single-page-application"``: serve the root ``index.html`` (200) so
  the client-side router can take over
- ``"404-page"``: serve the nearest ``404.html`` walking up from the
  requested directory, with status 404
- ``"none"``: a bare 404

Security: resolves symlinks and verifies the final path is within the
configured directory to prevent path traversal.
"""

import logging
import mimetypes
from pathlib import Path
from urllib.parse import unquote

import anyio

from certiwize.config import NotFoundHandling
from certiwize.http.request import Request
from certiwize.http.response import Response
from certiwize.runtime.context import ExecutionContext

logger = logging.getLogger("certiwize.runtime")

_NOT_FOUND_MODES = ("single-page-application", "404-page", "none")


class StaticAssets:
    """Answers GET/HEAD requests from files under ``directory``.

    Usage::

        assets = StaticAssets("./dist", not_found="single-page-application")
        response = await assets.fetch(request, ctx)
    """

    __slots__ = ("_cache_control", "_directory", "_index", "_not_found")

    def __init__(
        self,
        directory: str | Path,
        *,
        not_found: NotFoundHandling = "single-page-application",
        index: str = "index.html",
        cache_control: str = "public, max-age=0, must-revalidate",
    ) -> None:
        if not_found not in _NOT_FOUND_MODES:
            msg = f"not_found must be one of {_NOT_FOUND_MODES}, got {not_found!r}"
            raise ValueError(msg)
        self._directory = Path(directory).resolve()
        self._not_found = not_found
        self._index = index
        self._cache_control = cache_control

    @property
    def directory(self) -> Path:
        return self._directory

    async def fetch(self, request: Request, ctx: ExecutionContext) -> Response:  # noqa: ARG002
        if request.method not in ("GET", "HEAD"):
            return Response("Method Not Allowed", status=405).with_header("Allow", "GET, HEAD")

        path = unquote(request.path)
        try:
            return await self._lookup(request, path)
        except (OSError, ValueError):
            # NUL bytes, names over the filesystem limit
            logger.info("Unusable asset path: %r", path)
            return Response("Not Found", status=404)

    async def _lookup(self, request: Request, path: str) -> Response:
        relative = path.lstrip("/")
        root = anyio.Path(self._directory)

        file_path = await (root / relative).resolve() if relative else root
        if not Path(file_path).is_relative_to(self._directory):
            logger.warning("Refused asset path outside the asset directory: %s", path)
            return Response("Forbidden", status=403)

        if await file_path.is_dir():
            index_path = file_path / self._index
            if not path.endswith("/") and relative and await index_path.is_file():
                return Response(status=301).with_header("Location", path + "/")
            if await index_path.is_file():
                return await self._serve_file(index_path, request)
            return await self._handle_not_found(request, file_path)

        if await file_path.is_file():
            return await self._serve_file(file_path, request)

        # "/about" may name "/about.html"
        html_path = file_path.with_name(file_path.name + ".html")
        if relative and await html_path.is_file():
            return await self._serve_file(html_path, request)

        return await self._handle_not_found(request, file_path.parent)

    async def _serve_file(self, file_path: anyio.Path, request: Request, *, status: int = 200) -> Response:
        content_type, _ = mimetypes.guess_type(str(file_path))
        if content_type is None:
            content_type = "application/octet-stream"
        body = b"" if request.method == "HEAD" else await file_path.read_bytes()
        return Response(body=body, content_type=content_type, status=status).with_header(
            "Cache-Control", self._cache_control
        )

    async def _handle_not_found(self, request: Request, near: anyio.Path) -> Response:
        if self._not_found == "single-page-application":
            index_path = anyio.Path(self._directory) / self._index
            if await index_path.is_file():
                return await self._serve_file(index_path, request)

        elif self._not_found == "404-page":
            current = near
            while Path(current).is_relative_to(self._directory):
                page = current / "404.html"
                if await page.is_file():
                    return await self._serve_file(page, request, status=404)
                if Path(current) == self._directory:
                    break
                current = current.parent

        return Response("Not Found", status=404)


class NoAssets:
    """Asset layer for deployments without a front end: everything is a 404."""

    __slots__ = ()

    async def fetch(self, request: Request, ctx: ExecutionContext) -> Response:  # noqa: ARG002
        return Response("Not Found", status=404)
