"""The ASGI application.

``App`` wires the pieces together: the route table is dispatched by a
``Dispatcher``, which is wrapped as the fetch entrypoint of a ``Worker``
(internal middleware: body draining, JSON error answers). Unclaimed
requests fall through to the static front end.

Usage::

    app = App(AppConfig(static_dir="dist"))

    # from a shell
    certiwize run certiwize.app:create_app
"""

import logging
from pathlib import Path

import anyio
import httpx

from certiwize._internal.asgi import Receive, Scope, Send
from certiwize.api.routes import ROUTES
from certiwize.config import AppConfig, Env
from certiwize.http.request import Request
from certiwize.routing.table import RouteTable
from certiwize.runtime.assets import NoAssets, StaticAssets
from certiwize.runtime.context import ExecutionContext
from certiwize.runtime.dispatcher import AssetFetcher, Dispatcher
from certiwize.runtime.facade import ExportedHandler, Worker, wrap_entrypoint
from certiwize.server.sender import send_response

logger = logging.getLogger("certiwize.runtime")


class App:
    """ASGI 3.0 application serving the HTTP functions and the front end.

    ``env`` defaults to a snapshot of the process environment, with
    ``APP_URL`` filled in from ``config.app_url`` when unset. ``assets``
    defaults to ``config.static_dir`` when that directory exists. ``http``
    is the outbound client; when omitted, one is opened at lifespan
    startup (or lazily on first use) and closed at shutdown.
    """

    __slots__ = ("_http", "_http_lock", "_owns_http", "config", "dispatcher", "env", "worker")

    def __init__(
        self,
        config: AppConfig | None = None,
        routes: RouteTable = ROUTES,
        env: Env | None = None,
        assets: AssetFetcher | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or AppConfig()

        env = env if env is not None else Env.from_environ()
        if not env.get_nonempty("APP_URL"):
            env = Env(env, APP_URL=self.config.app_url)
        self.env = env

        self.dispatcher = Dispatcher(routes, assets if assets is not None else self._default_assets())
        self.worker: Worker = wrap_entrypoint(ExportedHandler(fetch=self.dispatcher.fetch))
        self._http = http
        self._http_lock = anyio.Lock()
        self._owns_http = http is None

    @property
    def routes(self) -> RouteTable:
        return self.dispatcher.routes

    @property
    def http(self) -> httpx.AsyncClient | None:
        """The outbound client, None until startup."""
        return self._http

    def _default_assets(self) -> AssetFetcher:
        static_dir = self.config.static_dir
        if static_dir is not None and Path(static_dir).is_dir():
            return StaticAssets(static_dir, not_found=self.config.not_found_handling)
        logger.info("No static directory at %r; unclaimed requests answer 404", static_dir)
        return NoAssets()

    # -- Outbound client lifecycle --

    async def startup(self) -> None:
        if self._http is not None:
            return
        async with self._http_lock:
            # concurrent first requests share one client
            if self._http is None:
                self._http = httpx.AsyncClient()

    async def shutdown(self) -> None:
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None

    # -- ASGI --

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI 3.0 entry point."""
        if scope["type"] == "lifespan":
            await self._handle_lifespan(receive, send)
            return
        if scope["type"] != "http":
            msg = f"Unsupported ASGI scope type: {scope['type']!r}"
            raise RuntimeError(msg)

        # Servers without lifespan support
        await self.startup()

        request = Request.from_asgi(scope, receive)
        ctx = ExecutionContext(self._http, upstream_timeout=self.config.upstream_timeout)
        response = await self.worker.fetch(request, self.env, ctx)
        await send_response(response, send, head=request.method == "HEAD")
        await ctx.settle()

    async def _handle_lifespan(self, receive: Receive, send: Send) -> None:
        """Run the ASGI lifespan protocol: open and close the outbound client."""
        while True:
            message = await receive()
            msg_type = message["type"]

            if msg_type == "lifespan.startup":
                try:
                    await self.startup()
                except Exception as exc:
                    logger.exception("Startup failed")
                    await send({"type": "lifespan.startup.failed", "message": str(exc)})
                    return
                await send({"type": "lifespan.startup.complete"})

            elif msg_type == "lifespan.shutdown":
                await self.shutdown()
                await send({"type": "lifespan.shutdown.complete"})
                return


def create_app() -> App:
    """Factory used by ``certiwize run certiwize.app:create_app``."""
    return App()
