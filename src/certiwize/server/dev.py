"""Development server.

Starts a pounce ASGI server with the live App object. pounce ships in
the ``server`` extra.
"""

from collections.abc import Awaitable, Callable

from certiwize._internal.asgi import Receive, Scope, Send


def run_dev_server(
    app: Callable[[Scope, Receive, Send], Awaitable[None]],
    host: str,
    port: int,
    *,
    workers: int = 1,
    reload: bool = False,
    app_path: str | None = None,
) -> None:
    """Start a pounce server with the given ASGI callable.

    Args:
        app: The ASGI callable (a certiwize ``App``).
        host: Bind host address.
        port: Bind port number.
        workers: Worker count.
        reload: Restart on file changes.
        app_path: Optional ``"module:attribute"`` import string, so pounce
            can reimport the app on each reload.
    """
    from pounce.config import ServerConfig
    from pounce.server import Server

    config = ServerConfig(host=host, port=port, workers=workers, reload=reload)
    server = Server(config, app, app_path=app_path)
    server.run()
