"""Certiwize: serverless-style HTTP functions and the front-end host.

Routes ``/api/*`` requests through a static route table to handler
functions that call the workflow engine, the payment provider and the
database service; everything else is served from the built front end.

Basic usage::

    from certiwize import App, AppConfig

    app = App(AppConfig(static_dir="dist"))

Custom handlers::

    from certiwize import RouteEntry, RouteTable, Response

    async def hello(ctx):
        return Response(f"hello {ctx.params['name']}")

    app = App(routes=RouteTable((RouteEntry("/hello/:name", modules=(hello,)),)))
"""

__version__ = "0.1.0"
__all__ = [
    "App",
    "AppConfig",
    "CertiwizeError",
    "ConfigurationError",
    "DispatchContext",
    "Env",
    "HTTPError",
    "Request",
    "Response",
    "RouteEntry",
    "RouteTable",
    "json_response",
]


def __getattr__(name: str) -> object:
    """Lazy imports for public API.

    Keeps ``import certiwize`` fast while providing a clean top-level API.
    """
    if name == "App":
        from certiwize.app import App

        return App

    if name in ("AppConfig", "Env"):
        from certiwize import config as _config

        return getattr(_config, name)

    if name == "Request":
        from certiwize.http.request import Request

        return Request

    if name in ("Response", "json_response"):
        from certiwize.http import response as _resp

        return getattr(_resp, name)

    if name in ("RouteEntry", "RouteTable"):
        from certiwize.routing import table as _table

        return getattr(_table, name)

    if name == "DispatchContext":
        from certiwize.runtime.dispatcher import DispatchContext

        return DispatchContext

    if name in ("CertiwizeError", "ConfigurationError", "HTTPError"):
        from certiwize import errors as _errors

        return getattr(_errors, name)

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
