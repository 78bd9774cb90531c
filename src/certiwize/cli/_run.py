"""``certiwize run``: start the server."""

import argparse
import importlib.util
import logging
import sys

from certiwize.cli._resolve import resolve_app


def run_server(args: argparse.Namespace) -> None:
    """Resolve ``args.app`` and serve it with pounce.

    CLI flags override the app's ``AppConfig``. Reload is always on in
    debug mode.
    """
    if importlib.util.find_spec("pounce") is None:
        print(
            "Error: pounce is not installed (pip install 'certiwize-functions[server]')",
            file=sys.stderr,
        )
        raise SystemExit(1)

    try:
        app = resolve_app(args.app)
    except (ModuleNotFoundError, AttributeError, TypeError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    config = app.config
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    from certiwize.server.dev import run_dev_server

    run_dev_server(
        app,
        args.host or config.host,
        args.port or config.port,
        workers=args.workers if args.workers is not None else config.workers,
        reload=args.reload or config.debug,
        app_path=args.app,
    )
