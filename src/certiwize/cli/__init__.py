"""certiwize CLI: run the server and inspect the route table.

Entry point registered as ``certiwize`` in ``pyproject.toml``::

    [project.scripts]
    certiwize = "certiwize.cli:main"
"""

import argparse
import sys


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the ``certiwize`` command."""
    parser = argparse.ArgumentParser(
        prog="certiwize",
        description="Certiwize HTTP functions and front-end server.",
    )
    subparsers = parser.add_subparsers(dest="command")

    # -- certiwize run ----------------------------------------------------
    run_parser = subparsers.add_parser("run", help="Start the server")
    run_parser.add_argument(
        "app",
        nargs="?",
        default="certiwize.app:create_app",
        help="Import string (default: certiwize.app:create_app)",
    )
    run_parser.add_argument("--host", default=None, help="Bind host address")
    run_parser.add_argument("--port", type=int, default=None, help="Bind port number")
    run_parser.add_argument("--workers", type=int, default=None, help="Worker count")
    run_parser.add_argument("--reload", action="store_true", help="Restart on file changes")

    # -- certiwize routes -------------------------------------------------
    routes_parser = subparsers.add_parser("routes", help="List the route table")
    routes_parser.add_argument(
        "app",
        nargs="?",
        default="certiwize.app:create_app",
        help="Import string (default: certiwize.app:create_app)",
    )

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    if args.command == "run":
        from certiwize.cli._run import run_server

        run_server(args)
    elif args.command == "routes":
        from certiwize.cli._routes import run_routes

        run_routes(args)
