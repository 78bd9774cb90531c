"""``certiwize routes``: list the route table."""

import argparse
import sys

from certiwize.cli._resolve import resolve_app


def _handler_name(handler: object) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)


def run_routes(args: argparse.Namespace) -> None:
    """Print METHOD, PATH, MOUNT and handler names for every entry, in table order."""
    try:
        app = resolve_app(args.app)
    except (ModuleNotFoundError, AttributeError, TypeError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    if not len(app.routes):
        print("No routes registered.")
        return

    rows: list[tuple[str, str, str, str]] = []
    for entry in app.routes:
        handlers = [f"[mw] {_handler_name(h)}" for h in entry.middlewares]
        handlers.extend(_handler_name(h) for h in entry.modules)
        rows.append((entry.method or "*", entry.route_path, entry.mount_path, ", ".join(handlers)))

    max_method = max(6, *(len(r[0]) for r in rows))
    max_path = max(4, *(len(r[1]) for r in rows))
    max_mount = max(5, *(len(r[2]) for r in rows))

    fmt = f"{{:<{max_method}}}  {{:<{max_path}}}  {{:<{max_mount}}}  {{}}"
    print(fmt.format("METHOD", "PATH", "MOUNT", "HANDLER"))
    sep_len = max_method + max_path + max_mount + 6 + max(len(r[3]) for r in rows)
    print("-" * min(sep_len, 100))
    for row in rows:
        print(fmt.format(*row))
