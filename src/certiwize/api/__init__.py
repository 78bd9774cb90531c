"""HTTP functions served under ``/api``.

Each module holds one or a few handlers taking a ``DispatchContext`` and
returning a ``Response``. ``certiwize.api.routes.ROUTES`` wires them up.
"""
