"""Call sync or async handlers uniformly.

Handlers and entrypoint methods can be ``def`` or ``async def``; every
call site that runs user code goes through ``invoke``.
"""

import inspect
from typing import Any


async def invoke(handler: Any, *args: Any, **kwargs: Any) -> Any:
    """Call *handler* and await the result if it is awaitable."""
    result = handler(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result
