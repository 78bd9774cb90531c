"""ASGI transport: response sending and the pounce development server."""
