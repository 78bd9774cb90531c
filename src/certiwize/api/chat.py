"""POST /api/chat: relay a chat message to the assistant workflow."""

from certiwize.api._common import (
    UPSTREAM_FAILURES,
    ApiError,
    authorization_required,
    endpoint,
    read_json,
    require_binding,
    upstream_details,
)
from certiwize.http.response import Response, json_response
from certiwize.runtime.dispatcher import DispatchContext
from certiwize.upstream.workflows import WorkflowHooks

HOOK = "N8N_CHAT_WEBHOOK"


@endpoint()
@authorization_required
async def chat(ctx: DispatchContext) -> Response:
    """Forward ``{message, history}`` and return the workflow's JSON verbatim."""
    payload = await read_json(ctx)
    url = require_binding(ctx, HOOK, "Chat configuration missing")

    hooks = WorkflowHooks(ctx.http, ctx.env, timeout=ctx.upstream_timeout)
    try:
        reply = await hooks.post_json(
            url,
            {"message": payload.get("message"), "history": payload.get("history") or []},
        )
        data = reply.json()
    except (*UPSTREAM_FAILURES, ValueError) as exc:
        raise ApiError(502, "Error processing chat", upstream_details(exc)) from exc

    return json_response(data)
