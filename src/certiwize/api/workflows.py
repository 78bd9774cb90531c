"""POST /api/trigger-workflow: run one of the numbered automation features."""

from typing import Any

from certiwize.api._common import (
    UPSTREAM_FAILURES,
    ApiError,
    authorization,
    authorization_required,
    endpoint,
    object_field,
    read_json,
    upstream_details,
)
from certiwize.http.response import Response, json_response
from certiwize.runtime.dispatcher import DispatchContext
from certiwize.upstream.workflows import WorkflowHooks

FEATURE_HOOKS = {
    1: "N8N_HOOK_CONVENTION",
    2: "N8N_HOOK_SIGNATURE",
    3: "N8N_HOOK_DRIVE",
    4: "N8N_HOOK_CONVOC_GEN",
    5: "N8N_HOOK_QUEST_POS",
    6: "N8N_HOOK_CONVOC_SEND",
    7: "N8N_HOOK_EMARGEMENT",
    8: "N8N_HOOK_CHAUD",
    9: "N8N_HOOK_FACTURE",
    10: "N8N_HOOK_RELANCE",
    11: "N8N_HOOK_CERTIF_GEN",
    12: "N8N_HOOK_SEND_RESP",
    13: "N8N_HOOK_SEND_APPR",
    14: "N8N_HOOK_FROID",
    15: "N8N_HOOK_PENNYLANE",
}


def feature_number(value: Any) -> int | None:
    """Feature ids arrive as ints or numeric strings."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        digits = value.strip()
        # int() rejects non-ASCII digits such as "²"
        if digits.isascii() and digits.isdigit():
            return int(digits)
    return None


@endpoint()
@authorization_required
async def trigger_workflow(ctx: DispatchContext) -> Response:
    payload = await read_json(ctx)
    feature_id = payload.get("featureId")

    number = feature_number(feature_id)
    binding = FEATURE_HOOKS.get(number) if number is not None else None
    url = ctx.env.get_nonempty(binding) if binding else None
    if url is None:
        raise ApiError(501, f"No webhook configured for feature #{feature_id}")

    data = object_field(payload, "data")
    hooks = WorkflowHooks(ctx.http, ctx.env, timeout=ctx.upstream_timeout)
    try:
        reply = await hooks.post_json(url, {**data, "userToken": authorization(ctx)}, tagged=True)
        result = reply.json()
    except (*UPSTREAM_FAILURES, ValueError) as exc:
        raise ApiError(502, "Workflow execution failed", upstream_details(exc)) from exc

    return json_response({"success": True, "n8n": result})
