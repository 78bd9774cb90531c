"""POST /api/analyze-doc: send an uploaded document to the analysis workflow."""

import json
import logging
import re
from typing import Any

from certiwize.api._common import (
    UPSTREAM_FAILURES,
    ApiError,
    authorization_required,
    endpoint,
    require_binding,
    upstream_details,
)
from certiwize.http.response import Response, json_response
from certiwize.runtime.dispatcher import DispatchContext
from certiwize.upstream.workflows import WorkflowHooks

logger = logging.getLogger("certiwize.api")

HOOK = "N8N_HOOK_ANALYZE_DOC"

_CONTROL_RE = re.compile(r"[\x00-\x1f]")
_CONTROL_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t"}


def sanitize_control_chars(text: str) -> str:
    """Escape raw newlines, carriage returns and tabs; drop other control characters."""
    return _CONTROL_RE.sub(lambda m: _CONTROL_ESCAPES.get(m.group(), ""), text)


def parse_workflow_reply(text: str) -> Any:
    """Decode a workflow reply that is supposed to be JSON.

    Workflows often emit unescaped line breaks inside strings; a second
    attempt is made after escaping them. Text that still does not parse
    comes back wrapped as ``{"text": ..., "raw_response": True}``.
    """
    try:
        return json.loads(text)
    except ValueError:
        logger.warning("Invalid JSON from the analysis workflow, retrying after sanitizing")

    try:
        return json.loads(sanitize_control_chars(text))
    except ValueError:
        logger.error("Could not parse the analysis workflow reply as JSON: %r", text)
        return {"text": text, "raw_response": True}


@endpoint()
@authorization_required
async def analyze_doc(ctx: DispatchContext) -> Response:
    try:
        form = await ctx.request.form()
    except ValueError:
        raise ApiError(400, "Expected a multipart form with file and docType") from None

    upload = form.files.get("file")
    doc_type = form.get("docType")
    if upload is None or not doc_type:
        raise ApiError(400, "Missing file or docType")

    url = require_binding(ctx, HOOK, f"Workflow URL not configured ({HOOK})")
    hooks = WorkflowHooks(ctx.http, ctx.env, timeout=ctx.upstream_timeout)
    try:
        reply = await hooks.post_multipart(
            url,
            {"docType": doc_type, "fileName": upload.filename},
            {"file": (upload.filename, await upload.read(), upload.content_type)},
        )
    except UPSTREAM_FAILURES as exc:
        raise ApiError(502, "Document analysis failed", upstream_details(exc)) from exc

    result = parse_workflow_reply(reply.text)
    if not isinstance(result, dict):
        result = {"result": result}
    return json_response({"success": True, **result})
