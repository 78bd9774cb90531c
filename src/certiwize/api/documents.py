"""Document generation functions.

- ``POST /api/generate-convention``: training agreement PDF, returned base64
- ``POST /api/generate-project-doc``: one of the four project documents
- ``POST /api/generate-training-pdf``: training sheet PDF

Each one validates its input, picks a workflow hook from the environment,
and forwards the payload.
"""

import base64
from typing import Any

from certiwize.api._common import (
    UPSTREAM_FAILURES,
    ApiError,
    authorization,
    authorization_required,
    blank_to_space,
    endpoint,
    object_field,
    read_json,
    require_binding,
    upstream_details,
)
from certiwize.http.response import Response, json_response
from certiwize.runtime.dispatcher import DispatchContext
from certiwize.upstream.workflows import WorkflowHooks

CONVENTION_FIELDS = (
    "nom_formation",
    "nom_entreprise",
    "adresse_entreprise",
    "siret",
    "nom_gerant",
    "type_formation",
    "duree",
    "periode",
    "nb_jours",
    "date",
    "tarif",
    "frais",
    "total_tarif",
)

PROJECT_DOC_HOOKS = {
    "etude": "N8N_HOOK_PROJ_ETUDE",
    "convention": "N8N_HOOK_PROJ_CONVENTION",
    "convocation": "N8N_HOOK_PROJ_CONVOCATION",
    "livret": "N8N_HOOK_PROJ_LIVRET",
}

CONVENTION_HOOK = "N8N_HOOK_CONVENTION"
TRAINING_HOOK = "N8N_HOOK_GENERATE_TRAINING"


def is_valid_siret(value: Any) -> bool:
    """A SIRET is exactly 14 ASCII digits. No checksum is verified."""
    return isinstance(value, str) and len(value) == 14 and value.isascii() and value.isdigit()


async def _forward_json(ctx: DispatchContext, url: str, payload: dict[str, Any]) -> Any:
    hooks = WorkflowHooks(ctx.http, ctx.env, timeout=ctx.upstream_timeout)
    try:
        reply = await hooks.post_json(url, payload)
        return reply.json()
    except (*UPSTREAM_FAILURES, ValueError) as exc:
        raise ApiError(502, "Document generation failed", upstream_details(exc)) from exc


@endpoint()
@authorization_required
async def generate_convention(ctx: DispatchContext) -> Response:
    payload = await read_json(ctx)

    for name in CONVENTION_FIELDS:
        if not payload.get(name):
            raise ApiError(400, f"Missing field: {name}")

    if not is_valid_siret(payload["siret"]):
        raise ApiError(400, "Invalid SIRET: must contain 14 digits")

    url = require_binding(ctx, CONVENTION_HOOK, "Convention generation is not configured")
    hooks = WorkflowHooks(ctx.http, ctx.env, timeout=ctx.upstream_timeout)
    try:
        reply = await hooks.post_json(
            url, {**payload, "userToken": authorization(ctx)}, tagged=True,
        )
    except UPSTREAM_FAILURES as exc:
        raise ApiError(502, "Document generation failed", upstream_details(exc)) from exc

    return json_response(
        {
            "success": True,
            "pdfData": base64.b64encode(reply.content).decode("ascii"),
            "message": "Convention generated",
        }
    )


@endpoint()
@authorization_required
async def generate_project_doc(ctx: DispatchContext) -> Response:
    """Generate a project document; the workflow answers e.g. ``{"fileName": ...}``."""
    payload = await read_json(ctx)
    doc_type = payload.get("docType")

    binding = PROJECT_DOC_HOOKS.get(doc_type) if isinstance(doc_type, str) else None
    if binding is None:
        raise ApiError(400, "Unknown document type")

    url = require_binding(ctx, binding, f"Webhook not configured for {doc_type}")
    data = object_field(payload, "data")
    result = await _forward_json(ctx, url, {"id": payload.get("projectId"), **blank_to_space(data)})
    return json_response(result)


@endpoint()
@authorization_required
async def generate_training_pdf(ctx: DispatchContext) -> Response:
    """Generate a training sheet; the workflow answers e.g. ``{"pdfUrl": ...}``."""
    payload = await read_json(ctx)
    url = require_binding(ctx, TRAINING_HOOK, "Webhook URL missing")
    data = object_field(payload, "data")
    result = await _forward_json(ctx, url, {"id": payload.get("trainingId"), **blank_to_space(data)})
    return json_response(result)
