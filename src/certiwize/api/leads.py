"""POST /api/create-lead: record a demo request from the public schedule page.

This is the only function reachable without an Authorization header.
"""

import re

from certiwize.api._common import (
    UPSTREAM_FAILURES,
    ApiError,
    endpoint,
    read_json,
    require_fields,
    upstream_details,
)
from certiwize.http.response import Response, json_response
from certiwize.runtime.dispatcher import DispatchContext
from certiwize.upstream.supabase import SupabaseAdmin

EMAIL_RE = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")

DEFAULT_SOURCE = "schedule_page"


@endpoint(cors=True)
async def create_lead(ctx: DispatchContext) -> Response:
    payload = await read_json(ctx)
    require_fields(payload, ("fullName", "email"))

    email = payload["email"]
    if not isinstance(email, str) or not EMAIL_RE.fullmatch(email):
        raise ApiError(400, "Invalid email address")

    supabase_url = ctx.env.get_nonempty("SUPABASE_URL")
    service_key = ctx.env.get_nonempty("SUPABASE_SERVICE_ROLE_KEY")
    if not supabase_url or not service_key:
        raise ApiError(500, "Server configuration missing")

    admin = SupabaseAdmin(ctx.http, supabase_url, service_key, timeout=ctx.upstream_timeout)
    try:
        await admin.insert(
            "leads",
            {
                "full_name": payload["fullName"],
                "email": email,
                "phone": payload.get("phone") or None,
                "company": payload.get("company") or None,
                "message": payload.get("message") or None,
                "source": payload.get("source") or DEFAULT_SOURCE,
                "status": "new",
            },
        )
    except UPSTREAM_FAILURES as exc:
        raise ApiError(502, "Failed to save lead", upstream_details(exc)) from exc

    return json_response({"success": True}, status=201)
