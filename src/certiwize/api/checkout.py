"""Direct-debit checkout (GoCardless) and account provisioning.

The browser flow is::

    POST /api/create-gocardless-subscription  -> redirect to GoCardless
    (customer signs the SEPA mandate)
    POST /api/complete-gocardless-checkout    -> subscription + account + login link

Completion runs six steps in order: complete the redirect flow, create
the subscription, look up the plan, find or create the user, record the
subscription, and mint a magic link. Only the subscription record is
allowed to fail without aborting the checkout.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from certiwize.api._common import (
    UPSTREAM_FAILURES,
    ApiError,
    authorization_required,
    endpoint,
    read_json,
    require_fields,
    upstream_details,
)
from certiwize.config import DEFAULT_APP_URL
from certiwize.errors import UpstreamError
from certiwize.http.response import Response, json_response
from certiwize.runtime.dispatcher import DispatchContext
from certiwize.upstream.gocardless import GoCardless, field_errors
from certiwize.upstream.supabase import SupabaseAdmin

logger = logging.getLogger("certiwize.api")

PLAN_DESCRIPTIONS = {
    "monthly": "Certigestion — Abonnement mensuel (144 €/mois)",
    "yearly": "Certigestion — Abonnement annuel (1 440 €/an)",
}


@dataclass(frozen=True, slots=True)
class PlanConfig:
    """Billing terms of a plan. Amounts are in cents."""

    amount: int
    interval_unit: str
    name: str
    period: timedelta
    interval: int = 1


PLAN_CONFIG = {
    "monthly": PlanConfig(
        amount=100,
        interval_unit="monthly",
        name="Certigestion — Abonnement mensuel (TEST 1€)",
        period=timedelta(days=30),
    ),
    "yearly": PlanConfig(
        amount=100,
        interval_unit="yearly",
        name="Certigestion — Abonnement annuel (TEST 1€)",
        period=timedelta(days=365),
    ),
}


def _app_url(ctx: DispatchContext) -> str:
    return ctx.env.get_nonempty("APP_URL") or DEFAULT_APP_URL


def _gocardless_failure(exc: Exception, message: str) -> ApiError:
    """GoCardless reports its own status; transport failures become 502."""
    if isinstance(exc, UpstreamError):
        return ApiError(exc.status, message, exc.payload, fieldErrors=field_errors(exc.payload))
    return ApiError(502, message, upstream_details(exc))


def _timestamp(moment: datetime) -> str:
    """ISO 8601 in UTC with millisecond precision and a ``Z`` suffix."""
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@endpoint(cors=True)
@authorization_required
async def create_gocardless_subscription(ctx: DispatchContext) -> Response:
    payload = await read_json(ctx)
    require_fields(payload, ("plan", "firstName", "lastName", "email", "sessionToken"))

    access_token = ctx.env.get_nonempty("GOCARDLESS_ACCESS_TOKEN")
    if access_token is None:
        raise ApiError(500, "GoCardless is not configured")

    gocardless = GoCardless(
        ctx.http,
        access_token,
        ctx.env.get_nonempty("GOCARDLESS_ENVIRONMENT") or "sandbox",
        timeout=ctx.upstream_timeout,
    )

    customer = {
        "given_name": payload["firstName"],
        "family_name": payload["lastName"],
        "email": payload["email"],
    }
    if payload.get("company"):
        customer["company_name"] = payload["company"]
    customer["country_code"] = "FR"

    try:
        flow = await gocardless.create_redirect_flow(
            description=PLAN_DESCRIPTIONS.get(payload["plan"], PLAN_DESCRIPTIONS["monthly"]),
            session_token=payload["sessionToken"],
            success_redirect_url=f"{_app_url(ctx)}/checkout/success",
            prefilled_customer=customer,
        )
    except UPSTREAM_FAILURES as exc:
        raise _gocardless_failure(exc, "GoCardless error") from exc

    return json_response({"redirect_url": flow["redirect_url"], "redirect_flow_id": flow["id"]})


@endpoint(cors=True)
@authorization_required
async def complete_gocardless_checkout(ctx: DispatchContext) -> Response:
    payload = await read_json(ctx)
    require_fields(payload, ("redirect_flow_id", "session_token", "email", "plan"))

    access_token = ctx.env.get_nonempty("GOCARDLESS_ACCESS_TOKEN")
    supabase_url = ctx.env.get_nonempty("SUPABASE_URL")
    service_key = ctx.env.get_nonempty("SUPABASE_SERVICE_ROLE_KEY")
    if not (access_token and supabase_url and service_key):
        raise ApiError(500, "Server configuration missing")

    flow_id = payload["redirect_flow_id"]
    plan = payload["plan"]
    email = payload["email"]
    first_name = payload.get("firstName")
    last_name = payload.get("lastName")
    company = payload.get("company")
    phone = payload.get("phone")
    app_url = _app_url(ctx)

    gocardless = GoCardless(
        ctx.http,
        access_token,
        ctx.env.get_nonempty("GOCARDLESS_ENVIRONMENT") or "sandbox",
        timeout=ctx.upstream_timeout,
    )
    admin = SupabaseAdmin(ctx.http, supabase_url, service_key, timeout=ctx.upstream_timeout)

    # 1. Mandate
    try:
        flow = await gocardless.complete_redirect_flow(flow_id, payload["session_token"])
    except UPSTREAM_FAILURES as exc:
        raise _gocardless_failure(exc, "GoCardless validation failed") from exc
    mandate_id = flow["links"]["mandate"]
    customer_id = flow["links"]["customer"]

    # 2. Subscription
    terms = PLAN_CONFIG.get(plan, PLAN_CONFIG["monthly"])
    try:
        subscription = await gocardless.create_subscription(
            mandate=mandate_id,
            amount=terms.amount,
            interval_unit=terms.interval_unit,
            interval=terms.interval,
            name=terms.name,
            idempotency_key=f"create-sub-{flow_id}",
        )
    except UPSTREAM_FAILURES as exc:
        raise _gocardless_failure(exc, "Failed to create the GoCardless subscription") from exc

    # 3. Plan
    try:
        plans = await admin.select("subscription_plans", columns="id", name=plan)
    except UPSTREAM_FAILURES as exc:
        raise ApiError(502, "Failed to look up the plan", upstream_details(exc)) from exc
    plan_id = plans[0].get("id") if plans else None
    if not plan_id:
        raise ApiError(404, f'Plan "{plan}" not found')

    # 4. Account
    try:
        user = await admin.find_user_by_email(email)
        is_new_user = user is None
        if user is None:
            user = await admin.create_user(
                email,
                user_metadata={
                    "full_name": f"{first_name} {last_name}",
                    "first_name": first_name,
                    "last_name": last_name,
                    "company": company,
                    "phone": phone,
                },
            )
    except UPSTREAM_FAILURES as exc:
        raise ApiError(502, "Failed to create the user account", upstream_details(exc)) from exc
    user_id = user["id"]

    # 5. Subscription record
    starts_at = datetime.now(UTC)
    try:
        await admin.upsert(
            "subscriptions",
            {
                "user_id": user_id,
                "plan_id": plan_id,
                "status": "active",
                "payment_provider": "gocardless",
                "external_subscription_id": subscription["id"],
                "external_customer_id": customer_id,
                "external_mandate_id": mandate_id,
                "billing_first_name": first_name,
                "billing_last_name": last_name,
                "billing_company": company or None,
                "billing_tax_id": payload.get("taxId") or None,
                "billing_email": email,
                "billing_phone": phone or None,
                "starts_at": _timestamp(starts_at),
                "ends_at": _timestamp(starts_at + terms.period),
                "metadata": {"redirect_flow_id": flow_id, "source": "checkout"},
            },
        )
    except UPSTREAM_FAILURES:
        logger.exception("Could not record subscription for user %s, continuing", user_id)

    # 6. Login link
    redirect_to = f"{app_url}/dashboard"
    try:
        link = await admin.generate_magic_link(user_id, email, redirect_to)
    except UPSTREAM_FAILURES:
        logger.exception("Could not generate a magic link for user %s", user_id)
        return json_response(
            {
                "success": True,
                "auto_login": False,
                "is_new_user": is_new_user,
                "message": "Subscription created. Please sign in manually.",
            }
        )

    return json_response(
        {
            "success": True,
            "auto_login": True,
            "is_new_user": is_new_user,
            "magic_link_url": _magic_link_url(admin, link, redirect_to),
            "user_id": user_id,
        }
    )


def _magic_link_url(admin: SupabaseAdmin, link: dict[str, Any], redirect_to: str) -> str | None:
    if link.get("hashed_token"):
        return admin.verify_url(link["hashed_token"], redirect_to)
    return link.get("action_link")
