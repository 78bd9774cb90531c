"""The application's route table.

One POST entry per function, all mounted under ``/api``, plus CORS
preflights for the endpoints the browser calls cross-origin.
"""

from certiwize.api._common import preflight
from certiwize.api.analyze_doc import analyze_doc
from certiwize.api.chat import chat
from certiwize.api.checkout import complete_gocardless_checkout, create_gocardless_subscription
from certiwize.api.documents import generate_convention, generate_project_doc, generate_training_pdf
from certiwize.api.leads import create_lead
from certiwize.api.workflows import trigger_workflow
from certiwize.routing.table import Handler, RouteEntry, RouteTable

MOUNT = "/api"


def _post(path: str, handler: Handler) -> RouteEntry:
    return RouteEntry(f"{MOUNT}{path}", MOUNT, "POST", modules=(handler,))


def _options(path: str) -> RouteEntry:
    return RouteEntry(f"{MOUNT}{path}", MOUNT, "OPTIONS", modules=(preflight,))


ROUTES = RouteTable(
    (
        _post("/analyze-doc", analyze_doc),
        _post("/chat", chat),
        _options("/complete-gocardless-checkout"),
        _post("/complete-gocardless-checkout", complete_gocardless_checkout),
        _options("/create-gocardless-subscription"),
        _post("/create-gocardless-subscription", create_gocardless_subscription),
        _options("/create-lead"),
        _post("/create-lead", create_lead),
        _post("/generate-convention", generate_convention),
        _post("/generate-project-doc", generate_project_doc),
        _post("/generate-training-pdf", generate_training_pdf),
        _post("/trigger-workflow", trigger_workflow),
    )
)
