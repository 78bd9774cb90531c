"""Client for the workflow-automation webhooks (n8n).

Webhook URLs are environment bindings; each feature of the application
has its own hook. ``WorkflowHooks`` only knows how to deliver a payload
to a hook URL and check the reply; choosing the hook is the handler's job.
"""

from collections.abc import Mapping
from typing import Any

import httpx

from certiwize.config import Env
from certiwize.upstream.client import DEFAULT_TIMEOUT, fetch_with_timeout, raise_for_upstream

SERVICE = "n8n"

# Identifies calls made by this application in the workflow logs
SOURCE_HEADER = ("X-Source", "Certiwize-App")


class WorkflowHooks:
    """Posts JSON or multipart payloads to webhook URLs from ``env``."""

    __slots__ = ("_client", "_env", "_timeout")

    def __init__(self, client: httpx.AsyncClient, env: Env, *, timeout: float = DEFAULT_TIMEOUT) -> None:
        self._client = client
        self._env = env
        self._timeout = timeout

    def url(self, binding: str) -> str | None:
        """The hook URL bound to *binding*, or None when unset or empty."""
        return self._env.get_nonempty(binding)

    async def post_json(
        self,
        url: str,
        payload: Any,
        *,
        tagged: bool = False,
    ) -> httpx.Response:
        """POST *payload* as JSON; ``tagged`` adds the source header.

        Raises:
            UpstreamError: The hook answered with a non-2xx status.
            UpstreamTimeout: The hook did not answer in time.
        """
        headers = dict([SOURCE_HEADER]) if tagged else {}
        response = await fetch_with_timeout(
            self._client, "POST", url, timeout=self._timeout, json=payload, headers=headers,
        )
        return raise_for_upstream(SERVICE, response)

    async def post_multipart(
        self,
        url: str,
        fields: Mapping[str, str],
        files: Mapping[str, tuple[str, bytes, str]],
    ) -> httpx.Response:
        """POST a multipart form; *files* maps field to ``(filename, content, content_type)``."""
        response = await fetch_with_timeout(
            self._client, "POST", url, timeout=self._timeout, data=dict(fields), files=dict(files),
        )
        return raise_for_upstream(SERVICE, response)
