"""Tests for chat, document analysis and workflow triggers."""

import pytest
from conftest import AUTH, FakeUpstream, sent_json

from certiwize.api.analyze_doc import parse_workflow_reply, sanitize_control_chars
from certiwize.api.workflows import FEATURE_HOOKS, feature_number


def _multipart(fields: dict[str, str], file: tuple[str, bytes, str] | None) -> tuple[bytes, str]:
    boundary = "TestBoundary"
    parts: list[bytes] = []
    for name, value in fields.items():
        parts.append(
            f'--{boundary}\r\nContent-Disposition: form-data; name="{name}"\r\n\r\n{value}\r\n'.encode()
        )
    if file is not None:
        filename, content, content_type = file
        parts.append(
            (
                f"--{boundary}\r\n"
                f'Content-Disposition: form-data; name="file"; filename="{filename}"\r\n'
                f"Content-Type: {content_type}\r\n\r\n"
            ).encode()
            + content
            + b"\r\n"
        )
    parts.append(f"--{boundary}--\r\n".encode())
    return b"".join(parts), f"multipart/form-data; boundary={boundary}"


class TestChat:
    async def test_reply_is_returned_verbatim(self, client, upstream: FakeUpstream) -> None:
        upstream.on("POST", "https://hooks.test/chat", json={"output": "Bonjour", "sources": []})
        response = await client.post("/api/chat", json={"message": "Salut"}, headers=AUTH)
        assert response.status == 200
        assert response.json() == {"output": "Bonjour", "sources": []}
        assert sent_json(upstream.requests[0]) == {"message": "Salut", "history": []}

    async def test_upstream_failure(self, client, upstream: FakeUpstream) -> None:
        upstream.on("POST", "https://hooks.test/chat", status=503, content=b"unavailable")
        response = await client.post("/api/chat", json={"message": "Salut"}, headers=AUTH)
        assert response.status == 502
        assert response.json() == {"error": "Error processing chat", "details": "unavailable"}

    async def test_json_body_must_be_an_object(self, client) -> None:
        response = await client.post("/api/chat", json=["Salut"], headers=AUTH)
        assert response.status == 400
        assert response.json()["error"] == "JSON body must be an object"

    async def test_get_is_not_routed(self, client) -> None:
        response = await client.get("/api/chat", headers=AUTH)
        assert response.status == 404


class TestAnalyzeDoc:
    async def test_forwards_file_and_merges_reply(self, client, upstream: FakeUpstream) -> None:
        upstream.on("POST", "https://hooks.test/analyze", json={"siret": "12345678901234"})
        body, content_type = _multipart({"docType": "kbis"}, ("kbis.pdf", b"%PDF", "application/pdf"))
        response = await client.post(
            "/api/analyze-doc", body=body, headers={**AUTH, "Content-Type": content_type},
        )
        assert response.status == 200
        assert response.json() == {"success": True, "siret": "12345678901234"}

        sent = upstream.requests[0]
        assert sent.headers["content-type"].startswith("multipart/form-data")
        assert b'name="docType"' in sent.content
        assert b'name="fileName"' in sent.content
        assert b"kbis.pdf" in sent.content
        assert b"%PDF" in sent.content

    async def test_missing_file(self, client, upstream: FakeUpstream) -> None:
        body, content_type = _multipart({"docType": "kbis"}, None)
        response = await client.post(
            "/api/analyze-doc", body=body, headers={**AUTH, "Content-Type": content_type},
        )
        assert response.status == 400
        assert upstream.requests == []

    async def test_not_a_form(self, client) -> None:
        response = await client.post("/api/analyze-doc", json={"docType": "kbis"}, headers=AUTH)
        assert response.status == 400

    async def test_unparseable_reply_is_wrapped(self, client, upstream: FakeUpstream) -> None:
        upstream.on("POST", "https://hooks.test/analyze", content=b"not json at all")
        body, content_type = _multipart({"docType": "kbis"}, ("a.pdf", b"x", "application/pdf"))
        response = await client.post(
            "/api/analyze-doc", body=body, headers={**AUTH, "Content-Type": content_type},
        )
        assert response.json() == {"success": True, "text": "not json at all", "raw_response": True}


class TestWorkflowReplyParsing:
    def test_plain_json(self) -> None:
        assert parse_workflow_reply('{"a": 1}') == {"a": 1}

    def test_raw_line_breaks_are_escaped(self) -> None:
        assert parse_workflow_reply('{"a": "line1\nline2\tend"}') == {"a": "line1\nline2\tend"}

    def test_other_control_characters_are_dropped(self) -> None:
        assert sanitize_control_chars("a\x00b\x1fc\rd") == "abc\\rd"

    def test_fallback(self) -> None:
        assert parse_workflow_reply("nope") == {"text": "nope", "raw_response": True}


class TestTriggerWorkflow:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [(2, 2), ("2", 2), (" 15 ", 15), (True, None), ("x", None), (None, None), ("²", None), ("١٢", None)],
    )
    def test_feature_number(self, value: object, expected: int | None) -> None:
        assert feature_number(value) == expected

    def test_fifteen_features(self) -> None:
        assert sorted(FEATURE_HOOKS) == list(range(1, 16))
        assert FEATURE_HOOKS[15] == "N8N_HOOK_PENNYLANE"

    async def test_triggers_configured_feature(self, client, upstream: FakeUpstream) -> None:
        upstream.on("POST", "https://hooks.test/signature", json={"status": "sent"})
        response = await client.post(
            "/api/trigger-workflow",
            json={"featureId": "2", "data": {"sessionId": 9}},
            headers=AUTH,
        )
        assert response.status == 200
        assert response.json() == {"success": True, "n8n": {"status": "sent"}}
        sent = upstream.requests[0]
        assert sent.headers["X-Source"] == "Certiwize-App"
        assert sent_json(sent) == {"sessionId": 9, "userToken": "Bearer user-token"}

    async def test_unmapped_feature(self, client, upstream: FakeUpstream) -> None:
        response = await client.post(
            "/api/trigger-workflow", json={"featureId": 99, "data": {}}, headers=AUTH,
        )
        assert response.status == 501
        assert response.json()["error"] == "No webhook configured for feature #99"
        assert upstream.requests == []

    async def test_non_ascii_digits_are_unmapped(self, client, upstream: FakeUpstream) -> None:
        response = await client.post(
            "/api/trigger-workflow", json={"featureId": "²", "data": {}}, headers=AUTH,
        )
        assert response.status == 501
        assert response.json() == {"error": "No webhook configured for feature #²"}
        assert upstream.requests == []

    async def test_mapped_but_unconfigured_feature(self, client) -> None:
        response = await client.post(
            "/api/trigger-workflow", json={"featureId": 3, "data": {}}, headers=AUTH,
        )
        assert response.status == 501

    async def test_workflow_failure(self, client, upstream: FakeUpstream) -> None:
        upstream.on("POST", "https://hooks.test/signature", status=500, json={"message": "boom"})
        response = await client.post(
            "/api/trigger-workflow", json={"featureId": 2, "data": {}}, headers=AUTH,
        )
        assert response.status == 502
        assert response.json()["error"] == "Workflow execution failed"
