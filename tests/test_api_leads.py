"""Tests for the public lead capture function."""

import pytest
from conftest import FakeUpstream, sent_json

LEADS = "https://db.test/rest/v1/leads"


class TestCreateLead:
    async def test_records_lead_without_authorization(self, client, upstream: FakeUpstream) -> None:
        upstream.on("POST", LEADS, status=201, content=b"")
        response = await client.post(
            "/api/create-lead",
            json={"fullName": "Ada Lovelace", "email": "ada@example.com", "company": ""},
        )
        assert response.status == 201
        assert response.json() == {"success": True}
        assert response.header("access-control-allow-origin") == "*"

        (sent,) = upstream.calls("POST", LEADS)
        assert sent.headers["apikey"] == "service-key"
        assert sent.headers["Prefer"] == "return=minimal"
        assert sent_json(sent) == {
            "full_name": "Ada Lovelace",
            "email": "ada@example.com",
            "phone": None,
            "company": None,
            "message": None,
            "source": "schedule_page",
            "status": "new",
        }

    async def test_missing_fields(self, client, upstream: FakeUpstream) -> None:
        response = await client.post("/api/create-lead", json={"email": "ada@example.com"})
        assert response.status == 400
        assert response.json()["error"] == "Missing required fields: fullName, email"
        assert response.header("access-control-allow-origin") == "*"
        assert upstream.requests == []

    async def test_invalid_email(self, client, upstream: FakeUpstream) -> None:
        response = await client.post(
            "/api/create-lead", json={"fullName": "Ada", "email": "ada at example"},
        )
        assert response.status == 400
        assert response.json()["error"] == "Invalid email address"
        assert upstream.requests == []

    @pytest.mark.parametrize("email", ["a@b.co\n", "\na@b.co", "a b@c.co"])
    async def test_email_must_match_whole_value(self, client, upstream: FakeUpstream, email: str) -> None:
        response = await client.post("/api/create-lead", json={"fullName": "A", "email": email})
        assert response.status == 400
        assert upstream.calls("POST", LEADS) == []

    async def test_database_failure(self, client, upstream: FakeUpstream) -> None:
        upstream.on("POST", LEADS, status=409, json={"message": "duplicate key"})
        response = await client.post(
            "/api/create-lead", json={"fullName": "Ada", "email": "ada@example.com", "source": "landing"},
        )
        assert response.status == 502
        assert response.json() == {"error": "Failed to save lead", "details": {"message": "duplicate key"}}
        assert sent_json(upstream.requests[0])["source"] == "landing"

    async def test_preflight(self, client) -> None:
        response = await client.options("/api/create-lead")
        assert response.status == 204
        assert response.body == b""
        assert response.header("access-control-allow-methods") == "POST, OPTIONS"
        assert response.header("access-control-allow-headers") == "Content-Type, Authorization"
