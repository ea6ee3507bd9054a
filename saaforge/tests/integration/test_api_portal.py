from __future__ import annotations

import httpx
import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.dml import Update

from saaforge.apps.api.main import create_app
from saaforge.tests.utils.auth import create_test_principal


@pytest.fixture
async def client() -> httpx.AsyncClient:
    transport = httpx.ASGITransport(app=create_app())
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client


@pytest.mark.asyncio
async def test_health_envelope_echoes_request_id(client: httpx.AsyncClient) -> None:
    response = await client.get("/v1/health", headers={"X-Request-Id": "req-123"})
    assert response.status_code == 200
    assert response.headers["X-Request-Id"] == "req-123"
    body = response.json()
    assert body["data"] == {"status": "ok"}
    assert body["meta"] == {"request_id": "req-123", "api_version": "v1"}


@pytest.mark.asyncio
async def test_invite_register_flow(client: httpx.AsyncClient) -> None:
    _owner, owner_headers = await create_test_principal(role="owner")

    created = await client.post(
        "/v1/invites",
        json={"email": "New@Example.com", "code": "WELCOME00001"},
        headers=owner_headers,
    )
    assert created.status_code == 201
    assert created.json()["data"]["email"] == "new@example.com"

    lookup = await client.get("/v1/invites/WELCOME00001")
    assert lookup.status_code == 200
    assert lookup.json()["data"]["email_bound"] is True
    # Anonymous callers learn that an address is bound, not which one.
    assert lookup.json()["data"].get("email") is None
    owner_lookup = await client.get("/v1/invites/WELCOME00001", headers=owner_headers)
    assert owner_lookup.json()["data"]["email"] == "new@example.com"

    registered = await client.post(
        "/v1/auth/register",
        json={"code": "WELCOME00001", "email": "new@example.com", "password": "longpass"},
    )
    assert registered.status_code == 201
    session = registered.json()["data"]
    assert session["principal"]["role"] == "team"
    assert session["principal"]["is_approved"] is False

    me = await client.get("/v1/auth/me", headers={"Authorization": f"Bearer {session['token']}"})
    assert me.status_code == 200
    assert me.json()["data"]["email"] == "new@example.com"

    reused = await client.post(
        "/v1/auth/register",
        json={"code": "WELCOME00001", "email": "new@example.com", "password": "longpass"},
    )
    assert reused.status_code == 409
    assert reused.json()["error"]["code"] == "INVITE_ALREADY_USED"

    listing = await client.get("/v1/invites", headers=owner_headers)
    assert [item["is_used"] for item in listing.json()["data"]["items"]] == [True]


@pytest.mark.asyncio
async def test_unknown_invite_and_anonymous_me(client: httpx.AsyncClient) -> None:
    missing = await client.get("/v1/invites/NOPE")
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "NOT_FOUND"

    anonymous = await client.get("/v1/auth/me")
    assert anonymous.status_code == 401
    assert anonymous.headers["WWW-Authenticate"] == "Bearer"
    error = anonymous.json()["error"]
    assert error["code"] == "AUTH_UNAUTHORIZED"
    assert error["details"]["redirect_to"] == "/login"


@pytest.mark.asyncio
async def test_unapproved_member_is_sent_home(client: httpx.AsyncClient) -> None:
    _member, headers = await create_test_principal(role="team", approved=False)
    response = await client.get("/v1/projects/assigned", headers=headers)
    assert response.status_code == 403
    error = response.json()["error"]
    assert error["code"] == "AUTH_FORBIDDEN"
    assert error["details"]["redirect_to"] == "/"

    check = await client.get("/v1/access/check", params={"required_role": "team", "path": "/dashboard"}, headers=headers)
    assert check.json()["data"] == {"allowed": False, "redirect_to": "/", "role": "team", "is_approved": False}

    # Already on the redirect target: no redirect is returned.
    at_home = await client.get("/v1/access/check", params={"required_role": "team", "path": "/"}, headers=headers)
    assert at_home.json()["data"]["redirect_to"] is None

    anonymous = await client.get("/v1/access/check", params={"required_role": "owner"})
    assert anonymous.json()["data"]["redirect_to"] == "/login"


@pytest.mark.asyncio
async def test_review_through_the_api(client: httpx.AsyncClient) -> None:
    _owner, owner_headers = await create_test_principal(role="owner")
    _member, member_headers = await create_test_principal(role="team")

    submitted = await client.post(
        "/v1/join-requests",
        json={"name": "Grace", "email": "grace@example.com", "reason": "Let me in"},
    )
    assert submitted.status_code == 201
    request_id = submitted.json()["data"]["id"]
    assert submitted.json()["data"]["status"] == "pending"

    path = f"/v1/workflows/join_request/{request_id}/transition"
    forbidden = await client.post(path, json={"status": "approved"}, headers=member_headers)
    assert forbidden.status_code == 403

    approved = await client.post(path, json={"status": "approved"}, headers=owner_headers)
    assert approved.status_code == 200
    assert approved.json()["data"]["from_status"] == "pending"
    assert approved.json()["data"]["audit_recorded"] is True

    again = await client.post(path, json={"status": "rejected"}, headers=owner_headers)
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "INVALID_TRANSITION"

    pending = await client.get("/v1/workflows/join_request", params={"status": "pending"}, headers=owner_headers)
    assert pending.json()["data"]["items"] == []

    logs = await client.get("/v1/audit/logs", params={"action": "team.approved"}, headers=owner_headers)
    assert logs.status_code == 200
    items = logs.json()["data"]["items"]
    assert [item["target_id"] for item in items] == [request_id]

    entry = await client.get(f"/v1/audit/logs/{items[0]['id']}", headers=owner_headers)
    assert entry.json()["data"]["action"] == "team.approved"
    assert (await client.get("/v1/audit/logs", headers=member_headers)).status_code == 403


@pytest.mark.asyncio
async def test_orders_validate_service_type(client: httpx.AsyncClient) -> None:
    bad = await client.post(
        "/v1/orders",
        json={"name": "Acme", "email": "buyer@acme.com", "service_type": "painting"},
    )
    assert bad.status_code == 400
    assert bad.json()["error"]["code"] == "VALIDATION_FAILED"

    good = await client.post(
        "/v1/orders",
        json={"name": "Acme", "email": "buyer@acme.com", "service_type": "automation"},
    )
    assert good.status_code == 201
    assert good.json()["data"]["status"] == "new"


@pytest.mark.asyncio
async def test_notification_feeds(client: httpx.AsyncClient) -> None:
    _owner, owner_headers = await create_test_principal(role="owner")
    await client.post(
        "/v1/orders",
        json={"name": "Acme", "email": "buyer@acme.com", "service_type": "website"},
    )

    counts = await client.get("/v1/notifications", headers=owner_headers)
    assert counts.status_code == 200
    assert counts.json()["data"]["counts"]["orders"] == 1

    unknown = await client.post("/v1/notifications/inbox/viewed", headers=owner_headers)
    assert unknown.status_code == 400
    assert unknown.json()["error"]["code"] == "VALIDATION_FAILED"

    viewed = await client.post("/v1/notifications/orders/viewed", headers=owner_headers)
    assert viewed.json()["data"] == {"feed": "orders", "recorded": True}

    counts = await client.get("/v1/notifications", headers=owner_headers)
    assert counts.json()["data"]["counts"]["orders"] == 0


@pytest.mark.asyncio
async def test_unknown_route_uses_error_envelope(client: httpx.AsyncClient) -> None:
    response = await client.get("/v1/nowhere", headers={"X-Request-Id": "req-404"})
    assert response.status_code == 404
    body = response.json()
    assert body["error"]["code"] == "NOT_FOUND"
    assert body["meta"] == {"request_id": "req-404", "api_version": "v1"}


@pytest.mark.asyncio
async def test_store_failure_on_review_returns_503(client: httpx.AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
    _owner, owner_headers = await create_test_principal(role="owner")
    submitted = await client.post(
        "/v1/join-requests",
        json={"name": "Grace", "email": "grace@example.com", "reason": "Let me in"},
    )
    request_id = submitted.json()["data"]["id"]

    original_execute = AsyncSession.execute

    async def _execute(self, statement, *args, **kwargs):
        # Only the review's conditional update fails; auth still resolves.
        if isinstance(statement, Update) and statement.table.name == "join_requests":
            raise OperationalError("UPDATE join_requests", {}, Exception("database is locked"))
        return await original_execute(self, statement, *args, **kwargs)

    monkeypatch.setattr(AsyncSession, "execute", _execute)
    response = await client.post(
        f"/v1/workflows/join_request/{request_id}/transition",
        json={"status": "approved"},
        headers=owner_headers,
    )
    assert response.status_code == 503
    body = response.json()
    assert body["error"]["code"] == "STORE_UNAVAILABLE"
    assert "request_id" in body["meta"]

    monkeypatch.undo()
    pending = await client.get("/v1/workflows/join_request", params={"status": "pending"}, headers=owner_headers)
    assert [item["id"] for item in pending.json()["data"]["items"]] == [request_id]


@pytest.mark.asyncio
async def test_task_and_feedback_through_the_api(client: httpx.AsyncClient) -> None:
    _owner, owner_headers = await create_test_principal(role="owner")
    member, member_headers = await create_test_principal(role="team")
    _user, user_headers = await create_test_principal(role="user")

    project = await client.post(
        "/v1/projects",
        json={"name": "Client portal", "project_type": "client", "client_id": "ACME-42", "is_published": True},
        headers=owner_headers,
    )
    project_id = project.json()["data"]["id"]
    assert project.json()["data"]["client_id"] == "ACME-42"
    public = await client.get("/v1/projects")
    assert "client_id" not in public.json()["data"][0]

    task = await client.post(
        "/v1/tasks",
        json={"title": "Build login", "assigned_to": member.principal_id, "project_id": project_id},
        headers=owner_headers,
    )
    assert task.status_code == 201
    task_id = task.json()["data"]["id"]
    assert (await client.post("/v1/tasks", json={"title": "x", "assigned_to": "y"}, headers=member_headers)).status_code == 403

    moved = await client.post(f"/v1/tasks/{task_id}/status", json={"status": "completed"}, headers=member_headers)
    assert moved.json()["data"]["status"] == "completed"
    graded = await client.post(f"/v1/tasks/{task_id}/grade", json={"grade": 88}, headers=owner_headers)
    assert graded.json()["data"]["grade"] == 88
    mine = await client.get("/v1/tasks", headers=member_headers)
    assert [item["id"] for item in mine.json()["data"]] == [task_id]

    anonymous = await client.post(f"/v1/projects/{project_id}/feedback", json={"feedback": "Nice"})
    assert anonymous.status_code == 401
    missing_client = await client.post(
        f"/v1/projects/{project_id}/feedback", json={"feedback": "Nice"}, headers=user_headers
    )
    assert missing_client.status_code == 400
    sent = await client.post(
        f"/v1/projects/{project_id}/feedback",
        json={"feedback": "Nice", "rating": 5, "client_id": "ACME-42"},
        headers=user_headers,
    )
    assert sent.status_code == 201
    feedback_id = sent.json()["data"]["id"]
    assert "user_email" not in sent.json()["data"]

    review = await client.get("/v1/feedback", params={"status": "pending"}, headers=owner_headers)
    items = review.json()["data"]
    assert [item["id"] for item in items] == [feedback_id]
    assert items[0]["client_id_valid"] is True
    assert (await client.get("/v1/feedback", headers=user_headers)).status_code == 403

    counts = await client.get("/v1/notifications", headers=member_headers)
    assert counts.json()["data"]["counts"] == {"projects": 0, "tasks": 1, "feedback": 1}

    approved = await client.post(f"/v1/feedback/{feedback_id}/approve", headers=owner_headers)
    assert approved.json()["data"]["is_approved"] is True
    listed = await client.get(f"/v1/projects/{project_id}/feedback")
    assert [item["id"] for item in listed.json()["data"]] == [feedback_id]
