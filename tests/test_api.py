"""
tests.test_api

End-to-end API tests: FastAPI app + SQLite role store + a stateful in-process directory.

Responsibilities:
- Boot the app through its lifespan and serve health endpoints.
- Drive role changes over HTTP and check the status-code mapping per outcome.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wfm_rolesync.api.app import create_app
from wfm_rolesync.auth.models import UserRole
from wfm_rolesync.db.repositories.principals import PrincipalRepo
from wfm_rolesync.errors import ConfigurationError
from wfm_rolesync.settings import Settings

ASSIGNMENTS_PATH = "/v1.0/servicePrincipals/sp-1/appRoleAssignedTo"


class GraphFake:
    def __init__(self) -> None:
        self.users: dict[str, dict[str, str]] = {}
        self.grants: dict[str, dict[str, str]] = {}
        self.fail_assign = False

    def add_user(self, email: str, directory_id: str, name: str) -> None:
        self.users[email] = {"id": directory_id, "displayName": name, "mail": email}

    def roles_of(self, directory_id: str) -> list[str]:
        return [g["appRoleId"] for g in self.grants.values() if g["principalId"] == directory_id]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.url.host == "login.test":
            return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})
        if path.startswith("/v1.0/users/"):
            user = self.users.get(path.removeprefix("/v1.0/users/"))
            return httpx.Response(200, json=user) if user else httpx.Response(404)
        if path == "/v1.0/users":
            return httpx.Response(200, json={"value": []})
        if path == ASSIGNMENTS_PATH and request.method == "GET":
            return httpx.Response(200, json={"value": list(self.grants.values())})
        if path == ASSIGNMENTS_PATH and request.method == "POST":
            if self.fail_assign:
                return httpx.Response(503)
            body = json.loads(request.content)
            grant_id = str(uuid.uuid4())
            self.grants[grant_id] = {
                "id": grant_id,
                "principalId": body["principalId"],
                "appRoleId": body["appRoleId"],
            }
            return httpx.Response(201, json=self.grants[grant_id])
        if path.startswith(ASSIGNMENTS_PATH + "/") and request.method == "DELETE":
            removed = self.grants.pop(path.rsplit("/", 1)[1], None)
            return httpx.Response(204 if removed else 404)
        return httpx.Response(500)


@dataclass
class Harness:
    app: FastAPI
    client: httpx.AsyncClient
    graph: GraphFake

    @property
    def sessionmaker(self) -> async_sessionmaker[AsyncSession]:
        return self.app.state.sessionmaker

    async def seed(self, email: str, directory_id: str, role: UserRole) -> uuid.UUID:
        self.graph.add_user(email, directory_id, email.split("@")[0])
        async with self.sessionmaker() as session, session.begin():
            user = await PrincipalRepo(session).upsert_role(
                email=email, directory_id=directory_id, full_name="", role=role
            )
            return user.id

    async def token_for(self, directory_id: str) -> dict[str, str]:
        r = await self.client.post("/v1/dev/token", json={"directory_id": directory_id})
        assert r.status_code == 200
        return {"Authorization": f"Bearer {r.json()['access_token']}"}

    async def role_of(self, email: str) -> UserRole | None:
        async with self.sessionmaker() as session:
            user = await PrincipalRepo(session).get_by_email(email)
            return user.role if user else None


@pytest_asyncio.fixture
async def harness(settings: Settings) -> AsyncIterator[Harness]:
    graph = GraphFake()
    app = create_app(settings=settings, directory_transport=httpx.MockTransport(graph))
    # httpx ASGITransport does not run the lifespan; drive it explicitly.
    async with app.router.lifespan_context(app):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            h = Harness(app=app, client=client, graph=graph)
            await h.seed("root@x.com", "dir-root", UserRole.super_admin)
            yield h


@pytest.mark.asyncio
async def test_health_endpoints(harness: Harness) -> None:
    r = await harness.client.get("/healthz")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"

    r = await harness.client.get("/readyz")
    assert r.status_code == 200
    assert r.json()["status"] == "ready"
    ready = r.json()
    assert ready["directory_configured"] is True
    assert ready["service_principal_id"] == "sp-1"
    assert ready["pending_presence_writes"] == 0
    assert ready["principals_in_flight"] == 0
    assert r.headers["x-request-id"]


@pytest.mark.asyncio
async def test_change_role_commits_and_reports_consistency(harness: Harness) -> None:
    headers = await harness.token_for("dir-root")
    harness.graph.add_user("a@x.com", "dir-a", "Ada")

    r = await harness.client.post(
        "/v1/roles/change",
        json={"user_email": "a@x.com", "new_role": "Employee"},
        headers=headers,
    )
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "committed"
    assert body["previous_role"] is None
    assert body["new_role"] == "Employee"
    assert body["azure_ad_updated"] is True
    assert body["rollback_required"] is False
    assert await harness.role_of("a@x.com") == UserRole.employee
    assert harness.graph.roles_of("dir-a") == ["scope-employee"]

    r = await harness.client.get("/v1/roles/status", params={"email": "a@x.com"}, headers=headers)
    assert r.status_code == 200
    status = r.json()
    assert status["consistent"] is True
    assert status["local_role"] == "Employee"
    assert status["directory_roles"] == ["Employee"]

    async with harness.sessionmaker() as session:
        user = await PrincipalRepo(session).get_by_email("a@x.com")
    assert user is not None
    r = await harness.client.get(f"/v1/audit/{user.id}", headers=headers)
    assert r.status_code == 200
    entries = r.json()
    assert len(entries) == 1
    assert entries[0]["action"] == "ROLE_CHANGE"
    assert entries[0]["data_before"] is None
    assert entries[0]["data_after"]["role"] == "Employee"


@pytest.mark.asyncio
async def test_directory_failure_is_reported_as_rollback(harness: Harness) -> None:
    headers = await harness.token_for("dir-root")
    await harness.seed("d@x.com", "dir-d", UserRole.employee)
    harness.graph.fail_assign = True

    r = await harness.client.post(
        "/v1/roles/change",
        json={"user_email": "d@x.com", "new_role": "Admin"},
        headers=headers,
    )

    assert r.status_code == 502
    body = r.json()
    assert body["status"] == "rollback_required"
    assert body["rollback_required"] is True
    assert body["azure_ad_updated"] is False
    assert await harness.role_of("d@x.com") == UserRole.employee

    r = await harness.client.get("/v1/roles/status", params={"email": "d@x.com"}, headers=headers)
    assert r.json()["consistent"] is False


@pytest.mark.asyncio
async def test_removal(harness: Harness) -> None:
    headers = await harness.token_for("dir-root")
    await harness.seed("e@x.com", "dir-e", UserRole.supervisor)

    r = await harness.client.post(
        "/v1/roles/change", json={"user_email": "e@x.com", "new_role": None}, headers=headers
    )

    assert r.status_code == 200
    assert r.json()["previous_role"] == "Supervisor"
    assert await harness.role_of("e@x.com") is None


@pytest.mark.asyncio
async def test_self_change_is_bad_request(harness: Harness) -> None:
    headers = await harness.token_for("dir-root")
    r = await harness.client.post(
        "/v1/roles/change",
        json={"user_email": "root@x.com", "new_role": "Admin"},
        headers=headers,
    )
    assert r.status_code == 400
    assert r.json()["detail"] == "Cannot change own role"


@pytest.mark.asyncio
async def test_super_admin_target_is_forbidden(harness: Harness) -> None:
    await harness.seed("boss@x.com", "dir-boss", UserRole.super_admin)
    headers = await harness.token_for("dir-root")
    r = await harness.client.post(
        "/v1/roles/change",
        json={"user_email": "boss@x.com", "new_role": "Admin"},
        headers=headers,
    )
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_unknown_directory_account_is_not_found(harness: Harness) -> None:
    headers = await harness.token_for("dir-root")
    r = await harness.client.post(
        "/v1/roles/change",
        json={"user_email": "ghost@x.com", "new_role": "Employee"},
        headers=headers,
    )
    assert r.status_code == 404
    assert r.json()["status"] == "principal_not_found"

    r = await harness.client.get(
        "/v1/roles/status", params={"email": "ghost@x.com"}, headers=headers
    )
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_auth_is_required(harness: Harness) -> None:
    r = await harness.client.post(
        "/v1/roles/change", json={"user_email": "a@x.com", "new_role": "Employee"}
    )
    assert r.status_code == 401

    r = await harness.client.post(
        "/v1/roles/change",
        json={"user_email": "a@x.com", "new_role": "Employee"},
        headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_unknown_principal_token_is_rejected(harness: Harness) -> None:
    headers = await harness.token_for("dir-nobody")
    r = await harness.client.get("/v1/roles/assignable", headers=headers)
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_employee_cannot_change_roles(harness: Harness) -> None:
    await harness.seed("emp@x.com", "dir-emp", UserRole.employee)
    headers = await harness.token_for("dir-emp")
    r = await harness.client.post(
        "/v1/roles/change",
        json={"user_email": "a@x.com", "new_role": "Employee"},
        headers=headers,
    )
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_invalid_role_is_rejected(harness: Harness) -> None:
    headers = await harness.token_for("dir-root")
    r = await harness.client.post(
        "/v1/roles/change",
        json={"user_email": "a@x.com", "new_role": "Overlord"},
        headers=headers,
    )
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_assignable_roles(harness: Harness) -> None:
    await harness.seed("lead@x.com", "dir-lead", UserRole.supervisor)

    r = await harness.client.get(
        "/v1/roles/assignable", headers=await harness.token_for("dir-root")
    )
    assert r.json() == {"roles": [role.value for role in UserRole], "can_remove": True}

    r = await harness.client.get(
        "/v1/roles/assignable", headers=await harness.token_for("dir-lead")
    )
    assert r.json() == {"roles": ["Employee"], "can_remove": False}


@pytest.mark.asyncio
async def test_dev_token_is_disabled_in_prod(settings: Settings) -> None:
    prod = settings.model_copy(update={"env": "prod"})
    app = create_app(settings=prod)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        r = await client.post("/v1/dev/token", json={"directory_id": "dir-root"})
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_startup_fails_without_directory_config(settings: Settings) -> None:
    broken = settings.model_copy(update={"directory_client_secret": None})
    app = create_app(settings=broken)
    with pytest.raises(ConfigurationError):
        async with app.router.lifespan_context(app):
            pass
