"""
Configuration pytest pour les tests

Les services externes sont remplacés par des doublures :
- InMemoryDatabase à la place du client Supabase (tables + auth)
- FakeLLMClient à la place du modèle génératif
- un faux serveur n8n aiohttp (TestServer) pour le proxy et le déploiement
"""

import asyncio
import copy
import functools
import itertools
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from workflowai.api_clients import LLMAPIError, N8nClient
from workflowai.config import settings
from workflowai.dependencies import get_db, get_llm_client, get_n8n_client_factory
from workflowai.main import app
from workflowai.supabase_client import AuthError

N8N_API_KEY = "n8n-test-key"

USERS = {
    "user-token": {"id": "user-1", "email": "user@example.com", "user_metadata": {"full_name": "Ada Lovelace"}},
    "other-token": {"id": "user-2", "email": "other@example.com", "user_metadata": {}},
    "admin-token": {"id": "admin-1", "email": "admin@example.com", "user_metadata": {}},
}


def pytest_configure(config):
    """Configuration des markers personnalisés"""
    config.addinivalue_line("markers", "n8n: Tests pour le proxy et le client n8n")
    config.addinivalue_line("markers", "llm: Tests pour le client du modèle génératif")
    config.addinivalue_line("markers", "workflow: Tests pour Workflow API")
    config.addinivalue_line("markers", "connections: Tests pour le gestionnaire de connexions")
    config.addinivalue_line("markers", "playground: Tests pour le playground IA")
    config.addinivalue_line("markers", "admin: Tests pour la console d'administration")
    config.addinivalue_line("markers", "security: Tests de sécurité")


@pytest.fixture(scope="session")
def anyio_backend():
    """Backend pour tests asynchrones"""
    return "asyncio"


# ============================================================================
# DOUBLURES
# ============================================================================

class InMemoryDatabase:
    """Même interface que SupabaseClient, tables stockées en mémoire."""

    def __init__(self, users: Optional[Dict[str, Dict[str, Any]]] = None):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.users = dict(users or USERS)
        self.passwords: Dict[str, str] = {}
        self.signed_out: List[str] = []
        self._clock = itertools.count()
        self._epoch = datetime.now(timezone.utc)

    def _timestamp(self) -> str:
        return (self._epoch + timedelta(milliseconds=next(self._clock))).isoformat()

    @staticmethod
    def _matches(row, filters=None, gte=None) -> bool:
        for column, value in (filters or {}).items():
            if row.get(column) != value:
                return False
        for column, value in (gte or {}).items():
            if row.get(column) is None or str(row[column]) < str(value):
                return False
        return True

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.setdefault(table, [])

    # Auth
    async def get_user(self, access_token: str) -> Dict[str, Any]:
        if access_token not in self.users:
            raise AuthError("Invalid authorization")
        return copy.deepcopy(self.users[access_token])

    async def sign_up(self, email: str, password: str, full_name: Optional[str] = None) -> Dict[str, Any]:
        if email in self.passwords:
            raise AuthError("User already registered", status=422)
        self.passwords[email] = password
        user = {"id": str(uuid.uuid4()), "email": email, "user_metadata": {"full_name": full_name or ""}}
        token = f"token-{user['id']}"
        self.users[token] = user
        return {"access_token": token, "refresh_token": "refresh", "expires_in": 3600, "user": user}

    async def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        if self.passwords.get(email) != password:
            raise AuthError("Invalid login credentials", status=400)
        token, user = next((t, u) for t, u in self.users.items() if u["email"] == email)
        return {"access_token": token, "refresh_token": "refresh", "expires_in": 3600, "user": user}

    async def sign_out(self, access_token: str) -> None:
        self.signed_out.append(access_token)

    # Tables
    async def select(self, table, filters=None, columns="*", order=None, descending=True, limit=None, gte=None):
        rows = [r for r in self.rows(table) if self._matches(r, filters, gte)]
        if order:
            rows.sort(key=lambda r: str(r.get(order) or ""), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        if columns != "*":
            wanted = [c.strip() for c in columns.split(",")]
            rows = [{c: r.get(c) for c in wanted} for r in rows]
        return copy.deepcopy(rows)

    async def select_one(self, table, filters):
        rows = await self.select(table, filters, limit=1)
        return rows[0] if rows else None

    async def count(self, table, filters=None, gte=None):
        return len(await self.select(table, filters, gte=gte))

    async def insert(self, table, row):
        stored = {"id": str(uuid.uuid4()), "created_at": self._timestamp(), **copy.deepcopy(row)}
        self.rows(table).append(stored)
        return copy.deepcopy(stored)

    async def upsert(self, table, row, on_conflict):
        keys = [k.strip() for k in on_conflict.split(",")]
        for existing in self.rows(table):
            if all(existing.get(k) == row.get(k) for k in keys):
                existing.update(copy.deepcopy(row))
                return copy.deepcopy(existing)
        return await self.insert(table, row)

    async def update(self, table, values, filters):
        updated = []
        for row in self.rows(table):
            if self._matches(row, filters):
                row.update(copy.deepcopy(values))
                updated.append(copy.deepcopy(row))
        return updated

    async def delete(self, table, filters):
        kept, deleted = [], []
        for row in self.rows(table):
            (deleted if self._matches(row, filters) else kept).append(row)
        self.tables[table] = kept
        return copy.deepcopy(deleted)


class FakeLLMClient:
    """Renvoie des réponses préparées à la place du modèle génératif."""

    provider = "gemini"

    def __init__(self):
        self.responses: List[Any] = []
        self.prompts: List[str] = []

    async def generate(self, prompt: str, system_prompt: Optional[str] = None):
        self.prompts.append(prompt)
        if not self.responses:
            raise AssertionError("FakeLLMClient has no prepared response")
        response = self.responses.pop(0)
        if isinstance(response, LLMAPIError):
            raise response
        return response, "gemini-test"


class FakeN8n:
    """Faux serveur n8n : API publique /api/v1 et /healthz."""

    def __init__(self):
        self.workflows: List[Dict[str, Any]] = [{"id": "existing-1", "name": "Existing"}]
        self.created: List[Dict[str, Any]] = []
        self.activated: List[str] = []
        self.requests: List[Dict[str, Any]] = []
        self.flaky_failures = 0
        self.version: Optional[str] = None
        self.activate_status = 200
        self.server: Optional[TestServer] = None

        self.app = web.Application()
        self.app.router.add_get("/healthz", self.healthz)
        self.app.router.add_get("/api/v1/workflows", self.list_workflows)
        self.app.router.add_post("/api/v1/workflows", self.create_workflow)
        self.app.router.add_post("/api/v1/workflows/{id}/activate", self.activate_workflow)
        self.app.router.add_get("/api/v1/flaky", self.flaky)
        self.app.router.add_get("/api/v1/broken", self.broken)
        self.app.router.add_get("/api/v1/rate-limited", self.rate_limited)
        self.app.router.add_get("/api/v1/not-json", self.not_json)
        self.app.router.add_get("/api/v1/slow", self.slow)
        self.app.router.add_delete("/api/v1/workflows/{id}", self.delete_workflow)

    @property
    def url(self) -> str:
        return str(self.server.make_url("")).rstrip("/")

    def _record(self, request: web.Request, body: Any = None) -> None:
        self.requests.append({
            "method": request.method,
            "path": request.path,
            "query": dict(request.query),
            "headers": request.headers.copy(),
            "body": body,
        })

    def _authorized(self, request: web.Request) -> bool:
        return request.headers.get("X-N8N-API-KEY") == N8N_API_KEY

    async def healthz(self, request):
        self._record(request)
        body = {"status": "ok"}
        if self.version:
            body["version"] = self.version
        return web.json_response(body)

    async def list_workflows(self, request):
        self._record(request)
        if not self._authorized(request):
            return web.json_response({"message": "unauthorized"}, status=401)
        return web.json_response({"data": self.workflows})

    async def create_workflow(self, request):
        body = await request.json()
        self._record(request, body)
        if not self._authorized(request):
            return web.json_response({"message": "unauthorized"}, status=401)
        if "active" in body or "id" in body:
            return web.json_response({"message": "request/body/active is read-only"}, status=400)
        workflow = {"id": f"wf-{len(self.created) + 1}", **body, "active": False}
        self.created.append(workflow)
        return web.json_response(workflow)

    async def activate_workflow(self, request):
        self._record(request)
        workflow_id = request.match_info["id"]
        if self.activate_status != 200:
            return web.json_response({"message": "Workflow has no trigger node"}, status=self.activate_status)
        self.activated.append(workflow_id)
        return web.json_response({"id": workflow_id, "active": True})

    async def delete_workflow(self, request):
        self._record(request)
        return web.Response(status=204)

    async def flaky(self, request):
        self._record(request)
        if self.flaky_failures > 0:
            self.flaky_failures -= 1
            return web.json_response({"message": "unavailable"}, status=503)
        return web.json_response({"ok": True})

    async def broken(self, request):
        self._record(request)
        return web.json_response({"message": "bad gateway"}, status=502)

    async def rate_limited(self, request):
        self._record(request)
        return web.json_response({"message": "slow down"}, status=429)

    async def not_json(self, request):
        self._record(request)
        return web.Response(text="plain text answer")

    async def slow(self, request):
        self._record(request)
        await asyncio.sleep(1)
        return web.json_response({"ok": True})


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def db():
    return InMemoryDatabase()


@pytest.fixture
def fake_llm():
    return FakeLLMClient()


@pytest.fixture(autouse=True)
def admin_emails(monkeypatch):
    monkeypatch.setattr(settings, "admin_emails", ["admin@example.com"])


@pytest.fixture
async def n8n():
    fake = FakeN8n()
    fake.server = TestServer(fake.app)
    await fake.server.start_server()
    yield fake
    await fake.server.close()


@pytest.fixture
def n8n_client_factory():
    """Client n8n sans attente entre les tentatives"""
    return functools.partial(N8nClient, timeout=5, max_retries=2, backoff=0)


@pytest.fixture
async def client(db, fake_llm, n8n_client_factory):
    """Client HTTP sur l'application, services externes remplacés"""
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_llm_client] = lambda: fake_llm
    app.dependency_overrides[get_n8n_client_factory] = lambda: n8n_client_factory
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http_client:
        yield http_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": "Bearer user-token"}


@pytest.fixture
def other_headers():
    return {"Authorization": "Bearer other-token"}


@pytest.fixture
def admin_headers():
    return {"Authorization": "Bearer admin-token"}


@pytest.fixture
def sample_workflow():
    """Workflow n8n valide avec deux nœuds dont un Slack"""
    return {
        "name": "Sheet to Slack",
        "nodes": [
            {"name": "Schedule", "type": "n8n-nodes-base.cron", "parameters": {}},
            {"name": "Notify Slack", "type": "n8n-nodes-base.slack", "parameters": {"channel": "#general"}},
        ],
        "connections": {
            "Schedule": {"main": [[{"node": "Notify Slack", "type": "main", "index": 0}]]}
        },
        "settings": {},
    }


async def save_connection(client, headers, base_url, name="Main instance", api_key=N8N_API_KEY):
    response = await client.post("/api/n8n/connections", headers=headers, json={
        "instanceName": name,
        "baseUrl": base_url,
        "apiKey": api_key,
    })
    assert response.status_code == 200, response.text
    return response.json()
