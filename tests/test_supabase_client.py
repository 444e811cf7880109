"""
Tests pour le client Supabase (auth GoTrue et tables PostgREST)
"""

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from workflowai.supabase_client import AuthError, SupabaseClient, SupabaseError


class FakeSupabase:
    """Faux projet Supabase : enregistre les requêtes et renvoie des réponses fixes"""

    def __init__(self):
        self.requests = []
        self.app = web.Application()
        self.app.router.add_get("/auth/v1/user", self.user)
        self.app.router.add_post("/auth/v1/token", self.token)
        self.app.router.add_route("*", "/rest/v1/{table}", self.table)
        self.server = None

    @property
    def url(self):
        return str(self.server.make_url("")).rstrip("/")

    async def _record(self, request):
        body = await request.json() if request.can_read_body else None
        self.requests.append({
            "method": request.method,
            "path": request.path,
            "query": dict(request.query),
            "headers": request.headers.copy(),
            "body": body,
        })

    async def user(self, request):
        await self._record(request)
        if request.headers.get("Authorization") != "Bearer good-token":
            return web.json_response({"msg": "invalid JWT"}, status=401)
        return web.json_response({"id": "user-1", "email": "user@example.com"})

    async def token(self, request):
        await self._record(request)
        body = await request.json()
        if body["password"] != "right":
            return web.json_response({"error_description": "Invalid login credentials"}, status=400)
        return web.json_response({"access_token": "good-token", "user": {"id": "user-1"}})

    async def table(self, request):
        await self._record(request)
        table = request.match_info["table"]
        if table == "missing":
            return web.json_response({"message": "relation does not exist"}, status=404)
        if request.method == "DELETE" and table == "empty":
            return web.Response(status=204)
        if request.method == "GET" and "count=exact" in request.headers.get("Prefer", ""):
            content_range = "*/42" if table != "nocount" else "*"
            return web.json_response([], headers={"Content-Range": content_range})
        if request.method == "GET":
            return web.json_response([{"id": "1"}, {"id": "2"}])
        return web.json_response([{"id": "new", **(await request.json() or {})}])


@pytest.fixture
async def supabase():
    fake = FakeSupabase()
    fake.server = TestServer(fake.app)
    await fake.server.start_server()
    yield fake
    await fake.server.close()


@pytest.fixture
def supabase_client(supabase):
    return SupabaseClient(supabase.url, "anon-key", "service-key", timeout=5)


class TestAuth:
    """Tests des appels d'authentification"""

    @pytest.mark.asyncio
    @pytest.mark.security
    async def test_get_user(self, supabase_client, supabase):
        user = await supabase_client.get_user("good-token")

        assert user["id"] == "user-1"
        assert supabase.requests[0]["headers"]["apikey"] == "anon-key"

    @pytest.mark.asyncio
    @pytest.mark.security
    async def test_invalid_token(self, supabase_client):
        with pytest.raises(AuthError) as exc_info:
            await supabase_client.get_user("bad-token")
        assert exc_info.value.status == 401

    @pytest.mark.asyncio
    @pytest.mark.security
    async def test_empty_token(self, supabase_client, supabase):
        with pytest.raises(AuthError):
            await supabase_client.get_user("")
        assert supabase.requests == []

    @pytest.mark.asyncio
    @pytest.mark.security
    async def test_sign_in(self, supabase_client, supabase):
        session = await supabase_client.sign_in("user@example.com", "right")

        assert session["access_token"] == "good-token"
        assert supabase.requests[0]["query"] == {"grant_type": "password"}

        with pytest.raises(AuthError) as exc_info:
            await supabase_client.sign_in("user@example.com", "wrong")
        assert exc_info.value.message == "Invalid login credentials"


class TestTables:
    """Tests des appels PostgREST"""

    @pytest.mark.asyncio
    async def test_select_filters(self, supabase_client, supabase):
        rows = await supabase_client.select(
            "n8n_connections",
            {"user_id": "user-1", "is_active": True, "version": None},
            order="created_at",
            limit=10,
            gte={"created_at": "2024-01-01"}
        )

        assert rows == [{"id": "1"}, {"id": "2"}]
        request = supabase.requests[0]
        assert request["query"] == {
            "user_id": "eq.user-1",
            "is_active": "eq.true",
            "version": "is.null",
            "created_at": "gte.2024-01-01",
            "select": "*",
            "order": "created_at.desc",
            "limit": "10",
        }
        assert request["headers"]["apikey"] == "service-key"
        assert request["headers"]["Authorization"] == "Bearer service-key"

    @pytest.mark.asyncio
    async def test_count_reads_content_range(self, supabase_client, supabase):
        """Test comptage côté serveur, aucune ligne transférée"""
        total = await supabase_client.count(
            "user_analytics",
            {"user_id": "user-1", "action_type": "workflow_generated"},
            gte={"created_at": "2024-01-01"}
        )

        assert total == 42
        request = supabase.requests[0]
        assert request["query"]["limit"] == "0"
        assert request["query"]["action_type"] == "eq.workflow_generated"
        assert request["headers"]["Prefer"] == "count=exact"

    @pytest.mark.asyncio
    async def test_count_without_total(self, supabase_client):
        with pytest.raises(SupabaseError) as exc_info:
            await supabase_client.count("nocount")
        assert exc_info.value.status == 502

    @pytest.mark.asyncio
    async def test_insert_returns_row(self, supabase_client, supabase):
        row = await supabase_client.insert("system_logs", {"message": "hi"})

        assert row == {"id": "new", "message": "hi"}
        assert supabase.requests[0]["headers"]["Prefer"] == "return=representation"

    @pytest.mark.asyncio
    async def test_upsert(self, supabase_client, supabase):
        await supabase_client.upsert("profiles", {"id": "user-1"}, on_conflict="id")

        request = supabase.requests[0]
        assert request["query"] == {"on_conflict": "id"}
        assert "resolution=merge-duplicates" in request["headers"]["Prefer"]

    @pytest.mark.asyncio
    async def test_no_content(self, supabase_client):
        assert await supabase_client.delete("empty", {"id": "1"}) == []

    @pytest.mark.asyncio
    async def test_database_error(self, supabase_client):
        with pytest.raises(SupabaseError) as exc_info:
            await supabase_client.select("missing")

        assert not isinstance(exc_info.value, AuthError)
        assert exc_info.value.status == 404
        assert exc_info.value.message == "Database error: relation does not exist"

    @pytest.mark.asyncio
    async def test_not_configured(self):
        client = SupabaseClient("", "", "")

        with pytest.raises(SupabaseError) as exc_info:
            await client.select("profiles")

        assert exc_info.value.status == 503
        assert exc_info.value.message == "Supabase not configured"
