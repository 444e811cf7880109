"""
Tests pour le client n8n (api_clients.N8nClient)
Construction des URL, en-têtes, tentatives et messages d'erreur
"""

import pytest

from workflowai.api_clients import N8nAPIError, N8nClient, n8n_error_message

from conftest import N8N_API_KEY


def make_client(base_url, api_key=N8N_API_KEY, **kwargs):
    kwargs.setdefault("timeout", 5)
    kwargs.setdefault("max_retries", 2)
    kwargs.setdefault("backoff", 0)
    return N8nClient(base_url, api_key, **kwargs)


class TestUrlAndHeaders:
    """Tests de construction des requêtes"""

    @pytest.mark.n8n
    @pytest.mark.parametrize("endpoint,expected", [
        ("/workflows", "https://n8n.example.com/api/v1/workflows"),
        ("workflows", "https://n8n.example.com/api/v1/workflows"),
        ("/api/v1/executions", "https://n8n.example.com/api/v1/executions"),
        ("/healthz", "https://n8n.example.com/healthz"),
    ])
    def test_build_url(self, endpoint, expected):
        """Test préfixe /api/v1 sauf pour /api/ et /healthz"""
        client = make_client("https://n8n.example.com/")
        assert client.build_url(endpoint) == expected

    @pytest.mark.n8n
    def test_api_key_wins_over_caller_headers(self):
        """Test la clé de l'instance ne peut pas être écrasée"""
        client = make_client("https://n8n.example.com")
        headers = client._headers({"X-N8N-API-KEY": "forged", "X-Trace": "abc"})

        assert headers["X-N8N-API-KEY"] == N8N_API_KEY
        assert headers["X-Trace"] == "abc"
        assert headers["Content-Type"] == "application/json"
        assert headers["Accept"] == "application/json"

    @pytest.mark.n8n
    @pytest.mark.parametrize("status,message", [
        (400, "Invalid request sent to n8n"),
        (401, "Invalid n8n API key"),
        (403, "Access to this n8n resource is forbidden"),
        (404, "n8n endpoint not found"),
        (429, "n8n rate limit exceeded, please retry later"),
        (500, "n8n server error"),
        (503, "n8n server error"),
    ])
    def test_error_messages(self, status, message):
        """Test messages lisibles par code HTTP"""
        assert n8n_error_message(status) == message


class TestRequests:
    """Tests des appels vers un faux n8n"""

    @pytest.mark.asyncio
    @pytest.mark.n8n
    async def test_list_workflows_sends_api_key(self, n8n):
        """Test la clé API est envoyée dans X-N8N-API-KEY"""
        client = make_client(n8n.url)
        workflows = await client.list_workflows()

        assert workflows == [{"id": "existing-1", "name": "Existing"}]
        assert n8n.requests[0]["headers"]["X-N8N-API-KEY"] == N8N_API_KEY
        assert n8n.requests[0]["path"] == "/api/v1/workflows"

    @pytest.mark.asyncio
    @pytest.mark.n8n
    async def test_invalid_key(self, n8n):
        """Test 401 traduit en message lisible, sans nouvelle tentative"""
        client = make_client(n8n.url, api_key="wrong")

        with pytest.raises(N8nAPIError) as exc_info:
            await client.request("GET", "/workflows")

        assert exc_info.value.status == 401
        assert exc_info.value.message == "Invalid n8n API key"
        assert len(n8n.requests) == 1

    @pytest.mark.asyncio
    @pytest.mark.n8n
    async def test_retry_then_success(self, n8n):
        """Test 503 puis succès au troisième essai"""
        n8n.flaky_failures = 2
        client = make_client(n8n.url)

        status, body = await client.request("GET", "/flaky")

        assert status == 200
        assert body == {"ok": True}
        assert len(n8n.requests) == 3

    @pytest.mark.asyncio
    @pytest.mark.n8n
    async def test_retries_at_most_twice(self, n8n):
        """Test au plus deux nouvelles tentatives après le premier essai"""
        n8n.flaky_failures = 10
        client = make_client(n8n.url)

        with pytest.raises(N8nAPIError) as exc_info:
            await client.request("GET", "/flaky")

        assert exc_info.value.status == 503
        assert exc_info.value.message == "n8n server error"
        assert len(n8n.requests) == 3

    @pytest.mark.asyncio
    @pytest.mark.n8n
    async def test_bad_gateway_is_retried(self, n8n):
        """Test 502 retenté puis remonté"""
        client = make_client(n8n.url, max_retries=1)

        with pytest.raises(N8nAPIError) as exc_info:
            await client.request("GET", "/broken")

        assert exc_info.value.status == 502
        assert len(n8n.requests) == 2

    @pytest.mark.asyncio
    @pytest.mark.n8n
    async def test_rate_limit_not_retried(self, n8n):
        """Test 429 remonté immédiatement"""
        client = make_client(n8n.url)

        with pytest.raises(N8nAPIError) as exc_info:
            await client.request("GET", "/rate-limited")

        assert exc_info.value.status == 429
        assert exc_info.value.message == "n8n rate limit exceeded, please retry later"
        assert exc_info.value.body == {"message": "slow down"}
        assert len(n8n.requests) == 1

    @pytest.mark.asyncio
    @pytest.mark.n8n
    async def test_timeout(self, n8n):
        """Test délai dépassé traduit en 504"""
        client = make_client(n8n.url, timeout=0.2, max_retries=1)

        with pytest.raises(N8nAPIError) as exc_info:
            await client.request("GET", "/slow")

        assert exc_info.value.status == 504
        assert exc_info.value.message == "Request to n8n timed out"
        assert len(n8n.requests) == 2

    @pytest.mark.asyncio
    @pytest.mark.n8n
    async def test_unreachable_instance(self):
        """Test instance injoignable traduite en 502"""
        client = make_client("http://127.0.0.1:1", max_retries=0)

        with pytest.raises(N8nAPIError) as exc_info:
            await client.request("GET", "/workflows")

        assert exc_info.value.status == 502
        assert exc_info.value.message == "Could not reach the n8n instance"

    @pytest.mark.asyncio
    @pytest.mark.n8n
    async def test_non_json_body(self, n8n):
        """Test réponse texte enveloppée dans {message}"""
        client = make_client(n8n.url)
        status, body = await client.request("GET", "/not-json")

        assert status == 200
        assert body == {"message": "plain text answer"}

    @pytest.mark.asyncio
    @pytest.mark.n8n
    async def test_test_connection_unknown_version(self, n8n):
        """Test version "Unknown" quand /healthz ne la donne pas"""
        result = await make_client(n8n.url).test_connection()
        assert result == {"workflowCount": 1, "version": "Unknown"}

    @pytest.mark.asyncio
    @pytest.mark.n8n
    async def test_test_connection_reads_version(self, n8n):
        """Test version lue depuis /healthz"""
        n8n.version = "1.15.2"
        result = await make_client(n8n.url).test_connection()
        assert result["version"] == "1.15.2"

    @pytest.mark.asyncio
    @pytest.mark.n8n
    async def test_health_check(self, n8n):
        """Test health_check ne lève jamais"""
        assert await make_client(n8n.url).health_check() == {"status": "ok"}

        unreachable = make_client("http://127.0.0.1:1", max_retries=0)
        result = await unreachable.health_check()
        assert result["status"] == "error"
        assert result["message"] == "Could not reach the n8n instance"
