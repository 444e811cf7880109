"""
Tests pour les endpoints proxy n8n du backend
/api/n8n/proxy (clé fournie par l'appelant) et /api/n8n/active/{path} (connexion active)
"""

import pytest

from conftest import N8N_API_KEY, save_connection


class TestGenericProxy:
    """Tests du proxy générique"""

    @pytest.mark.asyncio
    @pytest.mark.security
    async def test_requires_authentication(self, client):
        """Test 401 sans en-tête Authorization"""
        response = await client.post("/api/n8n/proxy", json={
            "baseUrl": "https://n8n.example.com", "apiKey": "k", "endpoint": "/workflows"
        })
        assert response.status_code == 401
        assert response.json()["detail"] == "No authorization header"

    @pytest.mark.asyncio
    @pytest.mark.security
    async def test_invalid_token(self, client):
        response = await client.post(
            "/api/n8n/proxy",
            headers={"Authorization": "Bearer nope"},
            json={"baseUrl": "https://n8n.example.com", "apiKey": "k", "endpoint": "/workflows"}
        )
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid authorization"

    @pytest.mark.asyncio
    @pytest.mark.n8n
    @pytest.mark.parametrize("payload", [
        {"apiKey": "k", "endpoint": "/workflows"},
        {"baseUrl": "https://n8n.example.com", "endpoint": "/workflows"},
        {"baseUrl": "https://n8n.example.com", "apiKey": "k"},
        {"baseUrl": "   ", "apiKey": "k", "endpoint": "/workflows"},
        {"baseUrl": "https://n8n.example.com", "apiKey": "", "endpoint": "/workflows"},
        {},
    ])
    async def test_missing_fields_return_400(self, client, auth_headers, payload):
        """Test 400 si baseUrl, apiKey ou endpoint manque"""
        response = await client.post("/api/n8n/proxy", headers=auth_headers, json=payload)

        assert response.status_code == 400
        assert response.json()["detail"].startswith("Missing required fields")

    @pytest.mark.asyncio
    @pytest.mark.n8n
    async def test_forwards_request(self, client, auth_headers, n8n):
        """Test requête transmise avec la clé de l'instance"""
        response = await client.post("/api/n8n/proxy", headers=auth_headers, json={
            "baseUrl": n8n.url,
            "apiKey": N8N_API_KEY,
            "endpoint": "/workflows",
            "method": "GET",
        })

        assert response.status_code == 200
        assert response.json() == {"data": [{"id": "existing-1", "name": "Existing"}]}
        assert n8n.requests[0]["headers"]["X-N8N-API-KEY"] == N8N_API_KEY

    @pytest.mark.asyncio
    @pytest.mark.n8n
    async def test_forwards_body(self, client, auth_headers, n8n):
        response = await client.post("/api/n8n/proxy", headers=auth_headers, json={
            "baseUrl": n8n.url,
            "apiKey": N8N_API_KEY,
            "endpoint": "/workflows",
            "method": "post",
            "data": {"name": "From proxy", "nodes": [], "connections": {}},
        })

        assert response.status_code == 200
        assert response.json()["id"] == "wf-1"
        assert n8n.created[0]["name"] == "From proxy"

    @pytest.mark.asyncio
    @pytest.mark.n8n
    async def test_maps_n8n_errors(self, client, auth_headers, n8n):
        """Test erreur n8n renvoyée avec son statut et un message lisible"""
        response = await client.post("/api/n8n/proxy", headers=auth_headers, json={
            "baseUrl": n8n.url,
            "apiKey": "wrong-key",
            "endpoint": "/workflows",
        })

        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "Invalid n8n API key"

    @pytest.mark.asyncio
    @pytest.mark.n8n
    async def test_retries_server_errors(self, client, auth_headers, n8n):
        """Test 502 après deux nouvelles tentatives"""
        response = await client.post("/api/n8n/proxy", headers=auth_headers, json={
            "baseUrl": n8n.url,
            "apiKey": N8N_API_KEY,
            "endpoint": "/broken",
        })

        assert response.status_code == 502
        assert response.json()["error"] == "n8n server error"
        assert len(n8n.requests) == 3


class TestActiveConnectionProxy:
    """Tests du proxy via la connexion active"""

    @pytest.mark.asyncio
    @pytest.mark.n8n
    async def test_no_active_connection(self, client, auth_headers):
        response = await client.get("/api/n8n/active/workflows", headers=auth_headers)

        assert response.status_code == 404
        assert "No active n8n connection found" in response.json()["detail"]

    @pytest.mark.asyncio
    @pytest.mark.n8n
    async def test_forwards_and_records_success(self, client, auth_headers, n8n, db):
        """Test last_connected et connection_status mis à jour"""
        await save_connection(client, auth_headers, n8n.url)
        db.rows("n8n_connections")[0]["connection_status"] = "error"

        response = await client.get("/api/n8n/active/workflows?limit=5", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["data"][0]["id"] == "existing-1"
        assert n8n.requests[-1]["query"] == {"limit": "5"}
        assert db.rows("n8n_connections")[0]["connection_status"] == "connected"

    @pytest.mark.asyncio
    @pytest.mark.n8n
    async def test_records_failure(self, client, auth_headers, n8n, db):
        await save_connection(client, auth_headers, n8n.url, api_key="revoked-key")

        response = await client.get("/api/n8n/active/workflows", headers=auth_headers)

        assert response.status_code == 401
        assert response.json()["error"] == "Invalid n8n API key"
        assert db.rows("n8n_connections")[0]["connection_status"] == "error"

    @pytest.mark.asyncio
    @pytest.mark.n8n
    async def test_no_content_response(self, client, auth_headers, n8n):
        await save_connection(client, auth_headers, n8n.url)

        response = await client.delete("/api/n8n/active/workflows/wf-9", headers=auth_headers)

        assert response.status_code == 204
        assert n8n.requests[-1]["method"] == "DELETE"
        assert n8n.requests[-1]["path"] == "/api/v1/workflows/wf-9"
