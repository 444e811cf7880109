"""
n8n connection manager.

Connections live in the ``n8n_connections`` table. A user has at most one
active connection: saving or activating one deactivates the others first.
API keys are stored as submitted and never returned to clients.
"""
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List, Callable

from ..api_clients import N8nClient
from ..models import ConnectionRequest, ConnectionResponse, ConnectionStatus

logger = logging.getLogger(__name__)

TABLE = "n8n_connections"
HIDDEN_API_KEY = "***hidden***"


class ConnectionNotFoundError(Exception):
    """Raised when a connection does not exist or belongs to another user."""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def sanitize_connection(row: Dict[str, Any]) -> ConnectionResponse:
    """Convert a table row to a client-safe response, hiding the API key."""
    data = dict(row)
    data["api_key"] = HIDDEN_API_KEY if data.get("api_key") else None
    return ConnectionResponse(**data)


class ConnectionService:
    def __init__(self, db, client_factory: Callable[..., N8nClient] = N8nClient):
        self.db = db
        self.client_factory = client_factory

    def client_for(self, connection: Dict[str, Any]) -> N8nClient:
        return self.client_factory(connection["base_url"], connection["api_key"])

    async def test(self, request: ConnectionRequest) -> Dict[str, Any]:
        """
        Try the submitted credentials against the instance.

        Returns:
            dict: workflowCount, version, instanceName and baseUrl

        Raises:
            N8nAPIError: The instance rejected the key or could not be reached
        """
        client = self.client_factory(request.base_url, request.api_key)
        result = await client.test_connection()
        logger.info(f"✅ n8n connection test passed for {request.base_url} ({result['workflowCount']} workflows)")
        return {
            **result,
            "instanceName": request.instance_name,
            "baseUrl": request.base_url,
        }

    async def save(self, user_id: str, request: ConnectionRequest) -> ConnectionResponse:
        """Deactivate the user's connections, then insert the new one as active."""
        await self.db.update(TABLE, {"is_active": False}, {"user_id": user_id})
        row = await self.db.insert(TABLE, {
            "user_id": user_id,
            "instance_name": request.instance_name,
            "base_url": request.base_url,
            "api_key": request.api_key,
            "is_active": True,
            "last_connected": _now(),
            "connection_status": ConnectionStatus.CONNECTED.value,
            "version": request.version,
            "workflow_count": request.workflow_count or 0,
            "execution_count": 0,
        })
        logger.info(f"💾 Saved n8n connection {row.get('id')} for user {user_id}")
        return sanitize_connection(row)

    async def list(self, user_id: str) -> List[ConnectionResponse]:
        rows = await self.db.select(TABLE, {"user_id": user_id}, order="created_at")
        return [sanitize_connection(row) for row in rows]

    async def get(self, user_id: str, connection_id: str) -> Dict[str, Any]:
        """Return the raw row, API key included, for server-side use only."""
        row = await self.db.select_one(TABLE, {"id": connection_id, "user_id": user_id})
        if not row:
            raise ConnectionNotFoundError(f"Connection {connection_id} not found")
        return row

    async def get_active(self, user_id: str) -> Dict[str, Any]:
        row = await self.db.select_one(TABLE, {"user_id": user_id, "is_active": True})
        if not row:
            raise ConnectionNotFoundError(
                "No active n8n connection found. Please set up your n8n connection first."
            )
        return row

    async def update(self, user_id: str, connection_id: str, request: ConnectionRequest) -> ConnectionResponse:
        await self.get(user_id, connection_id)
        rows = await self.db.update(TABLE, {
            "instance_name": request.instance_name,
            "base_url": request.base_url,
            "api_key": request.api_key,
        }, {"id": connection_id, "user_id": user_id})
        return sanitize_connection(rows[0])

    async def set_active(self, user_id: str, connection_id: str) -> ConnectionResponse:
        await self.get(user_id, connection_id)
        await self.db.update(TABLE, {"is_active": False}, {"user_id": user_id})
        rows = await self.db.update(TABLE, {"is_active": True}, {"id": connection_id, "user_id": user_id})
        return sanitize_connection(rows[0])

    async def delete(self, user_id: str, connection_id: str) -> None:
        deleted = await self.db.delete(TABLE, {"id": connection_id, "user_id": user_id})
        if not deleted:
            raise ConnectionNotFoundError(f"Connection {connection_id} not found")
        logger.info(f"🗑️ Deleted n8n connection {connection_id}")

    async def touch(self, connection_id: str, ok: bool) -> None:
        """Record the outcome of the latest proxied call."""
        await self.db.update(TABLE, {
            "last_connected": _now(),
            "connection_status": (ConnectionStatus.CONNECTED if ok else ConnectionStatus.ERROR).value,
        }, {"id": connection_id})

    async def increment_workflow_count(self, connection: Dict[str, Any]) -> None:
        """
        Bump the deploy counter from the stored value, not the caller's copy.

        PostgREST offers no atomic increment without a database function, so two
        deploys landing between this read and the write can still lose one.
        """
        current = await self.db.select_one(TABLE, {"id": connection["id"], "user_id": connection["user_id"]})
        await self.db.update(TABLE, {
            "workflow_count": ((current or connection).get("workflow_count") or 0) + 1,
            "last_connected": _now(),
        }, {"id": connection["id"], "user_id": connection["user_id"]})
