"""
Deployment of generated workflows to the user's n8n instance.

n8n's public API rejects read-only fields on create and ignores ``active``,
so the workflow is created first and activated with a second call.
"""
import copy
import logging
from typing import Optional, Dict, Any

from ..api_clients import N8nAPIError
from ..models import WorkflowDeployResponse
from ..supabase_client import SupabaseError
from .credentials import apply_credentials, credential_key, credentials_complete, extract_required_credentials
from .validation import validate_workflow

logger = logging.getLogger(__name__)

READ_ONLY_FIELDS = ("id", "active", "tags", "createdAt", "updatedAt", "versionId", "description")


class DeploymentError(Exception):
    """Raised when a workflow is not ready to be deployed."""


def prepare_for_deployment(workflow: Dict[str, Any]) -> Dict[str, Any]:
    """Strip fields n8n will not accept and enable execution progress saving."""
    prepared = {k: v for k, v in copy.deepcopy(workflow).items() if k not in READ_ONLY_FIELDS}
    prepared["settings"] = {
        **(prepared.get("settings") or {}),
        "saveExecutionProgress": True,
        "saveManualExecutions": True,
    }
    prepared.setdefault("connections", {})
    return prepared


class WorkflowDeployer:
    def __init__(self, connections, analytics=None):
        self.connections = connections
        self.analytics = analytics

    async def deploy(
        self,
        user_id: str,
        workflow: Dict[str, Any],
        credential_values: Optional[Dict[str, str]] = None,
        activate: bool = True,
        connection_id: Optional[str] = None
    ) -> WorkflowDeployResponse:
        """
        Deploy a workflow through the user's active (or given) n8n connection.

        Raises:
            DeploymentError: Validation failed or required credentials are missing
            ConnectionNotFoundError: No usable connection
            N8nAPIError: The instance rejected the workflow on create

        A failed activation after a successful create still returns
        ``success=True`` with ``active=False`` and the reason in ``message``.
        """
        errors = validate_workflow(workflow)
        if errors:
            raise DeploymentError("; ".join(errors))

        requirements = extract_required_credentials(workflow)
        if not credentials_complete(requirements, credential_values):
            values = credential_values or {}
            missing = [
                r.node_name for r in requirements
                if r.required and not (values.get(credential_key(r.node_name, r.credential_type)) or "").strip()
            ]
            raise DeploymentError(f"Missing required credentials for: {', '.join(missing)}")

        if connection_id:
            connection = await self.connections.get(user_id, connection_id)
        else:
            connection = await self.connections.get_active(user_id)
        client = self.connections.client_for(connection)

        payload = prepare_for_deployment(apply_credentials(workflow, credential_values))
        logger.info(f"🚀 Deploying workflow '{payload.get('name')}' to {connection['base_url']}")

        try:
            created = await client.create_workflow(payload)
        except N8nAPIError as e:
            logger.error(f"❌ Deployment to {connection['base_url']} failed: {e.status} {e.message}")
            await self._record_outcome(connection, ok=False)
            raise

        # created on n8n: later failures go into the response
        workflow_id = created.get("id") if isinstance(created, dict) else None
        workflow_id = str(workflow_id) if workflow_id is not None else None
        active = False
        message = "Workflow deployed"
        if activate and workflow_id:
            try:
                await client.activate_workflow(workflow_id)
                active = True
                message = "Workflow deployed and activated"
            except N8nAPIError as e:
                logger.warning(f"⚠️ Workflow {workflow_id} created but activation failed: {e.status} {e.message}")
                message = f"Workflow created but activation failed: {e.message}"

        await self._record_outcome(connection, ok=True, deployed=True)

        if self.analytics is not None:
            await self.analytics.track_event(user_id, "workflow_deployed", "workflow", workflow_id, {
                "connection_id": connection["id"],
                "name": payload.get("name"),
                "active": active,
            })
            await self.analytics.track_activity(
                user_id,
                "workflow_deployed",
                f"Deployed {payload.get('name')}",
                f"Deployed to {connection.get('instance_name') or connection['base_url']}",
                {"workflow_id": workflow_id},
            )

        logger.info(f"✅ Workflow deployed: {workflow_id} (active={active})")
        return WorkflowDeployResponse(
            success=True,
            workflow_id=workflow_id,
            active=active,
            message=message,
            n8n_response=created if isinstance(created, dict) else None,
        )

    async def _record_outcome(self, connection: Dict[str, Any], ok: bool, deployed: bool = False) -> None:
        """Update connection stats; failures are logged and never fail the deployment."""
        try:
            if deployed:
                await self.connections.increment_workflow_count(connection)
            await self.connections.touch(connection["id"], ok=ok)
        except SupabaseError as e:
            logger.error(f"Failed to update stats for connection {connection['id']}: {e.message}")
