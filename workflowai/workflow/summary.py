"""Human-readable summary of a generated workflow."""
from typing import Any, Dict

from ..models import WorkflowSummary

SERVICE_NAMES = {
    "n8n-nodes-base.googleSheets": "Google Sheets",
    "n8n-nodes-base.youtube": "YouTube",
    "n8n-nodes-base.telegram": "Telegram",
    "n8n-nodes-base.slack": "Slack",
    "n8n-nodes-base.gmail": "Gmail",
    "n8n-nodes-base.webhook": "Webhook",
    "n8n-nodes-base.httpRequest": "HTTP Request",
    "n8n-nodes-base.function": "Function",
    "n8n-nodes-base.cron": "Cron Trigger",
}


def service_name(node_type: Any) -> str:
    """Display name for a node type, e.g. ``n8n-nodes-base.slack`` -> ``Slack``."""
    if not isinstance(node_type, str):
        return "Unknown"
    return SERVICE_NAMES.get(node_type) or node_type.replace("n8n-nodes-base.", "")


def summarize_workflow(workflow: Dict[str, Any]) -> WorkflowSummary:
    nodes = workflow.get("nodes")
    nodes = [n for n in nodes if isinstance(n, dict)] if isinstance(nodes, list) else []
    connections = workflow.get("connections")
    name = workflow.get("name")
    return WorkflowSummary(
        name=name if isinstance(name, str) and name.strip() else "AI Generated Workflow",
        node_count=len(nodes),
        connection_count=len(connections) if isinstance(connections, dict) else 0,
        services=[service_name(node.get("type")) for node in nodes],
    )
