"""
Credential requirements for generated workflows.

Requirements come from a static table keyed by n8n node type; n8n itself is
never asked which credentials a node needs.
"""
import copy
import uuid
from typing import Any, Dict, List, Optional

from ..models import CredentialRequirement

CREDENTIAL_MAP: Dict[str, Dict[str, Any]] = {
    "n8n-nodes-base.googleSheets": {
        "credential_type": "googleSheetsOAuth2Api",
        "required": True,
        "description": "Google Sheets OAuth2 credentials",
        "placeholder": "Enter your Google OAuth2 credentials",
    },
    "n8n-nodes-base.youtube": {
        "credential_type": "youTubeOAuth2Api",
        "required": True,
        "description": "YouTube Data API OAuth2 credentials",
        "placeholder": "Enter your YouTube OAuth2 credentials",
    },
    "n8n-nodes-base.telegram": {
        "credential_type": "telegramApi",
        "required": True,
        "description": "Telegram Bot Token",
        "placeholder": "Enter your Telegram Bot Token",
    },
    "n8n-nodes-base.slack": {
        "credential_type": "slackOAuth2Api",
        "required": True,
        "description": "Slack OAuth2 credentials",
        "placeholder": "Enter your Slack OAuth2 credentials",
    },
    "n8n-nodes-base.gmail": {
        "credential_type": "gmailOAuth2",
        "required": True,
        "description": "Gmail OAuth2 credentials",
        "placeholder": "Enter your Gmail OAuth2 credentials",
    },
    "n8n-nodes-base.httpRequest": {
        "credential_type": "httpBasicAuth",
        "required": False,
        "description": "HTTP Basic Authentication (if required)",
        "placeholder": "Enter username:password if needed",
    },
}


def credential_entry(node_type: Any) -> Optional[Dict[str, Any]]:
    """CREDENTIAL_MAP entry for a node type; None for unknown or non-text types."""
    if not isinstance(node_type, str):
        return None
    return CREDENTIAL_MAP.get(node_type)


def credential_key(node_name: str, credential_type: str) -> str:
    """Key under which a credential value is submitted, e.g. ``Send Email:gmailOAuth2``."""
    return f"{node_name}:{credential_type}"


def extract_required_credentials(workflow: Optional[Dict[str, Any]]) -> List[CredentialRequirement]:
    """List one credential requirement per node whose type is in CREDENTIAL_MAP."""
    requirements: List[CredentialRequirement] = []
    for node in (workflow or {}).get("nodes") or []:
        if not isinstance(node, dict):
            continue
        entry = credential_entry(node.get("type"))
        if entry:
            name = node.get("name")
            requirements.append(CredentialRequirement(
                node_type=node["type"],
                node_name=name if isinstance(name, str) else "",
                **entry
            ))
    return requirements


def credentials_complete(
    requirements: List[CredentialRequirement],
    values: Optional[Dict[str, str]] = None
) -> bool:
    """
    True only when every required credential has a non-empty value.

    Values are looked up by ``credential_key(node_name, credential_type)``.
    Optional credentials never block completion.
    """
    values = values or {}
    for requirement in requirements:
        if not requirement.required:
            continue
        value = values.get(credential_key(requirement.node_name, requirement.credential_type))
        if not value or not value.strip():
            return False
    return True


def apply_credentials(workflow: Dict[str, Any], values: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """
    Attach credential references to the nodes that received a value.

    Returns:
        dict: A copy of the workflow with ``credentials`` set on matching nodes
    """
    values = values or {}
    updated = copy.deepcopy(workflow)
    requirements = extract_required_credentials(updated)

    by_node: Dict[str, List[CredentialRequirement]] = {}
    for requirement in requirements:
        by_node.setdefault(requirement.node_name, []).append(requirement)

    for node in updated.get("nodes") or []:
        if not isinstance(node, dict) or not isinstance(node.get("name"), str):
            continue
        node_requirements = by_node.get(node["name"])
        if not node_requirements:
            continue
        credentials = dict(node.get("credentials") or {})
        for requirement in node_requirements:
            value = values.get(credential_key(requirement.node_name, requirement.credential_type))
            if value and value.strip():
                credentials[requirement.credential_type] = {
                    "id": f"cred_{uuid.uuid4().hex}",
                    "name": f"{requirement.credential_type}_{node.get('name', '')}",
                }
        node["credentials"] = credentials

    return updated
