"""
Workflow extraction from model output.

The generative AI endpoint answers with free text. A workflow is only accepted
when it sits inside a fenced code block and carries at least one node.
"""
import copy
import json
import logging
import re
import uuid
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)

# ```json ... ``` or bare ``` ... ``` blocks
FENCE_PATTERN = re.compile(r"```[ \t]*([A-Za-z0-9_-]*)[ \t]*\r?\n?(.*?)```", re.DOTALL)

DEFAULT_WORKFLOW_NAME = "AI Generated Workflow"
NODE_SPACING_X = 220
NODE_ORIGIN = (250, 300)


def _as_workflow(candidate: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(candidate, dict):
        return None
    if isinstance(candidate.get("workflow"), dict):
        candidate = candidate["workflow"]
    nodes = candidate.get("nodes")
    if isinstance(nodes, list) and nodes:
        return candidate
    return None


def extract_workflow_json(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Extract an n8n workflow object from fenced JSON in a model response.

    Fenced blocks are scanned in order; the first one that parses as a JSON
    object with a non-empty ``nodes`` list (at top level or under a
    ``workflow`` key) wins.

    Args:
        text: Raw text returned by the model

    Returns:
        dict: The workflow object, or None when no fenced block qualifies

    Examples:
        >>> extract_workflow_json('```json\\n{"nodes": [{"name": "Start"}]}\\n```')
        {'nodes': [{'name': 'Start'}]}

        >>> extract_workflow_json('{"nodes": [{"name": "Start"}]}') is None
        True
    """
    if not text:
        return None

    for match in FENCE_PATTERN.finditer(text):
        language, body = match.group(1).lower(), match.group(2).strip()
        if language and language not in ("json", "javascript", "js"):
            continue
        try:
            parsed = json.loads(body)
        except ValueError:
            continue
        workflow = _as_workflow(parsed)
        if workflow is not None:
            return workflow

    logger.info("No fenced workflow JSON found in model response")
    return None


def extract_explanation(text: Optional[str]) -> str:
    """
    Return the human-readable part of a model response.

    Uses the ``explanation`` key of the first fenced JSON object when present,
    otherwise the text with every fenced block removed.
    """
    if not text:
        return ""

    for match in FENCE_PATTERN.finditer(text):
        try:
            parsed = json.loads(match.group(2).strip())
        except ValueError:
            continue
        if isinstance(parsed, dict) and isinstance(parsed.get("explanation"), str):
            return parsed["explanation"].strip()

    return FENCE_PATTERN.sub("", text).strip()


def apply_workflow_defaults(workflow: Dict[str, Any]) -> Dict[str, Any]:
    """
    Patch the fields n8n expects onto a generated workflow.

    Adds a name, empty connections, ``settings.executionOrder = "v1"`` and,
    per node, an id, a type version, parameters and a grid position when
    they are missing. The input is left untouched.
    """
    patched = copy.deepcopy(workflow)
    patched["name"] = patched.get("name") or DEFAULT_WORKFLOW_NAME
    if not isinstance(patched.get("connections"), dict):
        patched["connections"] = {}
    settings = patched.get("settings") if isinstance(patched.get("settings"), dict) else {}
    settings.setdefault("executionOrder", "v1")
    patched["settings"] = settings

    nodes = []
    for index, node in enumerate(patched.get("nodes") or []):
        if not isinstance(node, dict):
            continue
        node.setdefault("id", str(uuid.uuid4()))
        node.setdefault("name", f"Node {index + 1}")
        node.setdefault("typeVersion", 1)
        node.setdefault("parameters", {})
        if not node.get("position"):
            node["position"] = [NODE_ORIGIN[0] + index * NODE_SPACING_X, NODE_ORIGIN[1]]
        nodes.append(node)
    patched["nodes"] = nodes

    return patched
