"""Structural checks on generated n8n workflows."""
from typing import Any, List


def is_node_ref(value: Any) -> bool:
    """True for values usable as a node name or id (non-empty text or number)."""
    return isinstance(value, (str, int)) and not isinstance(value, bool) and value != ""


def connection_targets(outputs: Any, errors: List[str], source: Any = None) -> List[Any]:
    """
    Collect the target node of every link under one connection source.

    n8n shape: ``{"main": [[{"node": "B", "type": "main", "index": 0}], ...]}``.
    Branches that are not lists are reported in ``errors`` and skipped.
    """
    targets: List[Any] = []
    if not isinstance(outputs, dict):
        errors.append(f"Connections of '{source}' must be an object")
        return targets
    for output_type, branches in outputs.items():
        if branches is None:
            continue
        if not isinstance(branches, list):
            errors.append(f"Connection output '{output_type}' of '{source}' must be a list of branches")
            continue
        for branch in branches:
            if branch is None:
                continue
            if not isinstance(branch, list):
                errors.append(f"Connection output '{output_type}' of '{source}' must be a list of branches")
                continue
            for target in branch:
                if isinstance(target, dict):
                    targets.append(target.get("node"))
    return targets


def validate_workflow(workflow: Any) -> List[str]:
    """
    Check that a workflow has nodes and that its connections point at them.

    Connections may reference nodes by name (n8n's own format) or by id.
    This does not validate against n8n's node schema or execution semantics.
    Malformed parts are reported, never raised.

    Args:
        workflow: Workflow object as produced by the generator

    Returns:
        list: Error messages; empty when the workflow is usable
    """
    if not isinstance(workflow, dict):
        return ["Workflow must be a JSON object"]

    nodes = workflow.get("nodes")
    if not isinstance(nodes, list) or not nodes:
        return ["Workflow must contain at least one node"]

    errors: List[str] = []
    known = set()
    for index, node in enumerate(nodes):
        if not isinstance(node, dict):
            errors.append(f"Node {index + 1} is not an object")
            continue
        for key in ("name", "id"):
            value = node.get(key)
            if value is None or value == "":
                continue
            if is_node_ref(value):
                known.add(value)
            else:
                errors.append(f"Node {index + 1} has an invalid {key}")

    connections = workflow.get("connections") or {}
    if not isinstance(connections, dict):
        errors.append("Workflow connections must be an object")
        return errors

    for source, outputs in connections.items():
        if source not in known:
            errors.append(f"Connection source '{source}' does not match any node")
        for target in connection_targets(outputs, errors, source):
            if not is_node_ref(target):
                errors.append(f"Connection from '{source}' has an invalid target")
            elif target not in known:
                errors.append(f"Connection from '{source}' targets unknown node '{target}'")

    return errors
