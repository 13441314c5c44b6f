"""
Portable form of a workflow: a JSON-safe nested dict of the hierarchy.

Groups carry their own ``nodes`` / ``edges``. This is the persistence and
import/export contract; the renderer's canvas form lives in the server
serializers.

    PortableNode keys: id, type, position, width?, height?, label?, params,
                       portLabels?, collapsed?, nodes? / edges? (groups)
    PortableEdge keys: id, from, to, fromProperty?, toProperty?, condition?,
                       weight?, mode?
    PortableWorkflow keys: id, name, nodes, edges
"""
from typing import Any, Dict, Optional

from .Errors import CrossScopeEdge, StructuralError
from .GraphPrimitives import Edge
from .Node import Workflow, WorkflowNode
from .Types import EdgeMode

_EDGE_OPTIONAL = (
    ("fromProperty", "from_property"),
    ("toProperty", "to_property"),
    ("condition", "condition"),
    ("weight", "weight"),
    ("mode", "mode"),
)


# --- Out ---

def serialize_edge(edge: Edge) -> Dict[str, Any]:
    result: Dict[str, Any] = {
        "id": edge.id,
        "from": edge.from_node_id,
        "to": edge.to_node_id,
    }
    for key, attr in _EDGE_OPTIONAL:
        value = getattr(edge, attr)
        if value is not None:
            result[key] = value
    return result


def serialize_node(node: WorkflowNode) -> Dict[str, Any]:
    result: Dict[str, Any] = {
        "id": node.id,
        "type": node.type,
        "position": node.position.to_dict(),
        "params": dict(node.params),
    }
    if node.width is not None:
        result["width"] = node.width
    if node.height is not None:
        result["height"] = node.height
    if node.label:
        result["label"] = node.label
    if node.port_labels:
        result["portLabels"] = dict(node.port_labels)
    if node.collapsed:
        result["collapsed"] = True
    if node.is_group:
        result["nodes"] = [serialize_node(child) for child in node.nodes]
        result["edges"] = [serialize_edge(e) for e in node.edges]
    return result


def serialize_workflow(workflow: Workflow) -> Dict[str, Any]:
    return {
        "id": workflow.id,
        "name": workflow.name,
        "nodes": [serialize_node(n) for n in workflow.nodes],
        "edges": [serialize_edge(e) for e in workflow.edges],
    }


# --- In ---

def _edge_mode(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    try:
        return EdgeMode(value).value
    except ValueError as e:
        raise StructuralError(f"Unknown edge mode {value!r}") from e


def deserialize_edge(data: Dict[str, Any]) -> Edge:
    try:
        from_node_id = data["from"]
        to_node_id = data["to"]
    except KeyError as e:
        raise StructuralError(f"Edge is missing its {e.args[0]!r} endpoint: {data!r}") from e
    weight = data.get("weight")
    return Edge.create(
        from_node_id,
        to_node_id,
        data.get("fromProperty"),
        data.get("toProperty"),
        id=data.get("id"),
        condition=data.get("condition"),
        weight=float(weight) if weight is not None else None,
        mode=_edge_mode(data.get("mode")),
    )


def deserialize_node(data: Dict[str, Any]) -> WorkflowNode:
    type_name = data.get("type")
    if not type_name:
        raise StructuralError(f"Node '{data.get('id')}' has no type")
    node_class = WorkflowNode.resolve_type_constructor(type_name)

    kwargs: Dict[str, Any] = {
        "position": data.get("position"),
        "width": data.get("width"),
        "height": data.get("height"),
        "label": data.get("label"),
        "params": dict(data.get("params") or {}),
        "port_labels": dict(data.get("portLabels") or {}),
        "collapsed": bool(data.get("collapsed", False)),
    }
    if node_class.is_group:
        kwargs["nodes"] = [deserialize_node(child) for child in data.get("nodes", [])]
        kwargs["edges"] = [deserialize_edge(e) for e in data.get("edges", [])]
    return node_class(data.get("id"), **kwargs)


def _check_scopes(workflow: Workflow) -> None:
    # Edges whose endpoints both exist but sit in different scopes cannot be
    # repaired; edges to missing nodes are left for flatten pruning.
    for _, scope in workflow.iter_scopes():
        for edge in scope.edges:
            owners = (workflow.arena.owner_of(edge.from_node_id),
                      workflow.arena.owner_of(edge.to_node_id))
            if None in owners:
                continue
            if owners[0] is not scope or owners[1] is not scope:
                raise CrossScopeEdge(edge.id, edge.from_node_id, edge.to_node_id)


def deserialize_workflow(data: Dict[str, Any]) -> Workflow:
    """
    Build a Workflow from its portable form.

    Unknown node types raise UnknownNodeType. The result has not been
    validated yet: callers pass it through flatten pruning before use.
    """
    workflow = Workflow(
        nodes=[deserialize_node(n) for n in data.get("nodes", [])],
        edges=[deserialize_edge(e) for e in data.get("edges", [])],
        name=data.get("name") or "Untitled Workflow",
        id=data.get("id"),
    )
    _check_scopes(workflow)
    return workflow
