"""
Workflow serializer: the canvas form.

The canvas form is the flat projection plus resolved port metadata, which is
what the diagram renderer consumes. The portable (persistence) form lives in
flowsync.core.Portable.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Set, Tuple

from flowsync.core.Flattener import FlatGraph, FlatNode
from flowsync.core.GraphPrimitives import Port
from flowsync.core.PortResolver import resolve_metadata

# ── Canvas form ───────────────────────────────────────────────────────────────

def _serialize_port(port: Port, connected: bool) -> Dict[str, Any]:
    result = {
        "property": port.property,
        "label": port.label,
        "valueType": port.type.value.upper(),
        "isMulti": port.is_multi,
        "connected": connected,
    }
    if port.node_id is not None:
        result["nodeId"] = port.node_id
    return result


def serialize_flat_node(flat: FlatNode, connected: Set[Tuple[str, Optional[str]]]) -> Dict[str, Any]:
    result = flat.to_dict()
    if flat.data is None:
        return result
    meta = resolve_metadata(flat.data)
    result["data"]["title"] = meta.label
    result["data"]["inputs"] = [
        _serialize_port(p, (flat.id, p.property) in connected) for p in meta.inputs
    ]
    result["data"]["outputs"] = [
        _serialize_port(p, False) for p in meta.outputs
    ]
    return result


def serialize_canvas(flat: FlatGraph) -> Dict[str, Any]:
    """
    Serialize the flat projection for the renderer.

    :param flat: the engine's current FlatGraph.
    """
    connected: Set[Tuple[str, Optional[str]]] = {(e.target, e.target_handle) for e in flat.edges}
    nodes: List[Dict[str, Any]] = [serialize_flat_node(n, connected) for n in flat.nodes]
    return {
        "nodes": nodes,
        "edges": [e.to_dict() for e in flat.edges],
    }
