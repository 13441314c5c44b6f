from typing import Dict, List, Optional
import copy
import logging

from .Types import EdgeKind
from .GraphPrimitives import Edge
from .Node import WorkflowNode, Workflow
from .Flattener import FlatNode, FlatEdge
from .Errors import (
    MissingPayload,
    MissingEdgeData,
    UnknownEdgeKind,
    StructuralError,
    CrossScopeEdge,
)


logger = logging.getLogger(__name__)


def reconstruct_node(flat_node: FlatNode) -> WorkflowNode:
    if flat_node.data is None:
        raise MissingPayload(flat_node.id)
    return flat_node.data


def reconstruct_edge(flat_edge: FlatEdge) -> Edge:
    """
    Rebuild a hierarchical edge from the kind marker the flattener wrote.

    Only the marker decides the kind; an edge without one is a producer bug.
    """
    data = flat_edge.data
    if data is None:
        raise MissingEdgeData(flat_edge.id)

    if data.edge_type == EdgeKind.DATA.value:
        return Edge(
            id=flat_edge.id,
            from_node_id=flat_edge.source,
            to_node_id=flat_edge.target,
            from_property=data.from_property or flat_edge.source_handle,
            to_property=data.to_property or flat_edge.target_handle,
            weight=data.weight,
            mode=data.mode,
        )
    if data.edge_type == EdgeKind.CONTROL.value:
        return Edge(
            id=flat_edge.id,
            from_node_id=flat_edge.source,
            to_node_id=flat_edge.target,
            condition=data.condition,
        )
    raise UnknownEdgeKind(flat_edge.id, data.edge_type)


def _detached(node: WorkflowNode) -> WorkflowNode:
    # groups are refilled from the flat lists; the incoming payload keeps its own
    if not node.is_group:
        return node
    group = copy.copy(node)
    group.nodes = []
    group.edges = []
    return group


def reconstruct(flat_nodes: List[FlatNode], flat_edges: List[FlatEdge],
                name: str = "Untitled Workflow", workflow_id: Optional[str] = None) -> Workflow:
    """
    Rebuild the hierarchy from a flat projection.

    A node with no parent is a top-level node. Any other node is appended to
    its parent group, which must come earlier in *flat_nodes*. Each edge is
    placed in the scope holding both of its endpoints.
    """
    top_level: List[WorkflowNode] = []
    built: Dict[str, WorkflowNode] = {}

    for flat in flat_nodes:
        node = _detached(reconstruct_node(flat))
        if flat.parent_id is None:
            top_level.append(node)
        else:
            parent = built.get(flat.parent_id)
            if parent is None:
                raise StructuralError(
                    f"Flat node '{flat.id}' appears before its parent '{flat.parent_id}'"
                )
            if not parent.is_group:
                raise StructuralError(f"Parent '{flat.parent_id}' of '{flat.id}' is not a group")
            parent.nodes.append(node)
        built[flat.id] = node

    workflow = Workflow(top_level, [], name=name, id=workflow_id)
    for flat in flat_edges:
        edge = reconstruct_edge(flat)
        if not (workflow.has_node(edge.from_node_id) and workflow.has_node(edge.to_node_id)):
            raise StructuralError(f"Edge '{edge.id}' references a node that is not in the projection")
        scope = workflow.edge_scope(edge.from_node_id, edge.to_node_id)
        if scope is None:
            raise CrossScopeEdge(edge.id, edge.from_node_id, edge.to_node_id)
        workflow.add_edge(edge)

    logger.debug("Reconstructed %d node(s), %d edge(s)", len(built), len(flat_edges))
    return workflow
