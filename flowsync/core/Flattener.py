"""
Tree flattener: hierarchical workflow -> single-level canvas projection.

Nodes are emitted in pre-order so a group always precedes its descendants,
and each descendant carries the id of its immediate group plus the
``"parent"`` containment marker the renderer expects.

Edges are flattened in two passes. Pass one collects every edge of every
scope together with the scope that owns it. Pass two validates the whole set
at once; an edge whose endpoints are not both direct members of its owning
scope fails too. Whatever fails is planned for removal first and only then taken out
of the owning scope's edge list, so a failure while planning leaves the
hierarchy untouched.
"""
from typing import Any, Dict, List, NamedTuple, Optional, Set, Tuple
import logging

from .Types import (
    Containment,
    EdgeKind,
    GROUP_NODE_TYPE,
    DATA_EDGE_TYPE,
    CONTROL_EDGE_TYPE,
)
from .GraphPrimitives import Edge, Position
from .Node import WorkflowNode, Workflow
from .EdgeValidator import CROSS_SCOPE_MESSAGE, validate_edges_detailed


logger = logging.getLogger(__name__)


class FlatNode(NamedTuple):
    id: str
    type: str
    position: Position
    data: Optional[WorkflowNode]                    # the hierarchical node itself, not a copy
    parent_id: Optional[str] = None
    extent: Optional[Containment] = None
    width: Optional[float] = None
    height: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "position": self.position.to_dict(),
            "data": _payload_summary(self.data),
        }
        if self.parent_id is not None:
            result["parentId"] = self.parent_id
            result["extent"] = self.extent.value if self.extent else Containment.PARENT.value
        if self.width is not None:
            result["width"] = self.width
        if self.height is not None:
            result["height"] = self.height
        return result


class FlatEdgeData(NamedTuple):
    edge_type: str                                  # "data" | "control"
    edge: Optional[Edge] = None
    from_property: Optional[str] = None
    to_property: Optional[str] = None
    condition: Optional[str] = None
    weight: Optional[float] = None
    mode: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"edgeType": self.edge_type}
        for key, value in (("fromProperty", self.from_property),
                           ("toProperty", self.to_property),
                           ("condition", self.condition),
                           ("weight", self.weight),
                           ("mode", self.mode)):
            if value is not None:
                result[key] = value
        return result


class FlatEdge(NamedTuple):
    id: str
    source: str
    target: str
    type: str
    data: Optional[FlatEdgeData]
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "type": self.type,
            "data": self.data.to_dict() if self.data is not None else None,
        }
        if self.source_handle is not None:
            result["sourceHandle"] = self.source_handle
        if self.target_handle is not None:
            result["targetHandle"] = self.target_handle
        return result


class ScopedEdge(NamedTuple):
    scope_path: Tuple[str, ...]     # group ids from the root down to the owning scope
    edge: Edge
    owner: Any                      # Workflow or GroupNode whose edge list holds the edge


class PrunedEdge(NamedTuple):
    edge: Edge
    errors: List[str]
    scope_path: Tuple[str, ...]


class PruneReport(NamedTuple):
    entries: List[PrunedEdge]

    @property
    def count(self) -> int:
        return len(self.entries)

    @property
    def empty(self) -> bool:
        return not self.entries

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "edges": [
                {
                    "id": p.edge.id,
                    "from": p.edge.from_node_id,
                    "to": p.edge.to_node_id,
                    "scope": list(p.scope_path),
                    "errors": list(p.errors),
                }
                for p in self.entries
            ],
        }


EMPTY_REPORT = PruneReport([])


class FlattenEdgesResult(NamedTuple):
    edges: List[FlatEdge]
    pruned: PruneReport


class FlatGraph(NamedTuple):
    nodes: List[FlatNode]
    edges: List[FlatEdge]
    report: PruneReport = EMPTY_REPORT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
        }


def _payload_summary(node: Optional[WorkflowNode]) -> Dict[str, Any]:
    if node is None:
        return {}
    return {
        "nodeType": node.type,
        "label": node.label,
        "params": node.params,
        "collapsed": node.collapsed,
    }


def stable_edge_id(edge: Edge) -> str:
    return f"edge-{edge.from_node_id}-{edge.to_node_id}-{edge.from_property or ''}-{edge.to_property or ''}"


# --- Nodes ---

def to_flat_node(node: WorkflowNode, parent_id: Optional[str] = None) -> FlatNode:
    return FlatNode(
        id=node.id,
        type=GROUP_NODE_TYPE if node.is_group else node.type,
        position=node.position or Position(),
        data=node,
        parent_id=parent_id,
        extent=Containment.PARENT if parent_id is not None else None,
        width=node.width,
        height=node.height,
    )


def flatten_nodes(root_nodes: List[WorkflowNode]) -> List[FlatNode]:
    result: List[FlatNode] = []
    stack: List[Tuple[WorkflowNode, Optional[str]]] = [(n, None) for n in reversed(root_nodes)]
    while stack:
        node, parent_id = stack.pop()
        result.append(to_flat_node(node, parent_id))
        if node.is_group:
            stack.extend((child, node.id) for child in reversed(node.nodes))
    return result


# --- Edges ---

def to_flat_edge(edge: Edge) -> FlatEdge:
    kind = edge.kind
    return FlatEdge(
        id=edge.id or stable_edge_id(edge),
        source=edge.from_node_id,
        target=edge.to_node_id,
        type=DATA_EDGE_TYPE if kind == EdgeKind.DATA else CONTROL_EDGE_TYPE,
        data=FlatEdgeData(
            edge_type=kind.value,
            edge=edge,
            from_property=edge.from_property,
            to_property=edge.to_property,
            condition=edge.condition,
            weight=edge.weight,
            mode=edge.mode,
        ),
        source_handle=edge.from_property,
        target_handle=edge.to_property,
    )


def collect_scoped_edges(root) -> List[ScopedEdge]:
    """Pass 1: every edge of the root and of every nested group, pre-order."""
    collected: List[ScopedEdge] = []
    stack: List[Tuple[Tuple[str, ...], Any]] = [((), root)]
    while stack:
        path, scope = stack.pop()
        collected.extend(ScopedEdge(path, edge, scope) for edge in scope.edges)
        groups = [n for n in scope.nodes if n.is_group]
        for group in reversed(groups):
            stack.append((path + (group.id,), group))
    return collected


def _all_nodes(root) -> Dict[str, WorkflowNode]:
    return {flat.id: flat.data for flat in flatten_nodes(root.nodes)}


def _crosses_scope(item: ScopedEdge, members: Dict[int, Set[str]], nodes: Dict[str, WorkflowNode]) -> bool:
    # only meaningful when both endpoints exist; missing ones fail nodes-exist
    edge = item.edge
    if edge.from_node_id not in nodes or edge.to_node_id not in nodes:
        return False
    owned = members[id(item.owner)]
    return edge.from_node_id not in owned or edge.to_node_id not in owned


def flatten_edges(root) -> FlattenEdgesResult:
    scoped = collect_scoped_edges(root)
    nodes = _all_nodes(root)
    members = {id(item.owner): {n.id for n in item.owner.nodes} for item in scoped}

    # Pass 2: validate everything, then plan the removals
    detailed = validate_edges_detailed([s.edge for s in scoped], nodes)
    errors_by_id = {inv.edge.id: inv.errors for inv in detailed.invalid_edges}

    kept: List[FlatEdge] = []
    pruned: List[PrunedEdge] = []
    removals: Dict[int, Tuple[Any, Set[str]]] = {}
    for item in scoped:
        errors = list(errors_by_id.get(item.edge.id, ()))
        if _crosses_scope(item, members, nodes):
            errors.append(CROSS_SCOPE_MESSAGE)
        if not errors:
            kept.append(to_flat_edge(item.edge))
            continue
        pruned.append(PrunedEdge(item.edge, errors, item.scope_path))
        removals.setdefault(id(item.owner), (item.owner, set()))[1].add(item.edge.id)

    # Apply: take each rejected edge out of the scope that owns it
    for owner, edge_ids in removals.values():
        owner.edges[:] = [e for e in owner.edges if e.id not in edge_ids]
        if isinstance(root, Workflow):
            for edge_id in edge_ids:
                root.arena.unregister_edge(edge_id)

    report = PruneReport(pruned)
    if pruned:
        logger.warning("Pruned %d invalid edge(s) while flattening: %s",
                       report.count,
                       "; ".join(f"{p.edge.id} ({', '.join(p.errors)})" for p in pruned))
    return FlattenEdgesResult(kept, report)


def flatten(root) -> FlatGraph:
    nodes = flatten_nodes(root.nodes)
    edges = flatten_edges(root)
    logger.debug("Flattened %d node(s), %d edge(s)", len(nodes), len(edges.edges))
    return FlatGraph(nodes, edges.edges, edges.pruned)
