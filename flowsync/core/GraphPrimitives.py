from typing import Dict, Iterator, List, NamedTuple, Optional, Tuple, TYPE_CHECKING, Any
import uuid
import logging

from .Types import EdgeKind, PortMultiplicity, ValueType
from .Errors import DuplicateNodeId, DuplicateEdgeId

if TYPE_CHECKING:
    from .Node import WorkflowNode

logger = logging.getLogger(__name__)


def generate_id(prefix: str = "") -> str:
    uid = uuid.uuid4().hex
    return f"{prefix}{uid}" if prefix else uid


class Position(NamedTuple):
    x: float = 0.0
    y: float = 0.0

    @classmethod
    def coerce(cls, value: Any) -> 'Position':
        """Accept a Position, an (x, y) pair, a {"x", "y"} dict, or None (origin)."""
        if value is None:
            return cls()
        if isinstance(value, Position):
            return value
        if isinstance(value, dict):
            return cls(float(value.get("x", 0.0)), float(value.get("y", 0.0)))
        x, y = value
        return cls(float(x), float(y))

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}


# Edge is immutable; a modified edge is a new tuple (see Edge._replace).
# The kind is derived from the port fields and never stored.
class Edge(NamedTuple):
    id: str
    from_node_id: str
    to_node_id: str
    from_property: Optional[str] = None
    to_property: Optional[str] = None
    condition: Optional[str] = None     # control edges
    weight: Optional[float] = None      # data edges
    mode: Optional[str] = None          # data edges

    @classmethod
    def create(cls, from_node_id: str, to_node_id: str, from_property: Optional[str] = None,
               to_property: Optional[str] = None, id: Optional[str] = None, **kwargs) -> 'Edge':
        return cls(id or generate_id("edge-"), from_node_id, to_node_id,
                   from_property or None, to_property or None, **kwargs)

    @classmethod
    def data(cls, from_node_id: str, to_node_id: str, from_property: Optional[str] = None,
             to_property: Optional[str] = None, weight: Optional[float] = None,
             mode: Optional[str] = None, id: Optional[str] = None) -> 'Edge':
        return cls.create(from_node_id, to_node_id, from_property, to_property, id=id,
                          weight=weight, mode=mode)

    @classmethod
    def control(cls, from_node_id: str, to_node_id: str, condition: Optional[str] = None,
                id: Optional[str] = None) -> 'Edge':
        return cls.create(from_node_id, to_node_id, id=id, condition=condition)

    @property
    def kind(self) -> EdgeKind:
        if self.from_property or self.to_property:
            return EdgeKind.DATA
        return EdgeKind.CONTROL

    def is_data(self) -> bool:
        return self.kind == EdgeKind.DATA

    def is_control(self) -> bool:
        return self.kind == EdgeKind.CONTROL

    def connection_key(self) -> Tuple[str, str, Optional[str], Optional[str]]:
        return (self.from_node_id, self.to_node_id, self.from_property, self.to_property)

    def __repr__(self):
        src = f"{self.from_node_id}.{self.from_property}" if self.from_property else self.from_node_id
        dst = f"{self.to_node_id}.{self.to_property}" if self.to_property else self.to_node_id
        return f"Edge({self.id}: {src} -> {dst})"


class Port(NamedTuple):
    property: str
    type: ValueType = ValueType.ANY
    multiplicity: PortMultiplicity = PortMultiplicity.SINGLE
    label: Optional[str] = None
    # Set on ports a group exposes from one of its descendants
    node_id: Optional[str] = None

    @property
    def is_multi(self) -> bool:
        return self.multiplicity == PortMultiplicity.MULTI

    def exposed_from(self, node_id: str) -> 'Port':
        return self._replace(node_id=node_id)


class PortSet(NamedTuple):
    inputs: Tuple[Port, ...] = ()
    outputs: Tuple[Port, ...] = ()

    def input(self, property: Optional[str]) -> Optional[Port]:
        return next((p for p in self.inputs if p.property == property), None)

    def output(self, property: Optional[str]) -> Optional[Port]:
        return next((p for p in self.outputs if p.property == property), None)

    def is_empty(self) -> bool:
        return not self.inputs and not self.outputs


EMPTY_PORTS = PortSet()


class NodeArena:
    """
    Flat id index kept alongside the hierarchical tree.

    Maps every node id (top level and nested) to its node and to the scope
    that owns it (the Workflow root or a group node), and every edge id to the
    scope whose edge list holds it. Lookups are O(1) instead of a tree walk.
    """

    def __init__(self):
        self.nodes: Dict[str, 'WorkflowNode'] = {}
        self.owners: Dict[str, Any] = {}
        self.edge_owners: Dict[str, Any] = {}

    def __contains__(self, node_id: str) -> bool:
        return node_id in self.nodes

    def __len__(self) -> int:
        return len(self.nodes)

    def get(self, node_id: str) -> Optional['WorkflowNode']:
        return self.nodes.get(node_id)

    def owner_of(self, node_id: str) -> Any:
        return self.owners.get(node_id)

    def edge_owner_of(self, edge_id: str) -> Any:
        return self.edge_owners.get(edge_id)

    def has_edge(self, edge_id: str) -> bool:
        return edge_id in self.edge_owners

    def register(self, node: 'WorkflowNode', owner: Any) -> None:
        """Index *node* and, for groups, everything nested inside it."""
        pending: List[Tuple['WorkflowNode', Any]] = [(node, owner)]
        staged: Dict[str, Tuple['WorkflowNode', Any]] = {}
        staged_edges: Dict[str, Any] = {}
        while pending:
            cur, cur_owner = pending.pop()
            if cur.id in self.nodes or cur.id in staged:
                raise DuplicateNodeId(cur.id)
            staged[cur.id] = (cur, cur_owner)
            if cur.is_group:
                for edge in cur.edges:
                    if edge.id in self.edge_owners or edge.id in staged_edges:
                        raise DuplicateEdgeId(edge.id)
                    staged_edges[edge.id] = cur
                pending.extend((child, cur) for child in cur.nodes)

        # nothing is indexed unless the whole subtree is collision free
        for node_id, (cur, cur_owner) in staged.items():
            self.nodes[node_id] = cur
            self.owners[node_id] = cur_owner
        self.edge_owners.update(staged_edges)

    def unregister(self, node_id: str) -> List[str]:
        """Drop *node_id* and its descendants; returns every id removed."""
        node = self.nodes.get(node_id)
        if node is None:
            return []
        removed = []
        for cur in iter_subtree(node):
            self.nodes.pop(cur.id, None)
            self.owners.pop(cur.id, None)
            if cur.is_group:
                for edge in cur.edges:
                    self.edge_owners.pop(edge.id, None)
            removed.append(cur.id)
        return removed

    def register_edge(self, edge: Edge, owner: Any) -> None:
        if edge.id in self.edge_owners:
            raise DuplicateEdgeId(edge.id)
        self.edge_owners[edge.id] = owner

    def unregister_edge(self, edge_id: str) -> None:
        self.edge_owners.pop(edge_id, None)

    def move(self, node_id: str, new_owner: Any) -> None:
        self.owners[node_id] = new_owner

    def reset(self) -> None:
        self.nodes.clear()
        self.owners.clear()
        self.edge_owners.clear()


def iter_subtree(node: 'WorkflowNode') -> Iterator['WorkflowNode']:
    """Pre-order walk of *node* and its nested nodes, without recursion."""
    stack = [node]
    while stack:
        cur = stack.pop()
        yield cur
        if cur.is_group:
            stack.extend(reversed(cur.nodes))
