from typing import Optional, List, Dict, Any, Type, Callable, Iterator, Tuple
import copy
import logging

from .Types import PortMode, ValueType, PortMultiplicity
from .GraphPrimitives import Edge, Port, PortSet, Position, NodeArena, generate_id, iter_subtree
from .Errors import (
    UnknownNodeType,
    NodeNotFound,
    EdgeNotFound,
    CrossScopeEdge,
    StructuralError,
)


# Get a logger for this module
logger = logging.getLogger(__name__)


def input_port(property: str, type: ValueType = ValueType.ANY, multi: bool = False,
               label: Optional[str] = None) -> Port:
    return Port(property, type, PortMultiplicity.MULTI if multi else PortMultiplicity.SINGLE, label)


def output_port(property: str, type: ValueType = ValueType.ANY, label: Optional[str] = None) -> Port:
    # outputs fan out freely; multiplicity only constrains inputs
    return Port(property, type, PortMultiplicity.MULTI, label)


class WorkflowNode:
    """
    A node of the hierarchical workflow graph.

    Node classes are registered by type name with @WorkflowNode.register and
    declare their ports statically in INPUTS / OUTPUTS. A class that derives
    its ports from its own state sets port_mode = PortMode.COMPUTED and
    implements compute_ports().

    The node never stores its parent: containment is derived when the tree
    is flattened.
    """
    _node_registry: Dict[str, Type['WorkflowNode']] = {}

    node_type: str = ""
    title: Optional[str] = None
    port_mode: PortMode = PortMode.STATIC
    is_group: bool = False

    INPUTS: Tuple[Port, ...] = ()
    OUTPUTS: Tuple[Port, ...] = ()

    @classmethod
    def register(cls, type_name: str) -> Callable[[Type['WorkflowNode']], Type['WorkflowNode']]:
        """Decorator to register a node class with a specific type name."""
        def decorator(subclass: Type['WorkflowNode']) -> Type['WorkflowNode']:
            if cls._node_registry.get(type_name):
                raise ValueError(f"Node type '{type_name}' is already registered.")
            subclass.node_type = type_name
            cls._node_registry[type_name] = subclass
            return subclass
        return decorator

    @classmethod
    def unregister(cls, type_name: str) -> None:
        cls._node_registry.pop(type_name, None)

    @classmethod
    def resolve_type_constructor(cls, type_name: str) -> Type['WorkflowNode']:
        node_class = cls._node_registry.get(type_name)
        if node_class is None:
            raise UnknownNodeType(type_name)
        return node_class

    @classmethod
    def create_node(cls, type_name: str, node_id: Optional[str] = None, **kwargs) -> 'WorkflowNode':
        """Factory method to create a node instance by type name."""
        node_class = cls.resolve_type_constructor(type_name)
        return node_class(node_id, **kwargs)

    @classmethod
    def is_registered(cls, type_name: str) -> bool:
        return type_name in cls._node_registry

    @classmethod
    def registered_types(cls) -> List[str]:
        return list(cls._node_registry.keys())

    @classmethod
    def declared_ports(cls) -> PortSet:
        return PortSet(tuple(cls.INPUTS), tuple(cls.OUTPUTS))

    def __init__(self,
                 id: Optional[str] = None,
                 type: Optional[str] = None,
                 position: Any = None,
                 width: Optional[float] = None,
                 height: Optional[float] = None,
                 label: Optional[str] = None,
                 params: Optional[Dict[str, Any]] = None,
                 port_labels: Optional[Dict[str, str]] = None,
                 collapsed: bool = False):
        self.id = id or generate_id()
        self.type = type or self.node_type or self.__class__.__name__
        self.position = Position.coerce(position)
        self.width = width
        self.height = height
        self.label = label
        self.params: Dict[str, Any] = params if params is not None else {}
        self.port_labels: Dict[str, str] = port_labels if port_labels is not None else {}
        self.collapsed = collapsed

    def size(self) -> Optional[Tuple[float, float]]:
        if self.width is None or self.height is None:
            return None
        return (self.width, self.height)

    def clone(self) -> 'WorkflowNode':
        return copy.deepcopy(self)

    def __eq__(self, other):
        if not isinstance(other, WorkflowNode):
            return NotImplemented
        return self.id == other.id and self.type == other.type

    def __hash__(self):
        return hash(self.id)

    def __repr__(self):
        return f"{self.__class__.__name__}({self.id})"


class GroupNode(WorkflowNode):
    """
    A node that owns a nested sub-graph: an ordered list of child nodes and
    a private edge list whose endpoints are all children of this group.
    """
    port_mode = PortMode.COMPUTED
    is_group = True

    def __init__(self, id: Optional[str] = None,
                 nodes: Optional[List[WorkflowNode]] = None,
                 edges: Optional[List[Edge]] = None,
                 **kwargs):
        super().__init__(id, **kwargs)
        self.nodes: List[WorkflowNode] = nodes if nodes is not None else []
        self.edges: List[Edge] = edges if edges is not None else []

    def compute_ports(self, resolve: Callable[[Any], PortSet]) -> PortSet:
        """
        Expose every unconnected port of the nested sub-graph.

        Inputs come from non-group descendants only: a nested group's own
        inputs are already its descendants' inputs. A port counts as connected
        when a private edge of the scope holding the node touches it.
        *resolve* maps a child to its PortSet.
        """
        connected_in = {(e.to_node_id, e.to_property) for e in self.edges}
        connected_out = {(e.from_node_id, e.from_property) for e in self.edges}

        inputs: List[Port] = []
        outputs: List[Port] = []
        for child in self.nodes:
            ports = resolve(child)
            for port in ports.inputs:
                origin = port.node_id or child.id
                if (child.id, port.property) in connected_in:
                    continue
                inputs.append(port.exposed_from(origin))
            for port in ports.outputs:
                origin = port.node_id or child.id
                if (child.id, port.property) in connected_out:
                    continue
                outputs.append(port.exposed_from(origin))
        return PortSet(tuple(inputs), tuple(outputs))

    def child_ids(self) -> List[str]:
        return [n.id for n in self.nodes]


class Workflow:
    """
    Root of the hierarchical graph: top-level nodes and top-level edges.

    The root and every group share the same scope shape (``nodes`` and
    ``edges``). The root keeps a NodeArena so any node or edge can be found,
    together with the scope that owns it, without walking the tree.
    """
    is_group = False

    def __init__(self, nodes: Optional[List[WorkflowNode]] = None,
                 edges: Optional[List[Edge]] = None,
                 name: str = "Untitled Workflow",
                 id: Optional[str] = None):
        self.id = id or generate_id()
        self.name = name
        self.nodes: List[WorkflowNode] = nodes if nodes is not None else []
        self.edges: List[Edge] = edges if edges is not None else []
        self.arena = NodeArena()
        self.rebuild_index()

    # --- Index ---

    def rebuild_index(self) -> None:
        self.arena.reset()
        for node in self.nodes:
            self.arena.register(node, self)
        for edge in self.edges:
            self.arena.register_edge(edge, self)

    def find_node(self, node_id: str) -> Optional[WorkflowNode]:
        return self.arena.get(node_id)

    def get_node(self, node_id: str) -> WorkflowNode:
        node = self.arena.get(node_id)
        if node is None:
            raise NodeNotFound(node_id)
        return node

    def has_node(self, node_id: str) -> bool:
        return node_id in self.arena

    def scope_of(self, node_id: str):
        """The Workflow or GroupNode whose ``nodes`` list holds *node_id*."""
        owner = self.arena.owner_of(node_id)
        if owner is None:
            raise NodeNotFound(node_id)
        return owner

    def get_scope(self, scope_id: Optional[str]):
        if scope_id is None or scope_id == self.id:
            return self
        scope = self.get_node(scope_id)
        if not scope.is_group:
            raise StructuralError(f"Node '{scope_id}' is not a group")
        return scope

    def parent_id_of(self, node_id: str) -> Optional[str]:
        owner = self.scope_of(node_id)
        return None if owner is self else owner.id

    def node_ids(self) -> List[str]:
        return list(self.arena.nodes.keys())

    def edge_ids(self) -> List[str]:
        return list(self.arena.edge_owners.keys())

    # --- Traversal ---

    def iter_nodes(self) -> Iterator[WorkflowNode]:
        """Every node, pre-order: a group before its descendants."""
        for node in self.nodes:
            yield from iter_subtree(node)

    def iter_scopes(self) -> Iterator[Tuple[Tuple[str, ...], Any]]:
        """(scope_path, scope) for the root and every nested group, pre-order."""
        stack: List[Tuple[Tuple[str, ...], Any]] = [((), self)]
        while stack:
            path, scope = stack.pop()
            yield path, scope
            groups = [n for n in scope.nodes if n.is_group]
            for group in reversed(groups):
                stack.append((path + (group.id,), group))

    def all_edges(self) -> List[Edge]:
        return [edge for _, scope in self.iter_scopes() for edge in scope.edges]

    # --- Node mutation ---

    def add_node(self, node: WorkflowNode, parent_id: Optional[str] = None,
                 index: Optional[int] = None) -> WorkflowNode:
        scope = self.get_scope(parent_id)
        self.arena.register(node, scope)
        if index is None:
            scope.nodes.append(node)
        else:
            scope.nodes.insert(index, node)
        logger.debug("Added node %s to scope %s", node.id, getattr(scope, "id", None))
        return node

    def remove_node(self, node_id: str) -> Tuple[List[str], List[Edge]]:
        """
        Remove a node, its descendants, and every edge touching any of them
        in any remaining scope. Returns (removed node ids, removed edges).
        """
        node = self.get_node(node_id)
        scope = self.scope_of(node_id)
        removed_ids = self.arena.unregister(node.id)
        gone = set(removed_ids)

        scope.nodes[:] = [n for n in scope.nodes if n.id != node.id]

        removed_edges: List[Edge] = []
        for _, other in self.iter_scopes():
            touching = [e for e in other.edges if e.from_node_id in gone or e.to_node_id in gone]
            if not touching:
                continue
            other.edges[:] = [e for e in other.edges if e.from_node_id not in gone and e.to_node_id not in gone]
            for edge in touching:
                self.arena.unregister_edge(edge.id)
            removed_edges.extend(touching)
        logger.debug("Removed %d node(s), %d edge(s)", len(removed_ids), len(removed_edges))
        return removed_ids, removed_edges

    def detach_node(self, node_id: str) -> WorkflowNode:
        """Take a node (with its subtree and private edges) out of its scope, keeping scope edges."""
        node = self.get_node(node_id)
        scope = self.scope_of(node_id)
        self.arena.unregister(node.id)
        scope.nodes[:] = [n for n in scope.nodes if n.id != node.id]
        return node

    # --- Edge mutation ---

    def edge_scope(self, from_node_id: str, to_node_id: str):
        source_scope = self.scope_of(from_node_id)
        target_scope = self.scope_of(to_node_id)
        if source_scope is not target_scope:
            return None
        return source_scope

    def add_edge(self, edge: Edge) -> Edge:
        scope = self.edge_scope(edge.from_node_id, edge.to_node_id)
        if scope is None:
            raise CrossScopeEdge(edge.id, edge.from_node_id, edge.to_node_id)
        self.arena.register_edge(edge, scope)
        scope.edges.append(edge)
        return edge

    def find_edge(self, edge_id: str) -> Optional[Edge]:
        scope = self.arena.edge_owner_of(edge_id)
        if scope is None:
            return None
        return next((e for e in scope.edges if e.id == edge_id), None)

    def remove_edge(self, edge_id: str) -> Edge:
        scope = self.arena.edge_owner_of(edge_id)
        if scope is None:
            raise EdgeNotFound(edge_id)
        edge = next(e for e in scope.edges if e.id == edge_id)
        scope.edges[:] = [e for e in scope.edges if e.id != edge_id]
        self.arena.unregister_edge(edge_id)
        return edge

    def __repr__(self):
        return f"Workflow({self.name}: {len(self.arena)} nodes)"
