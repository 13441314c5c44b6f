from collections.abc import Sequence as SequenceABC
from typing import Any, Callable, Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence, Tuple, Union
import logging

from .GraphPrimitives import Edge
from .Node import WorkflowNode
from .PortResolver import find_input_port


logger = logging.getLogger(__name__)

NodeLookup = Mapping[str, WorkflowNode]
RulePredicate = Callable[[Edge, NodeLookup, Sequence[Edge]], bool]


class EdgeValidationRule(NamedTuple):
    name: str
    validate: RulePredicate
    error_message: str


class ValidationResult(NamedTuple):
    valid: bool
    errors: List[str]


class InvalidEdge(NamedTuple):
    edge: Edge
    errors: List[str]


class DetailedValidation(NamedTuple):
    valid_edges: List[Edge]
    invalid_edges: List[InvalidEdge]


class EdgeIndex(SequenceABC):
    """
    An edge list with connection keys and target ports indexed once, so the
    duplicate and single-input rules do dict lookups instead of list scans.
    """

    def __init__(self, edges: Iterable[Edge]):
        self.edges: List[Edge] = list(edges)
        self.by_key: Dict[Tuple[str, str, Optional[str], Optional[str]], List[str]] = {}
        self.by_target: Dict[Tuple[str, Optional[str]], List[str]] = {}
        for e in self.edges:
            self.by_key.setdefault(e.connection_key(), []).append(e.id)
            self.by_target.setdefault((e.to_node_id, e.to_property), []).append(e.id)

    def __getitem__(self, index):
        return self.edges[index]

    def __len__(self) -> int:
        return len(self.edges)


def _indexed(edges: Sequence[Edge]) -> EdgeIndex:
    return edges if isinstance(edges, EdgeIndex) else EdgeIndex(edges)


def _as_lookup(nodes: Union[NodeLookup, Iterable[WorkflowNode]]) -> NodeLookup:
    if isinstance(nodes, Mapping):
        return nodes
    return {n.id: n for n in nodes}


# --- Rule predicates ---

def _nodes_exist(edge: Edge, nodes: NodeLookup, edges: Sequence[Edge]) -> bool:
    return edge.from_node_id in nodes and edge.to_node_id in nodes


def _no_self_connection(edge: Edge, nodes: NodeLookup, edges: Sequence[Edge]) -> bool:
    return edge.from_node_id != edge.to_node_id


def _no_duplicate(edge: Edge, nodes: NodeLookup, edges: Sequence[Edge]) -> bool:
    ids = _indexed(edges).by_key.get(edge.connection_key(), ())
    return all(edge_id == edge.id for edge_id in ids)


def _input_single_connection(edge: Edge, nodes: NodeLookup, edges: Sequence[Edge]) -> bool:
    target = nodes.get(edge.to_node_id)
    if target is None:
        return False
    port = find_input_port(target, edge.to_property)
    if port is None or port.is_multi:
        return True
    ids = _indexed(edges).by_target.get((edge.to_node_id, edge.to_property), ())
    return all(edge_id == edge.id for edge_id in ids)


def _no_cycle(edge: Edge, nodes: NodeLookup, edges: Sequence[Edge]) -> bool:
    adjacency: Dict[str, List[str]] = {}
    for e in [e for e in edges if e.id != edge.id] + [edge]:
        adjacency.setdefault(e.from_node_id, []).append(e.to_node_id)

    # the candidate closes a cycle iff its source is reachable from its target
    stack = [edge.to_node_id]
    seen = set()
    while stack:
        cur = stack.pop()
        if cur == edge.from_node_id:
            return False
        if cur in seen:
            continue
        seen.add(cur)
        stack.extend(adjacency.get(cur, ()))
    return True


DEFAULT_RULES = (
    EdgeValidationRule("nodes-exist", _nodes_exist,
                       "Source or target node does not exist"),
    EdgeValidationRule("no-self-connection", _no_self_connection,
                       "A node cannot be connected to itself"),
    EdgeValidationRule("no-duplicate", _no_duplicate,
                       "Duplicate connection"),
    EdgeValidationRule("input-single-connection", _input_single_connection,
                       "This input port does not accept multiple connections"),
)

NO_CYCLE_RULE = EdgeValidationRule("no-cycle", _no_cycle, "Connection would create a cycle")

CROSS_SCOPE_MESSAGE = "Connection crosses a group boundary"


def same_scope_rule(scope_of: Callable[[str], Any]) -> EdgeValidationRule:
    """Both endpoints must sit in the same scope; *scope_of* maps a node id to its scope."""
    def validate(edge: Edge, nodes: NodeLookup, edges: Sequence[Edge]) -> bool:
        return scope_of(edge.from_node_id) is scope_of(edge.to_node_id)
    return EdgeValidationRule("same-scope", validate, CROSS_SCOPE_MESSAGE)


# --- Entry points ---

def validate_edge(edge: Edge,
                  nodes: Union[NodeLookup, Iterable[WorkflowNode]],
                  edges: Sequence[Edge],
                  rules: Sequence[EdgeValidationRule] = DEFAULT_RULES) -> ValidationResult:
    """
    Run every rule against *edge*; each failing rule contributes its message.

    A rule that raises is logged and treated as passed.
    """
    lookup = _as_lookup(nodes)
    indexed = _indexed(edges)
    errors: List[str] = []
    for rule in rules:
        try:
            if not rule.validate(edge, lookup, indexed):
                errors.append(rule.error_message)
        except Exception:
            logger.exception("Edge validation rule '%s' failed on %r, ignoring it", rule.name, edge)
    return ValidationResult(not errors, errors)


def validate_edges(edges: Sequence[Edge],
                   nodes: Union[NodeLookup, Iterable[WorkflowNode]],
                   rules: Sequence[EdgeValidationRule] = DEFAULT_RULES) -> List[Edge]:
    return validate_edges_detailed(edges, nodes, rules).valid_edges


def validate_edges_detailed(edges: Sequence[Edge],
                            nodes: Union[NodeLookup, Iterable[WorkflowNode]],
                            rules: Sequence[EdgeValidationRule] = DEFAULT_RULES,
                            ) -> DetailedValidation:
    """Check each edge against the full list (itself excluded by id)."""
    lookup = _as_lookup(nodes)
    indexed = EdgeIndex(edges)
    valid: List[Edge] = []
    invalid: List[InvalidEdge] = []
    for edge in indexed:
        result = validate_edge(edge, lookup, indexed, rules)
        if result.valid:
            valid.append(edge)
        else:
            invalid.append(InvalidEdge(edge, result.errors))
    return DetailedValidation(valid, invalid)

