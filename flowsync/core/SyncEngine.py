from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, NamedTuple, Optional, Tuple
import copy
import logging

from .GraphPrimitives import Edge, PortSet, Position, generate_id
from .Node import WorkflowNode, Workflow
from .PortResolver import resolve_ports_or_empty
from .EdgeValidator import (
    DEFAULT_RULES,
    ValidationResult,
    same_scope_rule,
    validate_edge,
    validate_edges_detailed,
)
from .Flattener import FlatEdge, FlatGraph, PruneReport, flatten
from .Reconstructor import reconstruct, reconstruct_edge
from .Clipboard import (
    Clipboard,
    ClipboardSnapshot,
    PasteResult,
    compute_bounding_box,
    top_level_selection,
    DEFAULT_NODE_SIZE,
)
from .History import HistoryManager, HistoryListener, DEFAULT_MAX_SIZE
from .Errors import StructuralError
from .Portable import serialize_workflow, deserialize_workflow

# Side-effect: registers the built-in node types, "Group" among them
from ..noderegistry import NodeRegistry  # noqa: F401


logger = logging.getLogger(__name__)

GROUP_PADDING = 40.0

RepairListener = Callable[[PruneReport], None]

_UPDATABLE = ("label", "params", "position", "width", "height", "port_labels", "collapsed")


class GroupChange(NamedTuple):
    group_id: str
    node_ids: List[str]
    dropped_edges: List[Edge]       # edges that crossed the new/removed group boundary


class SyncEngine:
    """
    Single writer of both workflow representations.

    The hierarchical Workflow is the source of truth. Every mutation goes
    through this class, runs atomically, and ends with a re-flatten of the
    hierarchy plus one history snapshot. Mutations made inside ``batch()``
    share one flatten and one snapshot.
    """

    def __init__(self, workflow: Optional[Workflow] = None,
                 history_max_size: int = DEFAULT_MAX_SIZE,
                 default_node_size: Tuple[float, float] = DEFAULT_NODE_SIZE):
        self.history = HistoryManager(history_max_size)
        self.clipboard = Clipboard(default_node_size)
        self.workflow: Workflow = Workflow()
        self.flat: FlatGraph = FlatGraph([], [])
        self._unsaved = False
        self._batch_depth = 0
        self._dirty = False
        self._repair_listeners: List[RepairListener] = []
        self.load(workflow if workflow is not None else Workflow())

    @classmethod
    def from_settings(cls, settings, workflow: Optional[Workflow] = None) -> 'SyncEngine':
        return cls(workflow,
                   history_max_size=settings.history_max_size,
                   default_node_size=(settings.default_node_width, settings.default_node_height))

    # --- Signals ---

    def on_history_change(self, callback: HistoryListener) -> Callable[[], None]:
        return self.history.on_change(callback)

    def on_repair(self, callback: RepairListener) -> Callable[[], None]:
        self._repair_listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._repair_listeners:
                self._repair_listeners.remove(callback)
        return unsubscribe

    def _notify_repair(self, report: PruneReport) -> None:
        for listener in list(self._repair_listeners):
            try:
                listener(report)
            except Exception:
                logger.exception("Repair listener %r failed", listener)

    @property
    def has_unsaved_changes(self) -> bool:
        return self._unsaved

    def mark_saved(self) -> None:
        self._unsaved = False

    # --- Projection ---

    def sync(self) -> FlatGraph:
        """Re-derive the flat projection from the hierarchy."""
        self.flat = flatten(self.workflow)
        if not self.flat.report.empty:
            self._notify_repair(self.flat.report)
        return self.flat

    def ports_of(self, node_id: str) -> PortSet:
        return resolve_ports_or_empty(self.workflow.get_node(node_id))

    # --- Batching ---

    def _state(self) -> Tuple[Workflow, FlatGraph, bool, bool, Optional[ClipboardSnapshot]]:
        workflow, flat = copy.deepcopy((self.workflow, self.flat))
        return workflow, flat, self._unsaved, self._dirty, self.clipboard.snapshot

    def _restore(self, state) -> None:
        self.workflow, self.flat, self._unsaved, self._dirty, snapshot = state
        self.clipboard.restore(snapshot)

    @contextmanager
    def batch(self) -> Iterator['SyncEngine']:
        """
        Group mutations into one flatten and one history snapshot.

        Nested batches commit once, when the outermost one exits. If the body
        raises, the hierarchy and projection return to their state at entry.
        """
        saved = self._state()
        self._batch_depth += 1
        try:
            yield self
        except Exception:
            self._batch_depth -= 1
            self._restore(saved)
            raise
        self._batch_depth -= 1
        if self._batch_depth == 0 and self._dirty:
            self._commit()

    def _touch(self) -> None:
        self._dirty = True

    def _commit(self) -> None:
        self._dirty = False
        flat = self.sync()
        self.history.push(flat.nodes, flat.edges)
        self._unsaved = True

    # --- Lifecycle ---

    def load(self, workflow: Workflow) -> FlatGraph:
        """Take ownership of *workflow*, repair it and reset the history."""
        if self._batch_depth:
            raise StructuralError("Cannot load a workflow inside a batch")
        workflow.rebuild_index()
        self.workflow = workflow
        flat = self.sync()
        self.history.clear()
        self.history.push(flat.nodes, flat.edges)
        self.clipboard.clear()
        self._unsaved = False
        self._dirty = False
        logger.info("Loaded workflow '%s': %d node(s), %d edge(s), %d pruned",
                    workflow.name, len(flat.nodes), len(flat.edges), flat.report.count)
        return flat

    def load_portable(self, data: Dict[str, Any]) -> FlatGraph:
        return self.load(deserialize_workflow(data))

    def to_portable(self) -> Dict[str, Any]:
        return serialize_workflow(self.workflow)

    def clear(self) -> FlatGraph:
        return self.load(Workflow(name=self.workflow.name))

    # --- Nodes ---

    def add_node(self, node: WorkflowNode, parent_id: Optional[str] = None) -> WorkflowNode:
        with self.batch():
            self.workflow.add_node(node, parent_id)
            self._touch()
        return node

    def update_node(self, node_id: str, **changes) -> WorkflowNode:
        unknown = set(changes) - set(_UPDATABLE)
        if unknown:
            raise StructuralError(f"Cannot update node field(s): {', '.join(sorted(unknown))}")
        with self.batch():
            node = self.workflow.get_node(node_id)
            for key, value in changes.items():
                if key == "position":
                    value = Position.coerce(value)
                elif key in ("params", "port_labels"):
                    value = dict(value or {})
                setattr(node, key, value)
            self._touch()
        return self.workflow.get_node(node_id)

    def move_node(self, node_id: str, position) -> WorkflowNode:
        return self.update_node(node_id, position=position)

    def remove_node(self, node_id: str) -> Tuple[List[str], List[Edge]]:
        with self.batch():
            removed = self.workflow.remove_node(node_id)
            self._touch()
        return removed

    # --- Edges ---

    def validate_connection(self, edge: Edge) -> ValidationResult:
        wf = self.workflow
        scope = wf.arena.owner_of(edge.from_node_id) or wf
        rules = tuple(DEFAULT_RULES) + (same_scope_rule(wf.arena.owner_of),)
        return validate_edge(edge, wf.arena.nodes, scope.edges, rules)

    def connect(self, edge: Edge) -> ValidationResult:
        if not edge.id:
            edge = edge._replace(id=generate_id("edge-"))
        result = self.validate_connection(edge)
        if not result.valid:
            logger.info("Rejected connection %r: %s", edge, "; ".join(result.errors))
            return result
        with self.batch():
            self.workflow.add_edge(edge)
            self._touch()
        return result

    def connect_flat(self, flat_edge: FlatEdge) -> ValidationResult:
        return self.connect(reconstruct_edge(flat_edge))

    def remove_edge(self, edge_id: str) -> Edge:
        with self.batch():
            edge = self.workflow.remove_edge(edge_id)
            self._touch()
        return edge

    # --- Groups ---

    def _same_scope_selection(self, node_ids: List[str]) -> Tuple[Any, List[WorkflowNode]]:
        if not node_ids:
            raise StructuralError("Select at least one node")
        wf = self.workflow
        scopes = {id(wf.scope_of(node_id)) for node_id in node_ids}
        if len(scopes) != 1:
            raise StructuralError("Selected nodes must share the same parent")
        scope = wf.scope_of(node_ids[0])
        wanted = set(node_ids)
        return scope, [n for n in scope.nodes if n.id in wanted]

    def create_group(self, node_ids: List[str], group_type: str = "Group",
                     label: Optional[str] = None) -> GroupChange:
        """
        Move the selected same-scope nodes into a new group.

        Edges between selected nodes move into the group. Edges with only one
        selected endpoint would cross the new boundary and are dropped.
        """
        wf = self.workflow
        with self.batch():
            scope, selected = self._same_scope_selection(node_ids)
            group = WorkflowNode.create_node(group_type, label=label)
            if not group.is_group:
                raise StructuralError(f"Node type '{group_type}' is not a group type")

            ids = {n.id for n in selected}
            inner = [e for e in scope.edges if e.from_node_id in ids and e.to_node_id in ids]
            dropped = [e for e in scope.edges
                       if (e.from_node_id in ids) != (e.to_node_id in ids)]
            for edge in inner + dropped:
                wf.remove_edge(edge.id)

            bbox = compute_bounding_box(selected, self.clipboard.default_size)
            group.position = Position(bbox.min_x - GROUP_PADDING, bbox.min_y - GROUP_PADDING)
            group.width = bbox.width + 2 * GROUP_PADDING
            group.height = bbox.height + 2 * GROUP_PADDING

            index = scope.nodes.index(selected[0])
            for node in selected:
                wf.detach_node(node.id)
                node.position = Position(node.position.x - group.position.x,
                                         node.position.y - group.position.y)
            group.nodes = selected
            group.edges = inner

            parent_id = None if scope is wf else scope.id
            wf.add_node(group, parent_id, index)
            self._touch()

        if dropped:
            logger.warning("Grouping dropped %d edge(s) crossing the new group boundary", len(dropped))
        logger.info("Created group %s with %d node(s)", group.id, len(selected))
        return GroupChange(group.id, [n.id for n in selected], dropped)

    def ungroup(self, group_id: str) -> GroupChange:
        """Move a group's children back to its parent scope with absolute positions."""
        wf = self.workflow
        with self.batch():
            group = wf.get_node(group_id)
            if not group.is_group:
                raise StructuralError(f"Node '{group_id}' is not a group")
            scope = wf.scope_of(group_id)
            parent_id = None if scope is wf else scope.id
            index = scope.nodes.index(group)

            # edges attached to the group itself have nothing to attach to afterwards
            dropped = [e for e in scope.edges if group_id in (e.from_node_id, e.to_node_id)]
            for edge in dropped:
                wf.remove_edge(edge.id)

            children = list(group.nodes)
            private = list(group.edges)
            wf.detach_node(group_id)
            for offset, child in enumerate(children):
                child.position = Position(group.position.x + child.position.x,
                                          group.position.y + child.position.y)
                wf.add_node(child, parent_id, index + offset)
            for edge in private:
                wf.add_edge(edge)
            self._touch()

        if dropped:
            logger.warning("Ungrouping %s dropped %d edge(s) attached to the group", group_id, len(dropped))
        return GroupChange(group_id, [c.id for c in children], dropped)

    # --- Clipboard ---

    def _nodes(self, node_ids: List[str]) -> List[WorkflowNode]:
        return [self.workflow.get_node(node_id) for node_id in dict.fromkeys(node_ids)]

    def copy(self, node_ids: List[str]) -> Optional[ClipboardSnapshot]:
        return self.clipboard.copy(self._nodes(node_ids), self.workflow.all_edges())

    def cut(self, node_ids: List[str]) -> Optional[ClipboardSnapshot]:
        with self.batch():
            selected = self._nodes(node_ids)
            snapshot = self.clipboard.cut(selected, self.workflow.all_edges())
            # descendants of a selected group go with the group
            for node in top_level_selection(selected):
                self.workflow.remove_node(node.id)
                self._touch()
        return snapshot

    def paste(self, target_point, parent_id: Optional[str] = None) -> PasteResult:
        """
        Paste the clipboard around *target_point* into *parent_id* (root by default).

        Pasted edges go through the default rules; any that fail are dropped.
        """
        wf = self.workflow
        with self.batch():
            wf.get_scope(parent_id)
            taken = set(wf.node_ids()) | set(wf.edge_ids())
            result = self.clipboard.paste(target_point, taken_ids=taken)
            if not result.nodes:
                return result

            for node in result.nodes:
                wf.add_node(node, parent_id)
            checked = validate_edges_detailed(result.edges, wf.arena.nodes, DEFAULT_RULES)
            for invalid in checked.invalid_edges:
                logger.warning("Dropped pasted edge %r: %s", invalid.edge, "; ".join(invalid.errors))
            for edge in checked.valid_edges:
                wf.add_edge(edge)
            self._touch()

        logger.info("Pasted %d node(s), %d edge(s)", len(result.nodes), len(checked.valid_edges))
        return PasteResult(result.nodes, checked.valid_edges, result.id_map)

    # --- History ---

    def _restore_snapshot(self, snapshot) -> FlatGraph:
        self.workflow = reconstruct(snapshot.flat_nodes, snapshot.flat_edges,
                                    name=self.workflow.name, workflow_id=self.workflow.id)
        self._unsaved = True
        return self.sync()

    def undo(self) -> Optional[FlatGraph]:
        if self._batch_depth:
            raise StructuralError("Cannot undo inside a batch")
        snapshot = self.history.undo()
        if snapshot is None:
            return None
        logger.info("Undo to history entry %d", self.history.current_index)
        return self._restore_snapshot(snapshot)

    def redo(self) -> Optional[FlatGraph]:
        if self._batch_depth:
            raise StructuralError("Cannot redo inside a batch")
        snapshot = self.history.redo()
        if snapshot is None:
            return None
        logger.info("Redo to history entry %d", self.history.current_index)
        return self._restore_snapshot(snapshot)
