from enum import Enum
from typing import Collection, Dict, Iterable, List, NamedTuple, Optional, Set, Tuple
import copy
import logging

from .GraphPrimitives import Edge, Position, generate_id, iter_subtree
from .Node import WorkflowNode


logger = logging.getLogger(__name__)

DEFAULT_NODE_SIZE: Tuple[float, float] = (150.0, 50.0)


class ClipboardOperation(Enum):
    COPY = "copy"
    CUT = "cut"


class BoundingBox(NamedTuple):
    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @property
    def center(self) -> Position:
        return Position((self.min_x + self.max_x) / 2, (self.min_y + self.max_y) / 2)

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y


class ClipboardSnapshot(NamedTuple):
    nodes: Tuple[WorkflowNode, ...]
    edges: Tuple[Edge, ...]
    bounding_box: BoundingBox
    operation: ClipboardOperation


class PasteResult(NamedTuple):
    nodes: List[WorkflowNode]
    edges: List[Edge]
    id_map: Dict[str, str]


EMPTY_PASTE = PasteResult([], [], {})


def compute_bounding_box(nodes: Iterable[WorkflowNode],
                         default_size: Tuple[float, float] = DEFAULT_NODE_SIZE) -> BoundingBox:
    """Box around every node, using its last rendered size or *default_size*."""
    min_x = min_y = float("inf")
    max_x = max_y = float("-inf")
    for node in nodes:
        x, y = node.position
        width = node.width if node.width is not None else default_size[0]
        height = node.height if node.height is not None else default_size[1]
        min_x = min(min_x, x)
        min_y = min(min_y, y)
        max_x = max(max_x, x + width)
        max_y = max(max_y, y + height)
    if min_x == float("inf"):
        return BoundingBox(0.0, 0.0, 0.0, 0.0)
    return BoundingBox(min_x, min_y, max_x, max_y)


def top_level_selection(selected: Iterable[WorkflowNode]) -> List[WorkflowNode]:
    """Drop every selected node that a selected group already carries."""
    selected = list(selected)
    carried = {cur.id for node in selected if node.is_group
               for cur in iter_subtree(node) if cur is not node}
    return [n for n in selected if n.id not in carried]


class Clipboard:
    """
    Holds at most one snapshot of copied or cut nodes.

    Snapshots are deep copies and never change after capture. A cut snapshot
    is consumed by the first paste; a copy snapshot can be pasted any number
    of times, each paste getting fresh ids.
    """

    def __init__(self, default_size: Tuple[float, float] = DEFAULT_NODE_SIZE):
        self.default_size = default_size
        self._snapshot: Optional[ClipboardSnapshot] = None

    @property
    def snapshot(self) -> Optional[ClipboardSnapshot]:
        return self._snapshot

    @property
    def has_clipboard(self) -> bool:
        return self._snapshot is not None

    @property
    def count(self) -> int:
        return len(self._snapshot.nodes) if self._snapshot else 0

    @property
    def is_cut(self) -> bool:
        return self._snapshot is not None and self._snapshot.operation == ClipboardOperation.CUT

    def _capture(self, selected: List[WorkflowNode], all_edges: Iterable[Edge],
                 operation: ClipboardOperation) -> Optional[ClipboardSnapshot]:
        selected = top_level_selection(selected)
        if not selected:
            return None
        # edges inside a selected group travel with the group
        ids = {n.id for n in selected}
        internal = [e for e in all_edges if e.from_node_id in ids and e.to_node_id in ids]
        nodes, edges = copy.deepcopy((tuple(selected), tuple(internal)))
        self._snapshot = ClipboardSnapshot(
            nodes=nodes,
            edges=edges,
            bounding_box=compute_bounding_box(nodes, self.default_size),
            operation=operation,
        )
        logger.info("%s %d node(s), %d edge(s) to clipboard",
                    "Cut" if operation == ClipboardOperation.CUT else "Copied",
                    len(nodes), len(edges))
        return self._snapshot

    def copy(self, selected_nodes: List[WorkflowNode], all_edges: Iterable[Edge]) -> Optional[ClipboardSnapshot]:
        return self._capture(selected_nodes, all_edges, ClipboardOperation.COPY)

    def cut(self, selected_nodes: List[WorkflowNode], all_edges: Iterable[Edge]) -> Optional[ClipboardSnapshot]:
        return self._capture(selected_nodes, all_edges, ClipboardOperation.CUT)

    def clear(self) -> None:
        self._snapshot = None

    def restore(self, snapshot: Optional[ClipboardSnapshot]) -> None:
        self._snapshot = snapshot

    def paste(self, target_point, snapshot: Optional[ClipboardSnapshot] = None,
              taken_ids: Collection[str] = ()) -> PasteResult:
        """
        Re-emit the snapshot around *target_point* with fresh ids.

        Every node keeps its offset from the snapshot's bounding box center.
        Nested group children get fresh ids too; their positions stay relative
        to the group. No new id collides with *taken_ids*.
        """
        snap = snapshot if snapshot is not None else self._snapshot
        if snap is None or not snap.nodes:
            return EMPTY_PASTE

        target = Position.coerce(target_point)
        center = snap.bounding_box.center
        used: Set[str] = set(taken_ids)

        def fresh(prefix: str = "") -> str:
            new_id = generate_id(prefix)
            while new_id in used:
                new_id = generate_id(prefix)
            used.add(new_id)
            return new_id

        nodes: List[WorkflowNode] = copy.deepcopy(list(snap.nodes))
        id_map: Dict[str, str] = {}
        for node in nodes:
            for cur in iter_subtree(node):
                id_map[cur.id] = fresh()

        for node in nodes:
            for cur in iter_subtree(node):
                cur.id = id_map[cur.id]
                if cur.is_group:
                    cur.edges = [self._remap(e, id_map, fresh) for e in cur.edges]
            node.position = Position(target.x + (node.position.x - center.x),
                                     target.y + (node.position.y - center.y))

        edges = [self._remap(e, id_map, fresh) for e in snap.edges]

        if snap.operation == ClipboardOperation.CUT and snap is self._snapshot:
            self.clear()

        logger.info("Pasted %d node(s), %d edge(s) at (%s, %s)", len(nodes), len(edges), target.x, target.y)
        return PasteResult(nodes, edges, id_map)

    @staticmethod
    def _remap(edge: Edge, id_map: Dict[str, str], fresh) -> Edge:
        return edge._replace(
            id=fresh("edge-"),
            from_node_id=id_map[edge.from_node_id],
            to_node_id=id_map[edge.to_node_id],
        )
