from typing import Callable, List, NamedTuple, Optional, Tuple
import copy
import logging

from .Flattener import FlatNode, FlatEdge


logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 50


class HistorySnapshot(NamedTuple):
    flat_nodes: List[FlatNode]
    flat_edges: List[FlatEdge]


class HistoryState(NamedTuple):
    can_undo: bool
    can_redo: bool


HistoryListener = Callable[[HistoryState], None]


class HistoryManager:
    """
    Bounded linear undo/redo log of flat projections.

    ``_index`` points at the entry matching the current state. Pushing drops
    everything after it. Entries are deep clones in both directions, so a
    caller can never mutate what the log holds.
    """

    def __init__(self, max_size: int = DEFAULT_MAX_SIZE):
        if max_size < 1:
            raise ValueError("History max_size must be at least 1")
        self.max_size = max_size
        self._entries: List[HistorySnapshot] = []
        self._index = -1
        self._listeners: List[HistoryListener] = []

    # --- Inspection ---

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def entries(self) -> Tuple[HistorySnapshot, ...]:
        return tuple(self._entries)

    @property
    def can_undo(self) -> bool:
        return self._index > 0

    @property
    def can_redo(self) -> bool:
        return self._index < len(self._entries) - 1

    def state(self) -> HistoryState:
        return HistoryState(self.can_undo, self.can_redo)

    # --- Subscribers ---

    def on_change(self, callback: HistoryListener) -> Callable[[], None]:
        """Register *callback*; returns a function that unregisters it."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)
        return unsubscribe

    def _notify(self) -> None:
        state = self.state()
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("History listener %r failed", listener)

    # --- Log operations ---

    def push(self, flat_nodes: List[FlatNode], flat_edges: List[FlatEdge]) -> None:
        # one deepcopy call so edge and node payloads stay consistent with each other
        nodes, edges = copy.deepcopy((list(flat_nodes), list(flat_edges)))
        del self._entries[self._index + 1:]
        self._entries.append(HistorySnapshot(nodes, edges))
        if len(self._entries) > self.max_size:
            del self._entries[0]
        self._index = len(self._entries) - 1
        logger.debug("History push: %d/%d", len(self._entries), self.max_size)
        self._notify()

    def undo(self) -> Optional[HistorySnapshot]:
        if not self.can_undo:
            logger.debug("Nothing to undo")
            return None
        self._index -= 1
        self._notify()
        return copy.deepcopy(self._entries[self._index])

    def redo(self) -> Optional[HistorySnapshot]:
        if not self.can_redo:
            logger.debug("Nothing to redo")
            return None
        self._index += 1
        self._notify()
        return copy.deepcopy(self._entries[self._index])

    def clear(self) -> None:
        self._entries.clear()
        self._index = -1
        self._notify()
