import logging

import pytest

from flowsync.core.Node import WorkflowNode, Workflow
from flowsync.core.Flattener import flatten
from flowsync.core.History import HistoryManager, HistoryState


@WorkflowNode.register("HsNode")
class HsNode(WorkflowNode):
    pass


def _snapshot(*node_ids):
    flat = flatten(Workflow([HsNode(node_id) for node_id in node_ids]))
    return flat.nodes, flat.edges


def _ids(snapshot):
    return [n.id for n in snapshot.flat_nodes]


class TestHistoryManager:

    def setup_method(self):
        self.history = HistoryManager(max_size=5)

    def test_empty_history_has_nothing_to_undo_or_redo(self):
        assert self.history.undo() is None
        assert self.history.redo() is None
        assert len(self.history) == 0
        assert self.history.current_index == -1

    def test_undo_and_redo_walk_the_log(self):
        self.history.push(*_snapshot("a"))
        self.history.push(*_snapshot("a", "b"))
        self.history.push(*_snapshot("a", "b", "c"))

        assert _ids(self.history.undo()) == ["a", "b"]
        assert _ids(self.history.undo()) == ["a"]
        assert self.history.undo() is None
        assert _ids(self.history.redo()) == ["a", "b"]
        assert _ids(self.history.redo()) == ["a", "b", "c"]
        assert self.history.redo() is None

    @pytest.mark.parametrize("extra", [1, 4, 20])
    def test_log_is_bounded(self, extra):
        for i in range(5 + extra):
            self.history.push(*_snapshot(f"n{i}"))

        assert len(self.history) == 5
        undone = []
        while True:
            snapshot = self.history.undo()
            if snapshot is None:
                break
            undone.append(_ids(snapshot))

        # the oldest retained entry is the last one reachable
        assert len(undone) == 4
        assert undone[-1] == [f"n{extra}"]
        assert self.history.current_index == 0

    def test_push_after_undo_truncates_redo(self):
        self.history.push(*_snapshot("a"))
        self.history.push(*_snapshot("a", "b"))
        self.history.undo()
        self.history.push(*_snapshot("a", "c"))

        assert self.history.redo() is None
        assert len(self.history) == 2

    def test_snapshots_are_deep_clones(self):
        nodes, edges = _snapshot("a")
        self.history.push(nodes, edges)
        nodes[0].data.params["mutated"] = True
        self.history.push(*_snapshot("b"))

        restored = self.history.undo()
        assert restored.flat_nodes[0].data.params == {}

        restored.flat_nodes[0].data.params["again"] = True
        self.history.redo()
        assert self.history.undo().flat_nodes[0].data.params == {}

    def test_clear(self):
        self.history.push(*_snapshot("a"))
        self.history.push(*_snapshot("b"))
        self.history.clear()
        assert len(self.history) == 0
        assert not self.history.can_undo
        assert not self.history.can_redo

    def test_subscribers_receive_flags(self):
        seen = []
        self.history.on_change(seen.append)

        self.history.push(*_snapshot("a"))
        self.history.push(*_snapshot("b"))
        self.history.undo()
        self.history.clear()

        assert seen == [
            HistoryState(False, False),
            HistoryState(True, False),
            HistoryState(False, True),
            HistoryState(False, False),
        ]

    def test_unsubscribe(self):
        seen = []
        unsubscribe = self.history.on_change(seen.append)
        unsubscribe()
        self.history.push(*_snapshot("a"))
        assert seen == []

    def test_failing_subscriber_is_logged_and_skipped(self, caplog):
        seen = []

        def broken(state):
            raise RuntimeError("listener bug")

        self.history.on_change(broken)
        self.history.on_change(seen.append)

        with caplog.at_level(logging.ERROR):
            self.history.push(*_snapshot("a"))

        assert seen == [HistoryState(False, False)]
        assert "History listener" in caplog.text

    def test_max_size_must_be_positive(self):
        with pytest.raises(ValueError):
            HistoryManager(max_size=0)
