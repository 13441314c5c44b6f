import pytest

from flowsync.core.Node import WorkflowNode, Workflow, input_port, output_port
from flowsync.core.GraphPrimitives import Edge, Position
from flowsync.core.Types import ValueType
from flowsync.core.Errors import DuplicateNodeId, NodeNotFound, StructuralError
from flowsync.core.Flattener import to_flat_edge
from flowsync.core.SyncEngine import SyncEngine


@WorkflowNode.register("SeSource")
class SeSource(WorkflowNode):
    OUTPUTS = (output_port("x", ValueType.ANY),)


@WorkflowNode.register("SeSink")
class SeSink(WorkflowNode):
    INPUTS = (input_port("y", ValueType.ANY), input_port("ys", ValueType.ANY, multi=True))
    OUTPUTS = (output_port("x", ValueType.ANY),)


def _group(group_id, nodes, edges=(), **kwargs):
    return WorkflowNode.create_node("Group", group_id, nodes=list(nodes), edges=list(edges), **kwargs)


def _workflow():
    """A -> B at the top level, group G holding C -> D."""
    g = _group("G", [SeSource("C", position=(10, 10)), SeSink("D", position=(200, 10))],
               [Edge.data("C", "D", "x", "y", id="cd")], position=(0, 300))
    return Workflow(
        [SeSource("A", position=(0, 0)), SeSink("B", position=(300, 0)), g],
        [Edge.data("A", "B", "x", "y", id="ab")],
        name="Test",
    )


def _ids(flat):
    return [n.id for n in flat.nodes]


class TestLoad:

    def test_load_projects_and_resets_history(self):
        engine = SyncEngine(_workflow())
        assert _ids(engine.flat) == ["A", "B", "G", "C", "D"]
        assert len(engine.history) == 1
        assert not engine.history.can_undo
        assert not engine.has_unsaved_changes

    def test_load_repairs_invalid_edges(self):
        wf = _workflow()
        wf.get_node("G").edges.append(Edge.data("C", "ghost", "x", "y", id="bad"))
        wf.rebuild_index()

        reports = []
        engine = SyncEngine()
        engine.on_repair(reports.append)
        flat = engine.load(wf)

        assert flat.report.count == 1
        assert [r.count for r in reports] == [1]
        assert [e.id for e in engine.workflow.get_node("G").edges] == ["cd"]

    def test_load_prunes_edges_crossing_a_group_boundary(self):
        wf = _workflow()
        wf.edges.append(Edge.control("A", "C", id="across"))
        wf.rebuild_index()

        engine = SyncEngine(wf)
        assert "across" not in {e.id for e in engine.flat.edges}
        assert engine.flat.report.count == 1
        assert engine.workflow.find_edge("across") is None

    def test_portable_round_trip(self):
        engine = SyncEngine(_workflow())
        data = engine.to_portable()

        other = SyncEngine()
        flat = other.load_portable(data)
        assert _ids(flat) == _ids(engine.flat)
        assert other.to_portable() == data

    def test_clear(self):
        engine = SyncEngine(_workflow())
        engine.clear()
        assert engine.flat.nodes == []
        assert len(engine.history) == 1


class TestNodeMutations:

    def setup_method(self):
        self.engine = SyncEngine(_workflow())

    def test_add_node_commits_once(self):
        self.engine.add_node(SeSink("E"), parent_id="G")
        assert self.engine.workflow.parent_id_of("E") == "G"
        assert "E" in _ids(self.engine.flat)
        assert len(self.engine.history) == 2
        assert self.engine.has_unsaved_changes

        self.engine.mark_saved()
        assert not self.engine.has_unsaved_changes

    def test_duplicate_id_is_rejected_without_side_effects(self):
        with pytest.raises(DuplicateNodeId):
            self.engine.add_node(SeSink("C"))
        assert len(self.engine.history) == 1
        assert _ids(self.engine.flat) == ["A", "B", "G", "C", "D"]

    def test_update_and_move(self):
        self.engine.update_node("A", label="Start", params={"k": 1})
        self.engine.move_node("A", {"x": 5, "y": 6})

        node = self.engine.workflow.get_node("A")
        assert node.label == "Start"
        assert node.params == {"k": 1}
        assert self.engine.flat.nodes[0].position == Position(5, 6)

    def test_update_rejects_unknown_fields(self):
        with pytest.raises(StructuralError):
            self.engine.update_node("A", colour="red")

    def test_remove_group_removes_descendants_and_edges(self):
        self.engine.connect(Edge.control("A", "G", id="ag"))
        removed_ids, removed_edges = self.engine.remove_node("G")

        assert set(removed_ids) == {"G", "C", "D"}
        assert {e.id for e in removed_edges} == {"ag"}
        assert _ids(self.engine.flat) == ["A", "B"]
        assert not self.engine.workflow.arena.has_edge("cd")

    def test_remove_missing_node(self):
        with pytest.raises(NodeNotFound):
            self.engine.remove_node("nope")


class TestConnect:

    def setup_method(self):
        self.engine = SyncEngine(_workflow())

    def test_valid_connection_lands_in_owning_scope(self):
        result = self.engine.connect(Edge.data("C", "D", "x", "ys", id="cd2"))
        assert result.valid
        assert self.engine.workflow.arena.edge_owner_of("cd2").id == "G"
        assert "cd2" in {e.id for e in self.engine.flat.edges}

    def test_second_connection_to_single_input_is_rejected(self):
        result = self.engine.connect(Edge.data("A", "B", "x", "y", id="ab2"))
        assert not result.valid
        assert len(self.engine.history) == 1

    def test_cross_scope_connection_is_rejected(self):
        result = self.engine.connect(Edge.data("A", "D", "x", "ys", id="across"))
        assert not result.valid
        assert "Connection crosses a group boundary" in result.errors

    def test_connect_flat_and_remove(self):
        flat_edge = to_flat_edge(Edge.control("A", "B", condition="go", id="ctl"))
        assert self.engine.connect_flat(flat_edge).valid
        assert self.engine.workflow.find_edge("ctl").condition == "go"

        self.engine.remove_edge("ctl")
        assert self.engine.workflow.find_edge("ctl") is None


class TestBatch:

    def setup_method(self):
        self.engine = SyncEngine(_workflow())

    def test_mutations_in_a_batch_share_one_snapshot(self):
        with self.engine.batch():
            self.engine.add_node(SeSink("E"))
            self.engine.move_node("E", (1, 2))
            with self.engine.batch():
                self.engine.connect(Edge.data("A", "E", "x", "y", id="ae"))
        assert len(self.engine.history) == 2
        assert "ae" in {e.id for e in self.engine.flat.edges}

    def test_failing_batch_restores_previous_state(self):
        with pytest.raises(NodeNotFound):
            with self.engine.batch():
                self.engine.add_node(SeSink("E"))
                self.engine.remove_node("missing")

        assert not self.engine.workflow.has_node("E")
        assert _ids(self.engine.flat) == ["A", "B", "G", "C", "D"]
        assert len(self.engine.history) == 1


class TestHistory:

    def setup_method(self):
        self.engine = SyncEngine(_workflow())

    def test_undo_redo_rebuild_the_hierarchy(self):
        self.engine.add_node(SeSink("E"), parent_id="G")
        self.engine.remove_node("A")

        self.engine.undo()
        assert self.engine.workflow.has_node("A")
        assert self.engine.workflow.find_edge("ab") is not None

        self.engine.undo()
        assert not self.engine.workflow.has_node("E")
        assert self.engine.workflow.parent_id_of("C") == "G"
        assert self.engine.undo() is None

        self.engine.redo()
        assert self.engine.workflow.parent_id_of("E") == "G"

    def test_history_signal(self):
        states = []
        self.engine.on_history_change(states.append)
        self.engine.add_node(SeSink("E"))
        self.engine.undo()
        assert [(s.can_undo, s.can_redo) for s in states] == [(True, False), (False, True)]


class TestGroups:

    def setup_method(self):
        self.engine = SyncEngine(_workflow())

    def test_create_group_moves_nodes_and_inner_edges(self):
        self.engine.connect(Edge.control("B", "G", id="bg"))
        change = self.engine.create_group(["A", "B"])

        wf = self.engine.workflow
        group = wf.get_node(change.group_id)
        assert group.is_group
        assert [n.id for n in group.nodes] == ["A", "B"]
        assert [e.id for e in group.edges] == ["ab"]
        assert [e.id for e in change.dropped_edges] == ["bg"]
        # group sits at the selection's top-left corner minus padding
        assert group.position == Position(-40, -40)
        assert wf.get_node("A").position == Position(40, 40)
        assert _ids(self.engine.flat)[:3] == [group.id, "A", "B"]

    def test_create_group_requires_same_scope(self):
        with pytest.raises(StructuralError):
            self.engine.create_group(["A", "C"])
        assert len(self.engine.history) == 1

    def test_ungroup_restores_absolute_positions(self):
        change = self.engine.ungroup("G")

        wf = self.engine.workflow
        assert set(change.node_ids) == {"C", "D"}
        assert not wf.has_node("G")
        assert wf.parent_id_of("C") is None
        assert wf.get_node("C").position == Position(10, 310)
        assert wf.find_edge("cd") in wf.edges

    def test_group_then_ungroup_round_trip(self):
        change = self.engine.create_group(["A", "B"])
        self.engine.ungroup(change.group_id)
        assert self.engine.workflow.get_node("A").position == Position(0, 0)
        assert self.engine.workflow.find_edge("ab") in self.engine.workflow.edges


class TestClipboard:

    def setup_method(self):
        self.engine = SyncEngine(_workflow())

    def test_copy_paste_gets_fresh_ids(self):
        self.engine.copy(["A", "B"])
        before = set(self.engine.workflow.node_ids()) | set(self.engine.workflow.edge_ids())

        result = self.engine.paste((1000, 1000))

        assert len(result.nodes) == 2
        assert len(result.edges) == 1
        assert not ({n.id for n in result.nodes} | {e.id for e in result.edges}) & before
        assert len(self.engine.history) == 2

    def test_paste_into_group(self):
        self.engine.copy(["A"])
        result = self.engine.paste((0, 0), parent_id="G")
        assert self.engine.workflow.parent_id_of(result.nodes[0].id) == "G"

    def test_cut_removes_and_paste_consumes(self):
        self.engine.cut(["A", "B"])
        assert not self.engine.workflow.has_node("A")
        assert self.engine.clipboard.is_cut

        result = self.engine.paste((0, 0))
        assert len(result.nodes) == 2
        assert not self.engine.clipboard.has_clipboard
        assert self.engine.paste((0, 0)).nodes == []

    def test_copy_group_copies_its_subtree(self):
        self.engine.copy(["G"])
        result = self.engine.paste((500, 500))
        pasted = result.nodes[0]
        assert len(pasted.nodes) == 2
        assert self.engine.workflow.scope_of(pasted.nodes[0].id) is pasted

    def test_copy_group_together_with_its_children(self):
        self.engine.copy(["G", "C", "D"])
        assert self.engine.clipboard.count == 1
        assert self.engine.clipboard.snapshot.edges == ()

        result = self.engine.paste((500, 500))
        assert len(result.nodes) == 1
        assert result.edges == []
        pasted = result.nodes[0]
        assert [n.id for n in pasted.nodes] == [result.id_map["C"], result.id_map["D"]]
        assert [(e.from_node_id, e.to_node_id) for e in pasted.edges] == [
            (result.id_map["C"], result.id_map["D"]),
        ]
        assert self.engine.workflow.scope_of(result.id_map["D"]) is pasted

    def test_cut_group_together_with_its_children(self):
        self.engine.cut(["C", "G"])
        assert not self.engine.workflow.has_node("G")

        result = self.engine.paste((0, 0))
        assert len(result.nodes) == 1
        assert len(result.nodes[0].nodes) == 2
