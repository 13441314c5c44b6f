import pytest

from flowsync.core.Node import WorkflowNode, GroupNode, Workflow, input_port, output_port
from flowsync.core.GraphPrimitives import Edge, EMPTY_PORTS
from flowsync.core.Types import ValueType
from flowsync.core.Errors import StructuralError, UnknownNodeType
from flowsync.core.PortResolver import (
    resolve_ports,
    resolve_ports_or_empty,
    resolve_ports_for_type,
    resolve_metadata,
    find_input_port,
    find_output_port,
    humanize,
)

# Importing the registry makes "Group" available
from flowsync.noderegistry import NodeRegistry  # noqa: F401


# --- Node types for these tests ---

@WorkflowNode.register("PrSource")
class PrSource(WorkflowNode):
    OUTPUTS = (output_port("x", ValueType.INT),)


@WorkflowNode.register("PrSink")
class PrSink(WorkflowNode):
    INPUTS = (input_port("y", ValueType.INT),)


@WorkflowNode.register("PrInputOnly")
class PrInputOnly(WorkflowNode):
    INPUTS = (input_port("z", ValueType.STRING),)


@WorkflowNode.register("PrPassThrough")
class PrPassThrough(WorkflowNode):
    INPUTS = (input_port("userName", ValueType.STRING), input_port("items", ValueType.ARRAY, multi=True))
    OUTPUTS = (output_port("result", ValueType.ANY, label="Result Value"),)


@WorkflowNode.register("CustomTestAst")
class CustomTestAst(WorkflowNode):
    pass


class TestPortResolver:

    def test_static_ports_by_type_name_class_and_instance(self):
        by_name = resolve_ports("PrSource")
        by_class = resolve_ports(PrSource)
        by_instance = resolve_ports(PrSource("a"))

        assert by_name == by_class == by_instance
        assert [p.property for p in by_name.outputs] == ["x"]
        assert by_name.inputs == ()
        assert resolve_ports_for_type("PrSink").input("y").type == ValueType.INT

    def test_unknown_type_raises_structural_error(self):
        with pytest.raises(UnknownNodeType):
            resolve_ports("NoSuchType")
        assert isinstance(UnknownNodeType("x"), StructuralError)

    def test_non_fatal_form_degrades_to_no_ports(self):
        assert resolve_ports_or_empty("NoSuchType") == EMPTY_PORTS

    def test_group_type_without_instance_has_no_ports(self):
        assert resolve_ports("Group").is_empty()

    def test_group_exposes_unconnected_child_input(self):
        a = PrSource("A")
        b = PrSink("B")
        c = PrInputOnly("C")
        g = WorkflowNode.create_node("Group", "G", nodes=[c])
        Workflow([a, b, g], [Edge.data("A", "B", "x", "y", id="e1")])

        ports = resolve_ports(g)
        assert [p.property for p in ports.inputs] == ["z"]
        assert ports.inputs[0].node_id == "C"
        assert ports.outputs == ()

    def test_group_hides_ports_connected_by_private_edges(self):
        src = PrSource("S")
        sink = PrSink("K")
        free = PrSink("F")
        g = GroupNode("G", nodes=[src, sink, free], edges=[Edge.data("S", "K", "x", "y", id="e1")])

        ports = resolve_ports(g)
        assert [(p.node_id, p.property) for p in ports.inputs] == [("F", "y")]
        assert ports.outputs == ()

    def test_nested_group_inputs_come_from_descendants_only_once(self):
        inner_child = PrPassThrough("P")
        inner = GroupNode("Inner", nodes=[inner_child])
        outer = GroupNode("Outer", nodes=[inner, PrInputOnly("C")])

        ports = resolve_ports(outer)
        assert [(p.node_id, p.property) for p in ports.inputs] == [
            ("P", "userName"), ("P", "items"), ("C", "z"),
        ]
        assert [(p.node_id, p.property) for p in ports.outputs] == [("P", "result")]

    def test_group_ports_are_recomputed_on_every_call(self):
        g = GroupNode("G", nodes=[PrSink("K")])
        assert len(resolve_ports(g).inputs) == 1

        g.nodes.append(PrSink("K2"))
        assert len(resolve_ports(g).inputs) == 2

    def test_find_port_helpers(self):
        node = PrPassThrough("P")
        assert find_input_port(node, "items").is_multi
        assert not find_input_port(node, "userName").is_multi
        assert find_output_port(node, "result") is not None
        assert find_input_port(node, "missing") is None


class TestNodeMetadata:

    def test_humanize(self):
        assert humanize("userName") == "User Name"
        assert humanize("llm_category") == "Llm Category"
        assert humanize("x") == "X"

    def test_port_labels_are_humanized_or_declared(self):
        meta = resolve_metadata("PrPassThrough")
        assert [p.label for p in meta.inputs] == ["User Name", "Items"]
        assert meta.outputs[0].label == "Result Value"

    def test_instance_port_label_overrides_take_precedence(self):
        node = PrPassThrough("P", port_labels={"userName": "Customer"})
        meta = resolve_metadata(node)
        assert meta.inputs[0].label == "Customer"
        assert meta.inputs[0].property == "userName"

    def test_node_label_drops_ast_suffix(self):
        meta = resolve_metadata("CustomTestAst")
        assert meta.label == "Custom Test"
        assert meta.type == "CustomTestAst"

    def test_multi_flag_is_kept(self):
        meta = resolve_metadata("PrPassThrough")
        assert meta.to_dict()["inputs"][1]["isMulti"] is True

    def test_none_node_raises(self):
        with pytest.raises(StructuralError, match="node is None"):
            resolve_metadata(None)
