from typing import Any, Dict, List, NamedTuple, Optional, Tuple, Type, Union
import logging
import re

from .Types import PortMode
from .GraphPrimitives import Port, PortSet, EMPTY_PORTS
from .Node import WorkflowNode
from .Errors import StructuralError, UnknownNodeType


logger = logging.getLogger(__name__)

NodeRef = Union[str, Type[WorkflowNode], WorkflowNode]

_SUFFIXES = ("Node", "Ast")


class NodeMetadata(NamedTuple):
    type: str
    label: str
    inputs: Tuple[Port, ...]
    outputs: Tuple[Port, ...]

    def to_dict(self) -> Dict[str, Any]:
        def port_dict(port: Port) -> Dict[str, Any]:
            return {
                "property": port.property,
                "label": port.label,
                "type": port.type.value,
                "isMulti": port.is_multi,
            }
        return {
            "type": self.type,
            "label": self.label,
            "inputs": [port_dict(p) for p in self.inputs],
            "outputs": [port_dict(p) for p in self.outputs],
        }


def humanize(name: str) -> str:
    """``userName`` -> ``User Name``, ``llm_category`` -> ``Llm Category``."""
    spaced = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", name.replace("_", " "))
    spaced = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1 \2", spaced)
    return " ".join(word[:1].upper() + word[1:] for word in spaced.split())


def _split(node: NodeRef) -> Tuple[Type[WorkflowNode], Optional[WorkflowNode]]:
    if node is None:
        raise StructuralError("node is None")
    if isinstance(node, WorkflowNode):
        return type(node), node
    if isinstance(node, str):
        return WorkflowNode.resolve_type_constructor(node), None
    if isinstance(node, type) and issubclass(node, WorkflowNode):
        return node, None
    raise StructuralError(f"Cannot resolve ports for {node!r}")


def resolve_ports(node: NodeRef) -> PortSet:
    """
    Ports of a node type name, a registered class or a live node.

    Static-port classes answer from their declarations. Computed-port classes
    (groups) derive their ports from the instance on every call; without an
    instance there is nothing to derive from and the set is empty.
    """
    node_class, instance = _split(node)

    if node_class.port_mode == PortMode.STATIC:
        return node_class.declared_ports()

    if instance is None:
        return EMPTY_PORTS
    return instance.compute_ports(resolve_ports_or_empty)


def resolve_ports_for_type(type_name: str) -> PortSet:
    return resolve_ports(type_name)


def resolve_ports_or_empty(node: NodeRef) -> PortSet:
    try:
        return resolve_ports(node)
    except UnknownNodeType as e:
        logger.warning("%s, treating node as portless", e)
        return EMPTY_PORTS


def find_input_port(node: NodeRef, property: Optional[str]) -> Optional[Port]:
    return resolve_ports_or_empty(node).input(property)


def find_output_port(node: NodeRef, property: Optional[str]) -> Optional[Port]:
    return resolve_ports_or_empty(node).output(property)


def node_label(node_class: Type[WorkflowNode], instance: Optional[WorkflowNode] = None) -> str:
    if instance is not None and instance.label:
        return instance.label
    if node_class.title:
        return node_class.title
    name = node_class.node_type or node_class.__name__
    for suffix in _SUFFIXES:
        if name.endswith(suffix) and name != suffix:
            name = name[: -len(suffix)]
            break
    return humanize(name)


def resolve_metadata(node: NodeRef) -> NodeMetadata:
    node_class, instance = _split(node)
    ports = resolve_ports(node)
    overrides: Dict[str, str] = instance.port_labels if instance is not None else {}

    def labelled(port_list: Tuple[Port, ...]) -> Tuple[Port, ...]:
        result: List[Port] = []
        for port in port_list:
            label = overrides.get(port.property) or port.label or humanize(port.property)
            result.append(port._replace(label=label))
        return tuple(result)

    return NodeMetadata(
        type=node_class.node_type or node_class.__name__,
        label=node_label(node_class, instance),
        inputs=labelled(ports.inputs),
        outputs=labelled(ports.outputs),
    )
