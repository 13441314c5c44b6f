"""
Error taxonomy for the synchronization engine.

StructuralError and its subclasses indicate a producer bug upstream of the
engine (a canvas-only node, an edge nobody annotated, an unregistered type).
They are always raised to the caller and never repaired silently.

Validation failures are not exceptions: they are reported as lists of
messages (see EdgeValidator.ValidationResult). Edges pruned while flattening
are reported through Flattener.PruneReport.
"""


class StructuralError(ValueError):
    pass


class UnknownNodeType(StructuralError):
    def __init__(self, type_name: str):
        super().__init__(f"Unknown node type '{type_name}'")
        self.type_name = type_name


class MissingPayload(StructuralError):
    def __init__(self, node_id: str):
        super().__init__(f"Flat node '{node_id}' carries no workflow node payload")
        self.node_id = node_id


class MissingEdgeData(StructuralError):
    def __init__(self, edge_id: str):
        super().__init__(f"Edge data is required (flat edge '{edge_id}')")
        self.edge_id = edge_id


class UnknownEdgeKind(StructuralError):
    def __init__(self, edge_id: str, marker):
        super().__init__(f"Unknown edge kind '{marker}' on flat edge '{edge_id}'")
        self.edge_id = edge_id
        self.marker = marker


class DuplicateNodeId(StructuralError):
    def __init__(self, node_id: str):
        super().__init__(f"Node with id '{node_id}' already exists in the workflow")
        self.node_id = node_id


class DuplicateEdgeId(StructuralError):
    def __init__(self, edge_id: str):
        super().__init__(f"Edge with id '{edge_id}' already exists in the workflow")
        self.edge_id = edge_id


class CrossScopeEdge(StructuralError):
    def __init__(self, edge_id: str, from_node_id: str, to_node_id: str):
        super().__init__(
            f"Edge '{edge_id}' crosses a group boundary ({from_node_id} -> {to_node_id})"
        )
        self.edge_id = edge_id


class NodeNotFound(StructuralError):
    def __init__(self, node_id: str):
        super().__init__(f"Node with id '{node_id}' does not exist in the workflow")
        self.node_id = node_id


class EdgeNotFound(StructuralError):
    def __init__(self, edge_id: str):
        super().__init__(f"Edge with id '{edge_id}' does not exist in the workflow")
        self.edge_id = edge_id
