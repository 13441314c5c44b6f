from enum import Enum, auto


class PortMultiplicity(Enum):
    SINGLE = auto()
    MULTI = auto()


# Capability tag a node class carries so the resolver never has to
# special-case a type name.
class PortMode(Enum):
    STATIC = auto()     # ports declared on the class, looked up per type
    COMPUTED = auto()   # ports derived from the instance's nested state


class EdgeKind(Enum):
    DATA = "data"
    CONTROL = "control"


# Merge semantics of a data edge feeding a multi input
class EdgeMode(Enum):
    MERGE = "merge"
    ZIP = "zip"
    COMBINE_LATEST = "combineLatest"
    WITH_LATEST_FROM = "withLatestFrom"


class Containment(Enum):
    PARENT = "parent"


class ValueType(Enum):
    ANY = "any"
    INT = "int"
    FLOAT = "float"
    STRING = "string"
    BOOL = "bool"
    DICT = "dict"
    ARRAY = "array"
    OBJECT = "object"
    BINARY = "binary"


# Renderer-facing type names
GROUP_NODE_TYPE = "GroupNode"
DATA_EDGE_TYPE = "workflow-data-edge"
CONTROL_EDGE_TYPE = "workflow-control-edge"
