from ..core.Node import WorkflowNode, GroupNode, input_port, output_port
from ..core.Types import ValueType

# =========================================================================================
# WORKFLOW NODE TYPES
#
# Each class only declares its port shape. How a node runs is owned by the execution
# engine; the editor needs nothing but the type name and the ports to validate edges.
#
# Inputs are single-connection unless declared multi=True. Outputs always fan out.
# =========================================================================================


@WorkflowNode.register("Group")
class WorkflowGroupNode(GroupNode):
    title = "Group"


@WorkflowNode.register("TextArea")
class TextAreaNode(WorkflowNode):
    title = "Text"
    OUTPUTS = (
        output_port("text", ValueType.STRING),
    )


@WorkflowNode.register("LlmCategory")
class LlmCategoryNode(WorkflowNode):
    title = "LLM Category"
    INPUTS = (
        input_port("text", ValueType.STRING),
        input_port("categories", ValueType.ARRAY),
        input_port("model", ValueType.STRING),
    )
    OUTPUTS = (
        output_port("category", ValueType.STRING),
        output_port("confidence", ValueType.FLOAT),
    )


@WorkflowNode.register("If")
class IfNode(WorkflowNode):
    INPUTS = (
        input_port("value", ValueType.ANY),
        input_port("condition", ValueType.STRING),
    )
    OUTPUTS = (
        output_port("matched", ValueType.ANY),
        output_port("unmatched", ValueType.ANY),
    )


@WorkflowNode.register("Filter")
class FilterNode(WorkflowNode):
    INPUTS = (
        input_port("items", ValueType.ARRAY, multi=True),
        input_port("predicate", ValueType.STRING),
    )
    OUTPUTS = (
        output_port("items", ValueType.ARRAY),
    )


@WorkflowNode.register("Merge")
class MergeNode(WorkflowNode):
    INPUTS = (
        input_port("sources", ValueType.ANY, multi=True),
    )
    OUTPUTS = (
        output_port("merged", ValueType.ARRAY),
    )


@WorkflowNode.register("Loop")
class LoopNode(WorkflowNode):
    INPUTS = (
        input_port("items", ValueType.ARRAY),
    )
    OUTPUTS = (
        output_port("item", ValueType.ANY),
        output_port("index", ValueType.INT),
    )


@WorkflowNode.register("Collector")
class CollectorNode(WorkflowNode):
    INPUTS = (
        input_port("items", ValueType.ANY, multi=True),
    )
    OUTPUTS = (
        output_port("collection", ValueType.ARRAY),
    )


@WorkflowNode.register("CodeExecutor")
class CodeExecutorNode(WorkflowNode):
    title = "Code Executor"
    INPUTS = (
        input_port("code", ValueType.STRING),
        input_port("inputs", ValueType.ANY, multi=True),
    )
    OUTPUTS = (
        output_port("result", ValueType.ANY),
        output_port("logs", ValueType.STRING),
    )


@WorkflowNode.register("AnswerEvaluator")
class AnswerEvaluatorNode(WorkflowNode):
    INPUTS = (
        input_port("question", ValueType.STRING),
        input_port("answer", ValueType.STRING),
    )
    OUTPUTS = (
        output_port("score", ValueType.FLOAT),
        output_port("feedback", ValueType.STRING),
    )


@WorkflowNode.register("Store")
class StoreNode(WorkflowNode):
    INPUTS = (
        input_port("data", ValueType.ANY, multi=True),
        input_port("collection", ValueType.STRING),
    )
    OUTPUTS = (
        output_port("stored", ValueType.INT),
    )
