"""workflow_compiler: compile visual ticket workflows into automation rules."""

from workflow_compiler.decomposer import (
    WF_RULE_PREFIX,
    decompose_workflow,
    negate_operator,
    node_label,
    rule_prefix,
    state_tag,
)
from workflow_compiler.exceptions import (
    WorkflowDefinitionError,
    WorkflowError,
    WorkflowSchemaError,
    WorkflowSyncError,
)
from workflow_compiler.models import (
    ActionData,
    Condition,
    ConditionData,
    DelayData,
    EndData,
    Node,
    NodeType,
    Position,
    Rule,
    RuleAction,
    RuleConditions,
    RuleType,
    StateData,
    Transition,
    TriggerData,
    WorkflowGraph,
)
from workflow_compiler.optimizer import (
    ChangeType,
    OptimizeChange,
    OptimizeResult,
    optimize_workflow,
)
from workflow_compiler.schema import (
    export_workflow,
    load_export,
    parse_workflow,
    rule_to_dict,
    validate_schema,
    workflow_to_dict,
)
from workflow_compiler.sync import (
    InMemoryRuleRepository,
    InMemoryWorkflowRepository,
    RuleRepository,
    SyncResult,
    WorkflowRepository,
    WorkflowRuleSync,
)
from workflow_compiler.templates import WORKFLOW_TEMPLATES
from workflow_compiler.validator import (
    Severity,
    ValidationIssue,
    ValidationResult,
    validate_workflow,
)

__version__ = "0.1.0"

__all__ = [
    # Compiler
    "WF_RULE_PREFIX",
    "decompose_workflow",
    "negate_operator",
    "node_label",
    "rule_prefix",
    "state_tag",
    "optimize_workflow",
    "validate_workflow",
    # Models
    "ActionData",
    "ChangeType",
    "Condition",
    "ConditionData",
    "DelayData",
    "EndData",
    "Node",
    "NodeType",
    "OptimizeChange",
    "OptimizeResult",
    "Position",
    "Rule",
    "RuleAction",
    "RuleConditions",
    "RuleType",
    "Severity",
    "StateData",
    "Transition",
    "TriggerData",
    "ValidationIssue",
    "ValidationResult",
    "WorkflowGraph",
    # Schema
    "export_workflow",
    "load_export",
    "parse_workflow",
    "rule_to_dict",
    "validate_schema",
    "workflow_to_dict",
    # Sync
    "InMemoryRuleRepository",
    "InMemoryWorkflowRepository",
    "RuleRepository",
    "SyncResult",
    "WorkflowRepository",
    "WorkflowRuleSync",
    # Templates
    "WORKFLOW_TEMPLATES",
    # Exceptions
    "WorkflowDefinitionError",
    "WorkflowError",
    "WorkflowSchemaError",
    "WorkflowSyncError",
    # Version
    "__version__",
]
