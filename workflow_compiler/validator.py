"""Structural validation of workflow graphs.

Problems are reported as data: errors block activation, warnings are
advisory. Nothing in this module raises for a malformed graph.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from workflow_compiler.decomposer import node_label
from workflow_compiler.models import ActionData, NodeType, WorkflowGraph

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    """Severity of a validation issue."""

    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class ValidationIssue:
    """A single problem found in a workflow graph."""

    message: str
    severity: Severity
    node_id: str | None = None


@dataclass
class ValidationResult:
    """Outcome of validating a workflow graph."""

    errors: list[ValidationIssue] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        """True when no issue has error severity; warnings never block."""
        return not any(e.severity == Severity.ERROR for e in self.errors)

    @property
    def error_messages(self) -> list[str]:
        return [e.message for e in self.errors if e.severity == Severity.ERROR]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [e for e in self.errors if e.severity == Severity.WARNING]


def validate_workflow(workflow: WorkflowGraph) -> ValidationResult:
    """Check a workflow graph for structural problems.

    Checks, in order:
    - The entry node id is set and resolves to a node.
    - Every transition endpoint resolves to a node.
    - Every node is the entry node or an endpoint of some transition.
    - A trigger entry node has at least one outgoing transition.
    - The graph has an end node (warning).
    - Per node: dead ends, missing incoming transitions, condition nodes
      with fewer than two branches, action nodes without actions (warnings).
    """
    issues: list[ValidationIssue] = []

    def error(message: str, node_id: str | None = None) -> None:
        issues.append(ValidationIssue(message, Severity.ERROR, node_id))

    def warning(message: str, node_id: str | None = None) -> None:
        issues.append(ValidationIssue(message, Severity.WARNING, node_id))

    entry_id = workflow.entry_node_id
    if not entry_id:
        error("Workflow must have an entryNodeId")
    elif entry_id not in workflow.nodes:
        error(f'entryNodeId "{entry_id}" does not reference a valid node')

    for t in workflow.transitions:
        if t.from_node_id not in workflow.nodes:
            error(f'Transition "{t.id}" references unknown fromNodeId "{t.from_node_id}"')
        if t.to_node_id not in workflow.nodes:
            error(f'Transition "{t.id}" references unknown toNodeId "{t.to_node_id}"')

    referenced = {entry_id}
    for t in workflow.transitions:
        referenced.add(t.from_node_id)
        referenced.add(t.to_node_id)
    for node_id in workflow.nodes:
        if node_id not in referenced:
            error(f'Node "{node_id}" is orphaned (not connected by any transition)', node_id)

    entry_node = workflow.entry_node
    if entry_node is not None and entry_node.type == NodeType.TRIGGER:
        if not workflow.outgoing(entry_id):
            error("Trigger node must have at least one outgoing transition", entry_id)

    if not workflow.end_nodes:
        warning("Workflow has no end node; tickets may stay in progress forever")

    for node_id, node in workflow.nodes.items():
        outgoing = workflow.outgoing(node_id)
        label = node_label(node)

        if node.type != NodeType.END and not outgoing:
            warning(f'"{label}" has no outgoing transitions', node_id)

        if node_id != entry_id and not workflow.incoming(node_id):
            warning(f'"{label}" has no incoming transitions', node_id)

        if node.type == NodeType.CONDITION and len(outgoing) < 2:
            warning(f'Condition "{label}" should have at least 2 branches', node_id)

        if isinstance(node.data, ActionData) and not node.data.actions:
            warning("Action node has no actions defined", node_id)

    result = ValidationResult(errors=issues)
    logger.debug(
        "Validated workflow %s: %d error(s), %d warning(s)",
        workflow.id,
        len(result.error_messages),
        len(result.warnings),
    )
    return result
