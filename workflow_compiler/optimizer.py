"""Deterministic auto-repair for workflow graphs.

Five fixes run in a fixed order, each one free to rely on the output of the
ones before it:

1. add a missing end node
2. connect dead-end nodes to the end node
3. assign keyword-based default SLAs to state nodes
4. add an escalation state for SLA breaches
5. complete condition nodes that lack a yes/no branch

A final step links an end node added by fix 1 when none of the later fixes
did, so the repaired graph never gains an orphan.

The input graph is never mutated.
"""

from __future__ import annotations

import copy
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

from workflow_compiler.decomposer import node_label
from workflow_compiler.models import (
    EndData,
    Node,
    NodeType,
    Position,
    StateData,
    Transition,
    WorkflowGraph,
)

logger = logging.getLogger(__name__)

IdFactory = Callable[[], str]
Clock = Callable[[], datetime]

# Keyword -> SLA minutes. Matched in order against the lower-cased label;
# the first substring hit wins.
SLA_DEFAULTS: dict[str, int] = {
    "new": 60,
    "triage": 60,
    "progress": 240,
    "waiting": 480,
    "escalat": 120,
}
DEFAULT_SLA_MINUTES = 240

ESCALATION_KEYWORD = "escalat"


class ChangeType(str, Enum):
    """Kinds of repair the optimizer can apply."""

    ADD_END_NODE = "add_end_node"
    CONNECT_DEAD_END = "connect_dead_end"
    CONNECT_END_NODE = "connect_end_node"
    ADD_SLA = "add_sla"
    ADD_ESCALATION = "add_escalation"
    FIX_BRANCH = "fix_branch"


@dataclass(frozen=True)
class OptimizeChange:
    """A single repair applied to the graph."""

    type: ChangeType
    description: str
    node_id: str | None = None


@dataclass
class OptimizeResult:
    workflow: WorkflowGraph
    changes: list[OptimizeChange] = field(default_factory=list)


def _uuid4() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _first_end_node(workflow: WorkflowGraph) -> Node | None:
    return next((n for n in workflow.nodes.values() if n.type == NodeType.END), None)


def match_sla_minutes(label: str) -> int:
    """Return the default SLA for a state label by keyword substring match."""
    lower = label.lower()
    for keyword, minutes in SLA_DEFAULTS.items():
        if keyword in lower:
            return minutes
    return DEFAULT_SLA_MINUTES


class _Optimizer:
    """Applies the repairs to a private copy of a workflow."""

    def __init__(self, workflow: WorkflowGraph, id_factory: IdFactory) -> None:
        self.workflow = workflow
        self.new_id = id_factory
        self.changes: list[OptimizeChange] = []
        self.added_end_id: str | None = None

    def record(self, change_type: ChangeType, description: str, node_id: str | None) -> None:
        self.changes.append(OptimizeChange(change_type, description, node_id))
        logger.debug("Workflow %s: %s", self.workflow.id, description)

    def add_missing_end_node(self) -> None:
        wf = self.workflow
        if wf.end_nodes:
            return

        max_y = max([0, *(n.position.y for n in wf.nodes.values())])
        end_id = self.new_id()
        wf.nodes[end_id] = Node(
            id=end_id,
            data=EndData(label="Closed"),
            position=Position(x=300, y=max_y + 140),
        )
        self.added_end_id = end_id
        self.record(ChangeType.ADD_END_NODE, "Added missing end node", end_id)

    def connect_dead_ends(self) -> None:
        wf = self.workflow
        end_node = _first_end_node(wf)
        if end_node is None:
            return

        for node_id, node in list(wf.nodes.items()):
            if node.type == NodeType.END or wf.outgoing(node_id):
                continue
            wf.transitions.append(
                Transition(
                    id=self.new_id(),
                    from_node_id=node_id,
                    to_node_id=end_node.id,
                    label="Close",
                )
            )
            self.record(
                ChangeType.CONNECT_DEAD_END,
                f'Connected dead-end "{node_label(node)}" to end node',
                node_id,
            )

    def add_default_slas(self) -> None:
        for node_id, node in self.workflow.nodes.items():
            if not isinstance(node.data, StateData) or node.data.sla_minutes:
                continue
            minutes = match_sla_minutes(node.data.label)
            node.data.sla_minutes = minutes
            self.record(
                ChangeType.ADD_SLA,
                f'Set {minutes}m SLA on "{node.data.label}"',
                node_id,
            )

    def add_escalation_path(self) -> None:
        wf = self.workflow
        states = [n for n in wf.nodes.values() if isinstance(n.data, StateData)]
        if not any(n.data.sla_minutes for n in states):
            return
        if any(ESCALATION_KEYWORD in n.data.label.lower() for n in states):
            return

        end_node = _first_end_node(wf)
        if end_node is None:
            return

        esc_id = self.new_id()
        wf.nodes[esc_id] = Node(
            id=esc_id,
            data=StateData(label="Escalated", color="bg-red-500"),
            position=Position(x=end_node.position.x + 200, y=end_node.position.y - 70),
        )

        for node in states:
            if not node.data.sla_minutes:
                continue
            wf.transitions.append(
                Transition(
                    id=self.new_id(),
                    from_node_id=node.id,
                    to_node_id=esc_id,
                    label="SLA Breach",
                )
            )

        wf.transitions.append(
            Transition(
                id=self.new_id(),
                from_node_id=esc_id,
                to_node_id=end_node.id,
                label="Resolve",
            )
        )
        self.record(
            ChangeType.ADD_ESCALATION,
            "Added escalation path for SLA breach handling",
            esc_id,
        )

    def fix_incomplete_branches(self) -> None:
        wf = self.workflow
        end_node = _first_end_node(wf)
        if end_node is None:
            return

        for node_id, node in wf.nodes.items():
            if node.type != NodeType.CONDITION:
                continue
            outgoing = wf.outgoing(node_id)
            if len(outgoing) >= 2:
                continue

            existing_keys = [t.branch_key for t in outgoing if t.branch_key]
            missing_key = "no" if "yes" in existing_keys else "yes"
            missing_label = missing_key.capitalize()

            wf.transitions.append(
                Transition(
                    id=self.new_id(),
                    from_node_id=node_id,
                    to_node_id=end_node.id,
                    label=missing_label,
                    branch_key=missing_key,
                )
            )
            self.record(
                ChangeType.FIX_BRANCH,
                f'Added missing "{missing_label}" branch to condition node',
                node_id,
            )

    def connect_added_end_node(self) -> None:
        """Link a synthesized end node that none of the other fixes reached.

        Happens when every node already has an outgoing transition and no
        escalation path was added. The lowest state node is preferred, then
        any other non-entry node, then the entry node itself.
        """
        wf = self.workflow
        end_id = self.added_end_id
        if end_id is None or end_id not in wf.nodes or wf.incoming(end_id):
            return

        candidates = [
            n for n in wf.nodes.values() if n.id != end_id and n.type != NodeType.END
        ]
        if not candidates:
            return
        source = max(
            candidates,
            key=lambda n: (
                isinstance(n.data, StateData),
                n.id != wf.entry_node_id,
                n.position.y,
            ),
        )

        wf.transitions.append(
            Transition(
                id=self.new_id(),
                from_node_id=source.id,
                to_node_id=end_id,
                label="Close",
            )
        )
        self.record(
            ChangeType.CONNECT_END_NODE,
            f'Connected "{node_label(source)}" to new end node',
            source.id,
        )


def optimize_workflow(
    workflow: WorkflowGraph,
    *,
    id_factory: IdFactory | None = None,
    clock: Clock | None = None,
) -> OptimizeResult:
    """Repair a workflow graph so that it passes structural validation.

    Args:
        workflow: The graph to repair. It is deep-copied, never mutated.
        id_factory: Produces ids for synthesized nodes and transitions
            (random UUID4 strings by default).
        clock: Produces the new ``updated_at`` timestamp (UTC now by default).

    Returns:
        An OptimizeResult holding the repaired copy, with ``version`` bumped,
        and the list of changes applied in order.
    """
    optimizer = _Optimizer(copy.deepcopy(workflow), id_factory or _uuid4)

    optimizer.add_missing_end_node()
    optimizer.connect_dead_ends()
    optimizer.add_default_slas()
    optimizer.add_escalation_path()
    optimizer.fix_incomplete_branches()
    optimizer.connect_added_end_node()

    repaired = optimizer.workflow
    repaired.updated_at = (clock or _utcnow)()
    repaired.version += 1

    logger.debug(
        "Optimized workflow %s: %d change(s), now version %d",
        repaired.id,
        len(optimizer.changes),
        repaired.version,
    )
    return OptimizeResult(workflow=repaired, changes=optimizer.changes)
