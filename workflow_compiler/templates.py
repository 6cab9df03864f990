"""Starter workflows offered by the authoring tool.

Each factory returns a complete, disabled workflow at version 1 with
pre-positioned nodes.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Callable

from workflow_compiler.models import (
    ActionData,
    Condition,
    ConditionData,
    EndData,
    Node,
    Position,
    RuleAction,
    StateData,
    Transition,
    TriggerData,
    WorkflowGraph,
)

IdFactory = Callable[[], str]


def _uuid4() -> str:
    return str(uuid.uuid4())


def _template(
    name: str,
    description: str,
    nodes: list[Node],
    transitions: list[Transition],
    entry_node_id: str,
    new_id: IdFactory,
) -> WorkflowGraph:
    now = datetime.now(timezone.utc)
    return WorkflowGraph(
        id=new_id(),
        name=name,
        description=description,
        nodes={n.id: n for n in nodes},
        transitions=transitions,
        entry_node_id=entry_node_id,
        enabled=False,
        version=1,
        created_at=now,
        updated_at=now,
    )


def simple_lifecycle(id_factory: IdFactory | None = None) -> WorkflowGraph:
    """Trigger -> New -> Triage -> In Progress <-> Waiting -> Resolved -> Closed."""
    new_id = id_factory or _uuid4
    trigger, new, triage, in_progress, waiting, resolved, closed = (
        new_id() for _ in range(7)
    )

    nodes = [
        Node(trigger, TriggerData(event="create"), Position(300, 40)),
        Node(new, StateData(label="New", color="bg-blue-500"), Position(300, 140)),
        Node(triage, StateData(label="Triage", color="bg-amber-500"), Position(300, 240)),
        Node(
            in_progress,
            StateData(label="In Progress", color="bg-emerald-500"),
            Position(300, 340),
        ),
        Node(waiting, StateData(label="Waiting", color="bg-purple-500"), Position(300, 440)),
        Node(resolved, StateData(label="Resolved", color="bg-teal-500"), Position(300, 540)),
        Node(closed, EndData(label="Closed"), Position(300, 640)),
    ]
    transitions = [
        Transition(new_id(), trigger, new),
        Transition(new_id(), new, triage, label="Review"),
        Transition(new_id(), triage, in_progress, label="Assign"),
        Transition(new_id(), in_progress, waiting, label="Waiting on customer"),
        Transition(new_id(), waiting, in_progress, label="Customer replied"),
        Transition(new_id(), in_progress, resolved, label="Resolve"),
        Transition(new_id(), resolved, closed, label="Close"),
        Transition(new_id(), resolved, in_progress, label="Reopen"),
    ]
    return _template(
        "Simple Lifecycle",
        "Standard ticket lifecycle: New → Triage → In Progress → Waiting → Resolved → Closed",
        nodes,
        transitions,
        trigger,
        new_id,
    )


def escalation_pipeline(id_factory: IdFactory | None = None) -> WorkflowGraph:
    """Route urgent tickets to immediate assignment and the rest to a queue."""
    new_id = id_factory or _uuid4
    trigger, check_priority, immediate, queue, in_progress, resolved = (
        new_id() for _ in range(6)
    )

    nodes = [
        Node(trigger, TriggerData(event="create"), Position(300, 40)),
        Node(
            check_priority,
            ConditionData(
                logic="any",
                conditions=[Condition(field="priority", operator="is", value="urgent")],
            ),
            Position(300, 160),
        ),
        Node(
            immediate,
            ActionData(
                actions=[
                    RuleAction(type="set_priority", value="urgent"),
                    RuleAction(type="add_tag", value="escalated"),
                ]
            ),
            Position(120, 300),
        ),
        Node(queue, StateData(label="Queue", color="bg-zinc-400"), Position(480, 300)),
        Node(
            in_progress,
            StateData(label="In Progress", color="bg-emerald-500"),
            Position(300, 440),
        ),
        Node(resolved, EndData(label="Resolved"), Position(300, 560)),
    ]
    transitions = [
        Transition(new_id(), trigger, check_priority),
        Transition(new_id(), check_priority, immediate, label="Urgent", branch_key="yes"),
        Transition(new_id(), check_priority, queue, label="Normal", branch_key="no"),
        Transition(new_id(), immediate, in_progress),
        Transition(new_id(), queue, in_progress, label="Pick up"),
        Transition(new_id(), in_progress, resolved, label="Resolve"),
    ]
    return _template(
        "Escalation Pipeline",
        "Route urgent tickets to immediate assignment, others to a queue",
        nodes,
        transitions,
        trigger,
        new_id,
    )


def sla_driven(id_factory: IdFactory | None = None) -> WorkflowGraph:
    """Trigger -> New (1h SLA) -> In Progress (4h SLA) -> Escalated -> Resolved."""
    new_id = id_factory or _uuid4
    trigger, new, in_progress, escalated, resolved = (new_id() for _ in range(5))

    nodes = [
        Node(trigger, TriggerData(event="create"), Position(300, 40)),
        Node(
            new,
            StateData(label="New", color="bg-blue-500", sla_minutes=60),
            Position(300, 160),
        ),
        Node(
            in_progress,
            StateData(label="In Progress", color="bg-emerald-500", sla_minutes=240),
            Position(300, 300),
        ),
        Node(escalated, StateData(label="Escalated", color="bg-red-500"), Position(300, 440)),
        Node(resolved, EndData(label="Resolved"), Position(300, 560)),
    ]
    transitions = [
        Transition(new_id(), trigger, new),
        Transition(new_id(), new, in_progress, label="Assign"),
        Transition(new_id(), in_progress, escalated, label="Escalate"),
        Transition(new_id(), in_progress, resolved, label="Resolve"),
        Transition(new_id(), escalated, resolved, label="Resolve"),
    ]
    return _template(
        "SLA-Driven",
        "Ticket lifecycle with SLA timers: 1h for triage, 4h for resolution",
        nodes,
        transitions,
        trigger,
        new_id,
    )


WORKFLOW_TEMPLATES: dict[str, Callable[..., WorkflowGraph]] = {
    "simple-lifecycle": simple_lifecycle,
    "escalation-pipeline": escalation_pipeline,
    "sla-driven": sla_driven,
}
