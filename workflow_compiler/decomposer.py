"""Compile a workflow graph into flat rules for the rule-evaluation engine.

Ticket state is never tracked here. Each node has a state tag
(``wf:<workflow>:state:<node>``) and every transition becomes a rule that
fires while the ticket carries the source tag, swapping it for the target
tag. Cycles need no special handling: each transition is compiled once,
independently of the others.
"""

from __future__ import annotations

import logging

from workflow_compiler.models import (
    ActionData,
    Condition,
    ConditionData,
    DelayData,
    EndData,
    Node,
    Rule,
    RuleAction,
    RuleConditions,
    RuleType,
    StateData,
    Transition,
    TriggerData,
    WorkflowGraph,
)

logger = logging.getLogger(__name__)

# Prefix of every workflow-generated rule id; the sync layer partitions on it.
WF_RULE_PREFIX = "wf-"

# Operators absent from this table pass through unchanged on a "no" branch.
OPERATOR_NEGATIONS: dict[str, str] = {
    "is": "is_not",
    "is_not": "is",
    "equals": "not_equals",
    "not_equals": "equals",
    "contains": "not_contains",
    "not_contains": "contains",
    "greater_than": "less_than",
    "less_than": "greater_than",
    "is_empty": "is_not_empty",
    "is_not_empty": "is_empty",
    "in": "not_in",
    "not_in": "in",
}

YES_BRANCHES = frozenset({"yes", "true"})
NO_BRANCHES = frozenset({"no", "false"})


def state_tag(workflow_id: str, node_id: str) -> str:
    """Return the ticket tag marking membership of ``node_id``."""
    return f"wf:{workflow_id}:state:{node_id}"


def rule_prefix(workflow_id: str) -> str:
    """Return the id prefix shared by every rule compiled from a workflow."""
    return f"{WF_RULE_PREFIX}{workflow_id}-"


def make_rule_id(workflow_id: str, suffix: str) -> str:
    return f"{rule_prefix(workflow_id)}{suffix}"


def negate_operator(operator: str) -> str:
    return OPERATOR_NEGATIONS.get(operator, operator)


def node_label(node: Node | None) -> str:
    """Return the human-readable label used in rule names and messages."""
    if node is None:
        return "(unknown)"
    data = node.data
    if isinstance(data, TriggerData):
        return "Trigger"
    if isinstance(data, StateData):
        return data.label or "State"
    if isinstance(data, ConditionData):
        return "Condition"
    if isinstance(data, ActionData):
        return "Action"
    if isinstance(data, DelayData):
        return "Delay"
    if isinstance(data, EndData):
        return "End"
    return node.type.value  # pragma: no cover


def minutes_to_hours(minutes: int) -> int | float:
    """Convert minutes to hours, keeping whole hours integral."""
    hours = minutes / 60
    return int(hours) if hours.is_integer() else hours


def _has_tag(workflow_id: str, node_id: str) -> Condition:
    return Condition(field="tags", operator="contains", value=state_tag(workflow_id, node_id))


def _branch_conditions(data: ConditionData, branch_key: str | None) -> list[Condition]:
    if branch_key in YES_BRANCHES:
        return list(data.conditions)
    if branch_key in NO_BRANCHES:
        return [
            Condition(field=c.field, operator=negate_operator(c.operator), value=c.value)
            for c in data.conditions
        ]
    return []


def _delay_conditions(data: DelayData) -> list[Condition]:
    if data.type == "time" and data.minutes:
        return [
            Condition(
                field="hours_since_updated",
                operator="greater_than",
                value=minutes_to_hours(data.minutes),
            )
        ]
    if data.type == "event" and data.event:
        return [Condition(field="event", operator="is", value=data.event)]
    return []


def _entry_rules(workflow: WorkflowGraph, entry_id: str, trigger: TriggerData) -> list[Rule]:
    rules: list[Rule] = []

    for transition in workflow.outgoing(entry_id):
        to_node = workflow.nodes.get(transition.to_node_id)
        if to_node is None:
            continue

        conditions: list[Condition] = []
        if trigger.event:
            conditions.append(Condition(field="event", operator="is", value=trigger.event))
        conditions.extend(trigger.conditions)
        conditions.extend(transition.conditions)

        actions = [
            *transition.actions,
            RuleAction(type="add_tag", value=state_tag(workflow.id, to_node.id)),
        ]

        rules.append(
            Rule(
                id=make_rule_id(workflow.id, f"entry-{transition.id}"),
                type=RuleType.TRIGGER,
                name=f"[WF] {workflow.name}: Entry → {node_label(to_node)}",
                enabled=workflow.enabled,
                conditions=RuleConditions(all=conditions),
                actions=actions,
            )
        )
    return rules


def _transition_rule(workflow: WorkflowGraph, transition: Transition) -> Rule | None:
    from_node = workflow.nodes.get(transition.from_node_id)
    to_node = workflow.nodes.get(transition.to_node_id)
    if from_node is None or to_node is None:
        return None

    conditions = [_has_tag(workflow.id, from_node.id)]
    rule_type = RuleType.TRIGGER

    source = from_node.data
    if isinstance(source, ConditionData):
        conditions.extend(_branch_conditions(source, transition.branch_key))
    elif isinstance(source, DelayData):
        conditions.extend(_delay_conditions(source))
        if source.type == "time":
            rule_type = RuleType.AUTOMATION

    conditions.extend(transition.conditions)

    actions = [
        *transition.actions,
        RuleAction(type="remove_tag", value=state_tag(workflow.id, from_node.id)),
        RuleAction(type="add_tag", value=state_tag(workflow.id, to_node.id)),
    ]

    return Rule(
        id=make_rule_id(workflow.id, f"t-{transition.id}"),
        type=rule_type,
        name=f"[WF] {workflow.name}: {node_label(from_node)} → {node_label(to_node)}",
        enabled=workflow.enabled,
        conditions=RuleConditions(all=conditions),
        actions=actions,
    )


def _state_rules(workflow: WorkflowGraph, node_id: str, state: StateData) -> list[Rule]:
    rules: list[Rule] = []

    if state.on_enter_actions:
        rules.append(
            Rule(
                id=make_rule_id(workflow.id, f"enter-{node_id}"),
                type=RuleType.TRIGGER,
                name=f"[WF] {workflow.name}: Enter {state.label}",
                enabled=workflow.enabled,
                conditions=RuleConditions(all=[_has_tag(workflow.id, node_id)]),
                actions=list(state.on_enter_actions),
            )
        )

    if state.sla_minutes:
        rules.append(
            Rule(
                id=make_rule_id(workflow.id, f"sla-{node_id}"),
                type=RuleType.SLA,
                name=f"[WF] {workflow.name}: SLA breach for {state.label}",
                enabled=workflow.enabled,
                conditions=RuleConditions(
                    all=[
                        _has_tag(workflow.id, node_id),
                        Condition(
                            field="hours_since_updated",
                            operator="greater_than",
                            value=minutes_to_hours(state.sla_minutes),
                        ),
                    ]
                ),
                actions=[RuleAction(type="escalate")],
            )
        )
    return rules


def decompose_workflow(workflow: WorkflowGraph) -> list[Rule]:
    """Compile a workflow graph into an ordered list of rules.

    Pure and deterministic: the same graph always yields the same rules in
    the same order. Transitions with unresolvable endpoints are skipped so a
    partially broken graph still compiles to whatever rules are derivable.
    Every rule inherits ``workflow.enabled``.
    """
    rules: list[Rule] = []

    entry = workflow.entry_node
    trigger = entry.data if entry is not None and isinstance(entry.data, TriggerData) else None
    if trigger is not None:
        rules.extend(_entry_rules(workflow, workflow.entry_node_id, trigger))

    for transition in workflow.transitions:
        if trigger is not None and transition.from_node_id == workflow.entry_node_id:
            continue
        rule = _transition_rule(workflow, transition)
        if rule is None:
            logger.debug(
                "Skipping transition %s of workflow %s: unresolved endpoint",
                transition.id,
                workflow.id,
            )
            continue
        rules.append(rule)

    for node in workflow.nodes.values():
        if isinstance(node.data, StateData):
            rules.extend(_state_rules(workflow, node.id, node.data))

    logger.debug("Decomposed workflow %s into %d rule(s)", workflow.id, len(rules))
    return rules
