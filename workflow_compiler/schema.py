"""JSON schema for workflow documents, parsing and serialisation utilities."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import jsonschema

from workflow_compiler.exceptions import (
    WorkflowDefinitionError,
    WorkflowSchemaError,
)
from workflow_compiler.models import (
    ActionData,
    Condition,
    ConditionData,
    DelayData,
    EndData,
    Node,
    NodeData,
    NodeType,
    Position,
    Rule,
    RuleAction,
    StateData,
    Transition,
    TriggerData,
    WorkflowGraph,
)
from workflow_compiler.optimizer import OptimizeResult
from workflow_compiler.validator import ValidationResult

EXPORT_FORMAT = "cliaas-workflow-v1"

# Engine-specific action keys carried through ``RuleAction.extra``.
ACTION_EXTRA_KEYS = ("field", "channel", "to", "template", "url", "method", "body")

CONDITION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "field": {"type": "string", "minLength": 1},
        "operator": {
            "type": "string",
            "enum": sorted(Condition.OPERATORS),
        },
        "value": {},
    },
    "required": ["field", "operator"],
    "additionalProperties": False,
}

ACTION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "type": {"type": "string", "minLength": 1},
        "value": {},
        **{key: {"type": "string"} for key in ACTION_EXTRA_KEYS},
    },
    "required": ["type"],
    "additionalProperties": False,
}

CONDITION_LIST_SCHEMA: dict[str, Any] = {"type": "array", "items": CONDITION_SCHEMA}
ACTION_LIST_SCHEMA: dict[str, Any] = {"type": "array", "items": ACTION_SCHEMA}

NODE_DATA_SCHEMAS: dict[NodeType, dict[str, Any]] = {
    NodeType.TRIGGER: {
        "type": "object",
        "properties": {
            "event": {"type": "string"},
            "conditions": CONDITION_LIST_SCHEMA,
        },
        "required": ["event"],
    },
    NodeType.STATE: {
        "type": "object",
        "properties": {
            "label": {"type": "string"},
            "color": {"type": "string"},
            "slaMinutes": {"type": "integer", "minimum": 0},
            "onEnterActions": ACTION_LIST_SCHEMA,
            "mandatoryFields": {"type": "array", "items": {"type": "string"}},
        },
        "required": ["label"],
    },
    NodeType.CONDITION: {
        "type": "object",
        "properties": {
            "logic": {"type": "string", "enum": ["all", "any"]},
            "conditions": CONDITION_LIST_SCHEMA,
        },
        "required": ["conditions"],
    },
    NodeType.ACTION: {
        "type": "object",
        "properties": {"actions": ACTION_LIST_SCHEMA},
    },
    NodeType.DELAY: {
        "type": "object",
        "properties": {
            "type": {"type": "string", "enum": ["time", "event"]},
            "minutes": {"type": "integer", "minimum": 0},
            "event": {"type": "string"},
        },
        "required": ["type"],
    },
    NodeType.END: {
        "type": "object",
        "properties": {"label": {"type": "string"}},
    },
}

NODE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "type": {"type": "string", "enum": [t.value for t in NodeType]},
        "data": {"type": "object"},
        "position": {
            "type": "object",
            "properties": {"x": {"type": "number"}, "y": {"type": "number"}},
            "required": ["x", "y"],
        },
    },
    "required": ["id", "type", "data"],
    "allOf": [
        {
            "if": {"properties": {"type": {"const": node_type.value}}},
            "then": {"properties": {"data": data_schema}},
        }
        for node_type, data_schema in NODE_DATA_SCHEMAS.items()
    ],
}

TRANSITION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "fromNodeId": {"type": "string"},
        "toNodeId": {"type": "string"},
        "label": {"type": "string"},
        "branchKey": {"type": "string"},
        "conditions": CONDITION_LIST_SCHEMA,
        "actions": ACTION_LIST_SCHEMA,
    },
    "required": ["id", "fromNodeId", "toNodeId"],
    "additionalProperties": False,
}

WORKFLOW_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "name": {"type": "string", "minLength": 1},
        "description": {"type": "string"},
        "nodes": {"type": "object", "additionalProperties": NODE_SCHEMA},
        "transitions": {"type": "array", "items": TRANSITION_SCHEMA},
        "entryNodeId": {"type": "string"},
        "enabled": {"type": "boolean"},
        "version": {"type": "integer", "minimum": 0},
        "createdAt": {"type": "string"},
        "updatedAt": {"type": "string"},
    },
    "required": ["id", "name", "nodes", "transitions", "entryNodeId"],
}


def validate_schema(data: dict[str, Any]) -> None:
    """Validate a raw workflow document against the workflow JSON schema.

    Raises:
        WorkflowSchemaError: If the document does not conform to the schema.
    """
    validator = jsonschema.Draft7Validator(WORKFLOW_SCHEMA)
    errors = sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path))
    if errors:
        messages = [f"  - {e.json_path}: {e.message}" for e in errors]
        raise WorkflowSchemaError(
            f"Workflow schema validation failed with {len(errors)} error(s):\n"
            + "\n".join(messages),
            errors=messages,
        )


# ---- Parsing ----


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise WorkflowDefinitionError(f"Invalid timestamp: '{value}'") from exc


def _parse_condition(data: dict[str, Any]) -> Condition:
    return Condition(field=data["field"], operator=data["operator"], value=data.get("value"))


def _parse_action(data: dict[str, Any]) -> RuleAction:
    extra = {k: data[k] for k in ACTION_EXTRA_KEYS if k in data}
    return RuleAction(type=data["type"], value=data.get("value"), extra=extra)


def _parse_node_data(node_type: NodeType, data: dict[str, Any]) -> NodeData:
    conditions = [_parse_condition(c) for c in data.get("conditions", [])]
    if node_type == NodeType.TRIGGER:
        return TriggerData(event=data.get("event", ""), conditions=conditions)
    if node_type == NodeType.STATE:
        return StateData(
            label=data.get("label", ""),
            color=data.get("color"),
            sla_minutes=data.get("slaMinutes"),
            on_enter_actions=[_parse_action(a) for a in data.get("onEnterActions", [])],
            mandatory_fields=list(data.get("mandatoryFields", [])),
        )
    if node_type == NodeType.CONDITION:
        return ConditionData(logic=data.get("logic", "all"), conditions=conditions)
    if node_type == NodeType.ACTION:
        return ActionData(actions=[_parse_action(a) for a in data.get("actions", [])])
    if node_type == NodeType.DELAY:
        return DelayData(
            type=data.get("type", "time"),
            minutes=data.get("minutes"),
            event=data.get("event"),
        )
    if node_type == NodeType.END:
        return EndData(label=data.get("label", ""))
    raise WorkflowDefinitionError(f"Unknown node type: '{node_type}'")  # pragma: no cover


def _parse_transition(data: dict[str, Any]) -> Transition:
    return Transition(
        id=data["id"],
        from_node_id=data["fromNodeId"],
        to_node_id=data["toNodeId"],
        label=data.get("label"),
        branch_key=data.get("branchKey"),
        conditions=[_parse_condition(c) for c in data.get("conditions", [])],
        actions=[_parse_action(a) for a in data.get("actions", [])],
    )


def parse_workflow(data: dict[str, Any]) -> WorkflowGraph:
    """Parse and schema-check a raw workflow document into a WorkflowGraph.

    Structural soundness (dangling references, orphans, dead ends) is not
    checked here; run :func:`workflow_compiler.validator.validate_workflow`
    on the result for that.

    Raises:
        WorkflowSchemaError: If JSON schema validation fails.
        WorkflowDefinitionError: If a node key does not match its id or a
            timestamp cannot be parsed.
    """
    validate_schema(data)

    nodes: dict[str, Node] = {}
    for key, node_data in data["nodes"].items():
        if node_data["id"] != key:
            raise WorkflowDefinitionError(
                f"Node key '{key}' does not match node id '{node_data['id']}'"
            )
        position = node_data.get("position", {})
        node_type = NodeType(node_data["type"])
        nodes[key] = Node(
            id=key,
            data=_parse_node_data(node_type, node_data["data"]),
            position=Position(x=position.get("x", 0), y=position.get("y", 0)),
        )

    return WorkflowGraph(
        id=data["id"],
        name=data["name"],
        nodes=nodes,
        transitions=[_parse_transition(t) for t in data["transitions"]],
        entry_node_id=data["entryNodeId"],
        enabled=data.get("enabled", True),
        version=data.get("version", 1),
        description=data.get("description"),
        created_at=_parse_timestamp(data.get("createdAt")),
        updated_at=_parse_timestamp(data.get("updatedAt")),
    )


# ---- Serialisation ----


def _format_timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat().replace("+00:00", "Z")


def condition_to_dict(condition: Condition) -> dict[str, Any]:
    return {"field": condition.field, "operator": condition.operator, "value": condition.value}


def action_to_dict(action: RuleAction) -> dict[str, Any]:
    result: dict[str, Any] = {"type": action.type}
    if action.value is not None:
        result["value"] = action.value
    result.update(action.extra)
    return result


def _node_data_to_dict(data: NodeData) -> dict[str, Any]:
    if isinstance(data, TriggerData):
        result: dict[str, Any] = {"event": data.event}
        if data.conditions:
            result["conditions"] = [condition_to_dict(c) for c in data.conditions]
        return result
    if isinstance(data, StateData):
        result = {"label": data.label}
        if data.color is not None:
            result["color"] = data.color
        if data.sla_minutes is not None:
            result["slaMinutes"] = data.sla_minutes
        if data.on_enter_actions:
            result["onEnterActions"] = [action_to_dict(a) for a in data.on_enter_actions]
        if data.mandatory_fields:
            result["mandatoryFields"] = list(data.mandatory_fields)
        return result
    if isinstance(data, ConditionData):
        return {
            "logic": data.logic,
            "conditions": [condition_to_dict(c) for c in data.conditions],
        }
    if isinstance(data, ActionData):
        return {"actions": [action_to_dict(a) for a in data.actions]}
    if isinstance(data, DelayData):
        result = {"type": data.type}
        if data.minutes is not None:
            result["minutes"] = data.minutes
        if data.event is not None:
            result["event"] = data.event
        return result
    return {"label": data.label}


def node_to_dict(node: Node) -> dict[str, Any]:
    return {
        "id": node.id,
        "type": node.type.value,
        "data": _node_data_to_dict(node.data),
        "position": {"x": node.position.x, "y": node.position.y},
    }


def transition_to_dict(transition: Transition) -> dict[str, Any]:
    result: dict[str, Any] = {
        "id": transition.id,
        "fromNodeId": transition.from_node_id,
        "toNodeId": transition.to_node_id,
    }
    if transition.label is not None:
        result["label"] = transition.label
    if transition.branch_key is not None:
        result["branchKey"] = transition.branch_key
    if transition.conditions:
        result["conditions"] = [condition_to_dict(c) for c in transition.conditions]
    if transition.actions:
        result["actions"] = [action_to_dict(a) for a in transition.actions]
    return result


def workflow_to_dict(workflow: WorkflowGraph) -> dict[str, Any]:
    """Serialise a WorkflowGraph back into the camelCase document format."""
    result: dict[str, Any] = {
        "id": workflow.id,
        "name": workflow.name,
        "nodes": {node_id: node_to_dict(node) for node_id, node in workflow.nodes.items()},
        "transitions": [transition_to_dict(t) for t in workflow.transitions],
        "entryNodeId": workflow.entry_node_id,
        "enabled": workflow.enabled,
        "version": workflow.version,
    }
    if workflow.description is not None:
        result["description"] = workflow.description
    if workflow.created_at is not None:
        result["createdAt"] = _format_timestamp(workflow.created_at)
    if workflow.updated_at is not None:
        result["updatedAt"] = _format_timestamp(workflow.updated_at)
    return result


def rule_to_dict(rule: Rule) -> dict[str, Any]:
    """Serialise a compiled rule in the shape the rule engine consumes."""
    return {
        "id": rule.id,
        "type": rule.type.value,
        "name": rule.name,
        "enabled": rule.enabled,
        "conditions": {"all": [condition_to_dict(c) for c in rule.conditions.all]},
        "actions": [action_to_dict(a) for a in rule.actions],
    }


def export_workflow(
    workflow: WorkflowGraph,
    rules: list[Rule],
    exported_at: datetime,
) -> dict[str, Any]:
    """Build the export envelope shared with the authoring tool."""
    return {
        "format": EXPORT_FORMAT,
        "workflow": workflow_to_dict(workflow),
        "exportedAt": _format_timestamp(exported_at),
        "rules": [rule_to_dict(r) for r in rules],
    }


def load_export(data: dict[str, Any]) -> WorkflowGraph:
    """Read the workflow back out of an export envelope.

    The bundled rules are ignored; they are recompiled from the graph.

    Raises:
        WorkflowSchemaError: If the envelope format is not recognised.
    """
    fmt = data.get("format")
    if fmt != EXPORT_FORMAT:
        raise WorkflowSchemaError(
            f"Unsupported export format: '{fmt}'",
            errors=[f"  - $.format: expected '{EXPORT_FORMAT}'"],
        )
    return parse_workflow(data.get("workflow") or {})


def validation_to_dict(result: ValidationResult) -> dict[str, Any]:
    """Serialise a validation result for UI or CLI presentation."""
    return {
        "valid": result.valid,
        "errors": [
            {
                "message": e.message,
                "severity": e.severity.value,
                **({"nodeId": e.node_id} if e.node_id is not None else {}),
            }
            for e in result.errors
        ],
    }


def optimize_result_to_dict(result: OptimizeResult) -> dict[str, Any]:
    """Serialise an optimizer result for UI or CLI presentation."""
    return {
        "workflow": workflow_to_dict(result.workflow),
        "changes": [
            {
                "type": c.type.value,
                "description": c.description,
                **({"nodeId": c.node_id} if c.node_id is not None else {}),
            }
            for c in result.changes
        ],
    }
