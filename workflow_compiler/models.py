"""Core data models for the workflow compiler."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar, Union

if TYPE_CHECKING:
    from datetime import datetime


class NodeType(str, Enum):
    """Types of nodes in a workflow graph."""

    TRIGGER = "trigger"
    STATE = "state"
    CONDITION = "condition"
    ACTION = "action"
    DELAY = "delay"
    END = "end"


class RuleType(str, Enum):
    """Kinds of rule understood by the rule-evaluation engine."""

    TRIGGER = "trigger"
    AUTOMATION = "automation"
    SLA = "sla"


@dataclass(frozen=True)
class Condition:
    """A single ``field operator value`` test evaluated by the rule engine.

    The compiler never evaluates conditions; it only copies, negates and
    synthesizes them.
    """

    field: str
    operator: str
    value: Any = None

    OPERATORS: ClassVar[frozenset[str]] = frozenset(
        {
            "is",
            "is_not",
            "equals",
            "not_equals",
            "contains",
            "not_contains",
            "starts_with",
            "ends_with",
            "greater_than",
            "less_than",
            "is_empty",
            "is_not_empty",
            "changed",
            "changed_to",
            "in",
            "not_in",
            "matches",
        }
    )


@dataclass(frozen=True)
class RuleAction:
    """A side effect applied by the rule engine when a rule matches.

    ``extra`` holds engine-specific keys such as ``channel`` or ``url``.
    """

    type: str
    value: Any = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class Position:
    """Canvas coordinates of a node in the authoring tool."""

    x: float = 0
    y: float = 0


@dataclass
class TriggerData:
    node_type: ClassVar[NodeType] = NodeType.TRIGGER

    event: str = ""
    conditions: list[Condition] = field(default_factory=list)


@dataclass
class StateData:
    node_type: ClassVar[NodeType] = NodeType.STATE

    label: str = ""
    color: str | None = None
    sla_minutes: int | None = None
    on_enter_actions: list[RuleAction] = field(default_factory=list)
    mandatory_fields: list[str] = field(default_factory=list)


@dataclass
class ConditionData:
    node_type: ClassVar[NodeType] = NodeType.CONDITION

    logic: str = "all"
    conditions: list[Condition] = field(default_factory=list)


@dataclass
class ActionData:
    node_type: ClassVar[NodeType] = NodeType.ACTION

    actions: list[RuleAction] = field(default_factory=list)


@dataclass
class DelayData:
    node_type: ClassVar[NodeType] = NodeType.DELAY

    type: str = "time"
    minutes: int | None = None
    event: str | None = None


@dataclass
class EndData:
    node_type: ClassVar[NodeType] = NodeType.END

    label: str = ""


NodeData = Union[TriggerData, StateData, ConditionData, ActionData, DelayData, EndData]

# Maps node types to the payload class that carries their data.
NODE_DATA_TYPES: dict[NodeType, type] = {
    NodeType.TRIGGER: TriggerData,
    NodeType.STATE: StateData,
    NodeType.CONDITION: ConditionData,
    NodeType.ACTION: ActionData,
    NodeType.DELAY: DelayData,
    NodeType.END: EndData,
}


@dataclass
class Node:
    """A node in a workflow graph.

    The node type is derived from the payload, so a node can never carry
    data belonging to a different type.
    """

    id: str
    data: NodeData
    position: Position = field(default_factory=Position)

    @property
    def type(self) -> NodeType:
        return self.data.node_type


@dataclass
class Transition:
    """A directed edge between two nodes.

    ``branch_key`` is only meaningful when the source is a condition node.
    """

    id: str
    from_node_id: str
    to_node_id: str
    label: str | None = None
    branch_key: str | None = None
    conditions: list[Condition] = field(default_factory=list)
    actions: list[RuleAction] = field(default_factory=list)


@dataclass
class WorkflowGraph:
    """A visually authored ticket lifecycle: the unit of compilation."""

    id: str
    name: str
    nodes: dict[str, Node]
    transitions: list[Transition]
    entry_node_id: str
    enabled: bool = True
    version: int = 1
    description: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def entry_node(self) -> Node | None:
        """Return the entry node, or None if ``entry_node_id`` does not resolve."""
        if not self.entry_node_id:
            return None
        return self.nodes.get(self.entry_node_id)

    @property
    def end_nodes(self) -> list[Node]:
        """Return all end nodes."""
        return [n for n in self.nodes.values() if n.type == NodeType.END]

    def outgoing(self, node_id: str) -> list[Transition]:
        return [t for t in self.transitions if t.from_node_id == node_id]

    def incoming(self, node_id: str) -> list[Transition]:
        return [t for t in self.transitions if t.to_node_id == node_id]


@dataclass(frozen=True)
class RuleConditions:
    """Conjunction of conditions; every entry of ``all`` must hold."""

    all: list[Condition] = field(default_factory=list)


@dataclass(frozen=True)
class Rule:
    """A flat condition -> action unit consumed by the rule engine."""

    id: str
    type: RuleType
    name: str
    enabled: bool
    conditions: RuleConditions
    actions: list[RuleAction]
