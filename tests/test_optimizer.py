"""Tests for workflow_compiler.optimizer."""

from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Callable

import pytest

from workflow_compiler import (
    ActionData,
    ChangeType,
    ConditionData,
    DelayData,
    EndData,
    Node,
    NodeType,
    Position,
    RuleAction,
    StateData,
    Transition,
    TriggerData,
    WorkflowGraph,
    optimize_workflow,
    validate_workflow,
)
from workflow_compiler.optimizer import match_sla_minutes

FIXED_NOW = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)


def _remove_end(wf: WorkflowGraph) -> WorkflowGraph:
    del wf.nodes["end-1"]
    wf.transitions = [t for t in wf.transitions if t.to_node_id != "end-1"]
    return wf


def _change_types(result) -> list[ChangeType]:
    return [c.type for c in result.changes]


class TestAddMissingEndNode:
    def test_adds_end_node_when_none_exists(
        self, linear_workflow: WorkflowGraph, sequential_ids: Callable[[], str]
    ) -> None:
        result = optimize_workflow(_remove_end(linear_workflow), id_factory=sequential_ids)
        end_nodes = result.workflow.end_nodes
        assert len(end_nodes) == 1
        assert end_nodes[0].id == "gen-1"
        assert end_nodes[0].data == EndData(label="Closed")
        assert result.changes[0].type == ChangeType.ADD_END_NODE
        assert result.changes[0].node_id == "gen-1"

    def test_keeps_existing_end_node(self, linear_workflow: WorkflowGraph) -> None:
        result = optimize_workflow(linear_workflow)
        assert ChangeType.ADD_END_NODE not in _change_types(result)

    def test_positions_end_node_below_lowest_node(self, linear_workflow: WorkflowGraph) -> None:
        result = optimize_workflow(_remove_end(linear_workflow))
        end = result.workflow.end_nodes[0]
        assert (end.position.x, end.position.y) == (300, 340)


class TestConnectDeadEnds:
    def test_connects_dead_end_to_end_node(self, linear_workflow: WorkflowGraph) -> None:
        linear_workflow.transitions = [t for t in linear_workflow.transitions if t.id != "t3"]
        result = optimize_workflow(linear_workflow)
        closes = [
            t for t in result.workflow.outgoing("state-b") if t.to_node_id == "end-1"
        ]
        assert len(closes) == 1
        assert closes[0].label == "Close"
        change = next(c for c in result.changes if c.type == ChangeType.CONNECT_DEAD_END)
        assert change.node_id == "state-b"
        assert change.description == 'Connected dead-end "State B" to end node'

    def test_leaves_connected_nodes_alone(self, linear_workflow: WorkflowGraph) -> None:
        result = optimize_workflow(linear_workflow)
        assert ChangeType.CONNECT_DEAD_END not in _change_types(result)

    def test_missing_end_and_dead_end(self, linear_workflow: WorkflowGraph) -> None:
        result = optimize_workflow(_remove_end(linear_workflow))
        wf = result.workflow
        assert len(wf.end_nodes) == 1
        end_id = wf.end_nodes[0].id
        assert any(t.to_node_id == end_id for t in wf.outgoing("state-b"))


class TestDefaultSlas:
    @pytest.mark.parametrize(
        ("label", "minutes"),
        [
            ("New", 60),
            ("Triage", 60),
            ("In Progress", 240),
            ("Waiting on customer", 480),
            ("Escalated", 120),
            ("ESCALATION", 120),
            ("Resolved", 240),
            ("Renewals", 60),
        ],
    )
    def test_keyword_match(self, label: str, minutes: int) -> None:
        assert match_sla_minutes(label) == minutes

    def test_sets_sla_on_states_without_one(self, linear_workflow: WorkflowGraph) -> None:
        linear_workflow.nodes["state-a"].data.label = "New"
        result = optimize_workflow(linear_workflow)
        assert result.workflow.nodes["state-a"].data.sla_minutes == 60
        assert result.workflow.nodes["state-b"].data.sla_minutes == 240
        descriptions = [c.description for c in result.changes if c.type == ChangeType.ADD_SLA]
        assert descriptions == ['Set 60m SLA on "New"', 'Set 240m SLA on "State B"']

    def test_keeps_existing_sla(self, linear_workflow: WorkflowGraph) -> None:
        linear_workflow.nodes["state-a"].data.sla_minutes = 15
        result = optimize_workflow(linear_workflow)
        assert result.workflow.nodes["state-a"].data.sla_minutes == 15
        assert [c.node_id for c in result.changes if c.type == ChangeType.ADD_SLA] == [
            "state-b"
        ]


class TestEscalationPath:
    def test_adds_escalation_state(
        self, linear_workflow: WorkflowGraph, sequential_ids: Callable[[], str]
    ) -> None:
        result = optimize_workflow(linear_workflow, id_factory=sequential_ids)
        wf = result.workflow
        esc = wf.nodes["gen-1"]
        assert esc.type == NodeType.STATE
        assert esc.data.label == "Escalated"
        assert esc.data.color == "bg-red-500"
        assert (esc.position.x, esc.position.y) == (200, 230)

        breaches = [t for t in wf.incoming("gen-1") if t.label == "SLA Breach"]
        assert sorted(t.from_node_id for t in breaches) == ["state-a", "state-b"]
        resolve = wf.outgoing("gen-1")
        assert [(t.to_node_id, t.label) for t in resolve] == [("end-1", "Resolve")]

    def test_skipped_when_escalation_state_exists(self, linear_workflow: WorkflowGraph) -> None:
        linear_workflow.nodes["state-b"].data.label = "Escalate to tier 2"
        result = optimize_workflow(linear_workflow)
        assert ChangeType.ADD_ESCALATION not in _change_types(result)

    def test_skipped_without_state_nodes(self) -> None:
        wf = WorkflowGraph(
            id="wf",
            name="No states",
            nodes={"t": Node("t", TriggerData(event="create")), "e": Node("e", EndData())},
            transitions=[Transition("t1", "t", "e")],
            entry_node_id="t",
        )
        result = optimize_workflow(wf)
        assert result.changes == []


class TestIncompleteBranches:
    def test_adds_missing_no_branch(self, branching_workflow: WorkflowGraph) -> None:
        branching_workflow.transitions = [
            t for t in branching_workflow.transitions if t.id != "t-no"
        ]
        branching_workflow.nodes["normal"].data.label = "Escalated"
        branching_workflow.transitions.append(Transition("t-x", "urgent", "normal"))
        result = optimize_workflow(branching_workflow)
        branches = result.workflow.outgoing("check")
        assert len(branches) == 2
        added = branches[-1]
        assert (added.branch_key, added.label, added.to_node_id) == ("no", "No", "end")
        change = next(c for c in result.changes if c.type == ChangeType.FIX_BRANCH)
        assert change.description == 'Added missing "No" branch to condition node'

    def test_adds_yes_branch_when_no_exists(self, branching_workflow: WorkflowGraph) -> None:
        branching_workflow.transitions = [
            t for t in branching_workflow.transitions if t.id != "t-yes"
        ]
        result = optimize_workflow(branching_workflow)
        keys = sorted(t.branch_key for t in result.workflow.outgoing("check"))
        assert keys == ["no", "yes"]

    def test_unconnected_condition_gets_close_then_yes(
        self, linear_workflow: WorkflowGraph
    ) -> None:
        linear_workflow.nodes["cond"] = Node("cond", ConditionData())
        linear_workflow.transitions.append(Transition("t4", "state-a", "cond"))
        result = optimize_workflow(linear_workflow)
        labels = [t.label for t in result.workflow.outgoing("cond")]
        assert labels == ["Close", "Yes"]


class TestOptimizeContract:
    def test_does_not_mutate_input(self, linear_workflow: WorkflowGraph) -> None:
        _remove_end(linear_workflow)
        before = copy.deepcopy(linear_workflow)
        optimize_workflow(linear_workflow)
        assert linear_workflow == before

    def test_bumps_version_and_timestamp(self, linear_workflow: WorkflowGraph) -> None:
        result = optimize_workflow(linear_workflow, clock=lambda: FIXED_NOW)
        assert result.workflow.version == 2
        assert result.workflow.updated_at == FIXED_NOW
        assert linear_workflow.version == 1

    def test_fix_order(self, linear_workflow: WorkflowGraph) -> None:
        _remove_end(linear_workflow)
        result = optimize_workflow(linear_workflow)
        assert _change_types(result) == [
            ChangeType.ADD_END_NODE,
            ChangeType.CONNECT_DEAD_END,
            ChangeType.ADD_SLA,
            ChangeType.ADD_SLA,
            ChangeType.ADD_ESCALATION,
        ]

    def test_reproducible_with_injected_ids(self, linear_workflow: WorkflowGraph) -> None:
        _remove_end(linear_workflow)

        def ids() -> Callable[[], str]:
            counter = iter(range(1, 100))
            return lambda: f"id-{next(counter)}"

        first = optimize_workflow(linear_workflow, id_factory=ids(), clock=lambda: FIXED_NOW)
        second = optimize_workflow(linear_workflow, id_factory=ids(), clock=lambda: FIXED_NOW)
        assert first == second

    def test_second_pass_only_sets_escalation_sla(self, linear_workflow: WorkflowGraph) -> None:
        once = optimize_workflow(_remove_end(linear_workflow)).workflow
        twice = optimize_workflow(once)
        assert [(c.type, c.description) for c in twice.changes] == [
            (ChangeType.ADD_SLA, 'Set 120m SLA on "Escalated"')
        ]
        assert twice.workflow.version == once.version + 1


def _trigger_only() -> WorkflowGraph:
    return WorkflowGraph(
        id="wf",
        name="Bare",
        nodes={"t": Node("t", TriggerData(event="create"))},
        transitions=[],
        entry_node_id="t",
    )


def _cycle_without_end() -> WorkflowGraph:
    return WorkflowGraph(
        id="wf",
        name="Loop",
        nodes={
            "t": Node("t", TriggerData(event="create")),
            "a": Node("a", StateData(label="Open")),
            "b": Node("b", StateData(label="Pending")),
        },
        transitions=[Transition("1", "t", "a"), Transition("2", "a", "b"), Transition("3", "b", "a")],
        entry_node_id="t",
    )


def _escalation_loop() -> WorkflowGraph:
    return WorkflowGraph(
        id="wf",
        name="Escalation loop",
        nodes={
            "t": Node("t", TriggerData(event="create")),
            "new": Node("new", StateData(label="New"), Position(300, 100)),
            "esc": Node("esc", StateData(label="Escalated"), Position(300, 200)),
        },
        transitions=[
            Transition("1", "t", "new"),
            Transition("2", "new", "esc"),
            Transition("3", "esc", "new"),
        ],
        entry_node_id="t",
    )


def _action_loop() -> WorkflowGraph:
    return WorkflowGraph(
        id="wf",
        name="Action loop",
        nodes={
            "t": Node("t", TriggerData(event="update")),
            "x": Node("x", ActionData(actions=[RuleAction(type="add_tag", value="seen")])),
        },
        transitions=[Transition("1", "t", "x"), Transition("2", "x", "t")],
        entry_node_id="t",
    )


def _condition_delay_loop() -> WorkflowGraph:
    return WorkflowGraph(
        id="wf",
        name="Condition loop",
        nodes={
            "t": Node("t", TriggerData(event="create")),
            "c1": Node("c1", ConditionData()),
            "c2": Node("c2", ConditionData()),
            "d": Node("d", DelayData(minutes=30)),
        },
        transitions=[
            Transition("1", "t", "c1"),
            Transition("2", "c1", "c2", branch_key="yes"),
            Transition("3", "c1", "d", branch_key="no"),
            Transition("4", "c2", "c1", branch_key="yes"),
            Transition("5", "c2", "d", branch_key="no"),
            Transition("6", "d", "c1"),
        ],
        entry_node_id="t",
    )


def _orphans(wf: WorkflowGraph) -> WorkflowGraph:
    wf.nodes["orphan-state"] = Node("orphan-state", StateData(label="Lonely"))
    wf.nodes["orphan-cond"] = Node("orphan-cond", ConditionData())
    return wf


def _one_armed_condition(wf: WorkflowGraph) -> WorkflowGraph:
    wf.transitions = [t for t in wf.transitions if t.id != "t-no"]
    return wf


class TestValidityPostcondition:
    def test_scenarios(
        self, linear_workflow: WorkflowGraph, branching_workflow: WorkflowGraph
    ) -> None:
        scenarios = [
            linear_workflow,
            _remove_end(copy.deepcopy(linear_workflow)),
            _orphans(copy.deepcopy(linear_workflow)),
            _one_armed_condition(copy.deepcopy(branching_workflow)),
            _trigger_only(),
            _cycle_without_end(),
        ]
        for wf in scenarios:
            repaired = optimize_workflow(wf).workflow
            result = validate_workflow(repaired)
            assert result.valid, (wf.name, result.error_messages)

    @pytest.mark.parametrize(
        "build", [_escalation_loop, _action_loop, _condition_delay_loop]
    )
    def test_loops_without_dead_ends(self, build: Callable[[], WorkflowGraph]) -> None:
        wf = build()
        assert validate_workflow(wf).valid

        result = validate_workflow(optimize_workflow(wf).workflow)
        assert result.valid, result.error_messages


class TestConnectAddedEndNode:
    def test_links_lowest_state_when_escalation_exists(
        self, sequential_ids: Callable[[], str]
    ) -> None:
        result = optimize_workflow(_escalation_loop(), id_factory=sequential_ids)
        assert _change_types(result) == [
            ChangeType.ADD_END_NODE,
            ChangeType.ADD_SLA,
            ChangeType.ADD_SLA,
            ChangeType.CONNECT_END_NODE,
        ]
        [close] = result.workflow.incoming("gen-1")
        assert (close.id, close.from_node_id, close.label) == ("gen-2", "esc", "Close")
        assert result.changes[-1].description == 'Connected "Escalated" to new end node'

    def test_prefers_non_entry_node(self, sequential_ids: Callable[[], str]) -> None:
        result = optimize_workflow(_action_loop(), id_factory=sequential_ids)
        assert _change_types(result) == [ChangeType.ADD_END_NODE, ChangeType.CONNECT_END_NODE]
        assert [t.from_node_id for t in result.workflow.incoming("gen-1")] == ["x"]

    def test_not_needed_when_dead_end_reaches_end(self, linear_workflow: WorkflowGraph) -> None:
        result = optimize_workflow(_remove_end(linear_workflow))
        assert ChangeType.CONNECT_END_NODE not in _change_types(result)

    def test_existing_end_node_untouched(self, linear_workflow: WorkflowGraph) -> None:
        linear_workflow.transitions = [
            t for t in linear_workflow.transitions if t.to_node_id != "end-1"
        ]
        linear_workflow.transitions.append(Transition("t9", "state-b", "state-a"))
        result = optimize_workflow(linear_workflow)
        assert ChangeType.CONNECT_END_NODE not in _change_types(result)
