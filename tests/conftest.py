"""Shared fixtures for workflow compiler tests."""

from __future__ import annotations

import copy
import itertools
from typing import Any, Callable

import pytest

from workflow_compiler import WorkflowGraph, parse_workflow

LINEAR_WORKFLOW_JSON: dict[str, Any] = {
    "id": "wf-test",
    "name": "Test Workflow",
    "nodes": {
        "trigger-1": {
            "id": "trigger-1",
            "type": "trigger",
            "data": {"event": "create"},
            "position": {"x": 0, "y": 0},
        },
        "state-a": {
            "id": "state-a",
            "type": "state",
            "data": {"label": "State A"},
            "position": {"x": 0, "y": 100},
        },
        "state-b": {
            "id": "state-b",
            "type": "state",
            "data": {"label": "State B"},
            "position": {"x": 0, "y": 200},
        },
        "end-1": {
            "id": "end-1",
            "type": "end",
            "data": {"label": "End"},
            "position": {"x": 0, "y": 300},
        },
    },
    "transitions": [
        {"id": "t1", "fromNodeId": "trigger-1", "toNodeId": "state-a"},
        {"id": "t2", "fromNodeId": "state-a", "toNodeId": "state-b", "label": "Progress"},
        {"id": "t3", "fromNodeId": "state-b", "toNodeId": "end-1", "label": "Close"},
    ],
    "entryNodeId": "trigger-1",
    "enabled": True,
    "version": 1,
    "createdAt": "2026-01-01T00:00:00Z",
    "updatedAt": "2026-01-01T00:00:00Z",
}


BRANCHING_WORKFLOW_JSON: dict[str, Any] = {
    "id": "wf-branch",
    "name": "Branching",
    "nodes": {
        "trigger": {"id": "trigger", "type": "trigger", "data": {"event": "create"}},
        "check": {
            "id": "check",
            "type": "condition",
            "data": {
                "logic": "all",
                "conditions": [{"field": "priority", "operator": "is", "value": "urgent"}],
            },
        },
        "urgent": {"id": "urgent", "type": "state", "data": {"label": "Urgent"}},
        "normal": {"id": "normal", "type": "state", "data": {"label": "Normal"}},
        "end": {"id": "end", "type": "end", "data": {"label": "Done"}},
    },
    "transitions": [
        {"id": "t-start", "fromNodeId": "trigger", "toNodeId": "check"},
        {"id": "t-yes", "fromNodeId": "check", "toNodeId": "urgent", "branchKey": "yes"},
        {"id": "t-no", "fromNodeId": "check", "toNodeId": "normal", "branchKey": "no"},
        {"id": "t-u-end", "fromNodeId": "urgent", "toNodeId": "end"},
        {"id": "t-n-end", "fromNodeId": "normal", "toNodeId": "end"},
    ],
    "entryNodeId": "trigger",
    "enabled": True,
    "version": 1,
}


@pytest.fixture
def linear_json() -> dict[str, Any]:
    return copy.deepcopy(LINEAR_WORKFLOW_JSON)


@pytest.fixture
def branching_json() -> dict[str, Any]:
    return copy.deepcopy(BRANCHING_WORKFLOW_JSON)


@pytest.fixture
def linear_workflow(linear_json: dict[str, Any]) -> WorkflowGraph:
    return parse_workflow(linear_json)


@pytest.fixture
def branching_workflow(branching_json: dict[str, Any]) -> WorkflowGraph:
    return parse_workflow(branching_json)


@pytest.fixture
def sequential_ids() -> Callable[[], str]:
    """Deterministic id factory: gen-1, gen-2, ..."""
    counter = itertools.count(1)
    return lambda: f"gen-{next(counter)}"
