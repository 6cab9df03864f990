"""Keep the rule engine's rule collection in step with workflow graphs.

Compiled rules live in the same collection as hand-authored ones. They are
told apart by id: every rule compiled from workflow ``W`` starts with
``wf-W-``, so a workflow's rules can be replaced without touching anything
else.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Protocol

from workflow_compiler.decomposer import WF_RULE_PREFIX, decompose_workflow, rule_prefix
from workflow_compiler.exceptions import WorkflowSyncError
from workflow_compiler.models import Rule, WorkflowGraph

logger = logging.getLogger(__name__)

RulePredicate = Callable[[Rule], bool]


class WorkflowRepository(Protocol):
    """Read access to stored workflow graphs."""

    def get_active_workflows(self) -> list[WorkflowGraph]: ...

    def get_workflow(self, workflow_id: str) -> WorkflowGraph | None: ...


class RuleRepository(Protocol):
    """The rule collection owned by the rule-evaluation engine.

    ``replace_rules`` must drop every rule matching ``predicate`` and append
    ``new_rules`` as one step with respect to other writers.
    """

    def get_rules(self) -> list[Rule]: ...

    def set_rules(self, rules: list[Rule]) -> None: ...

    def replace_rules(self, predicate: RulePredicate, new_rules: list[Rule]) -> None: ...


class InMemoryWorkflowRepository:
    """Workflow repository backed by a dict, keyed by workflow id."""

    def __init__(self, workflows: list[WorkflowGraph] | None = None) -> None:
        self._workflows: dict[str, WorkflowGraph] = {}
        for wf in workflows or []:
            self.upsert(wf)

    def upsert(self, workflow: WorkflowGraph) -> WorkflowGraph:
        self._workflows[workflow.id] = workflow
        return workflow

    def delete(self, workflow_id: str) -> bool:
        return self._workflows.pop(workflow_id, None) is not None

    def get_workflows(self) -> list[WorkflowGraph]:
        return list(self._workflows.values())

    def get_active_workflows(self) -> list[WorkflowGraph]:
        return [wf for wf in self._workflows.values() if wf.enabled]

    def get_workflow(self, workflow_id: str) -> WorkflowGraph | None:
        return self._workflows.get(workflow_id)


class InMemoryRuleRepository:
    """Thread-safe in-process rule collection."""

    def __init__(self, rules: list[Rule] | None = None) -> None:
        self._rules: list[Rule] = list(rules or [])
        self._lock = threading.Lock()

    def get_rules(self) -> list[Rule]:
        with self._lock:
            return list(self._rules)

    def set_rules(self, rules: list[Rule]) -> None:
        with self._lock:
            self._rules = list(rules)

    def replace_rules(self, predicate: RulePredicate, new_rules: list[Rule]) -> None:
        with self._lock:
            kept = [r for r in self._rules if not predicate(r)]
            self._rules = kept + list(new_rules)


@dataclass(frozen=True)
class SyncResult:
    """Number of workflow rules written by a sync."""

    rule_count: int


class WorkflowRuleSync:
    """Recompiles workflows and replaces their rules in the rule repository.

    Usage::

        sync = WorkflowRuleSync(workflow_repo, rule_repo)
        sync.sync_all()
        sync.sync_workflow("onboarding", enabled=False)
    """

    def __init__(self, workflows: WorkflowRepository, rules: RuleRepository) -> None:
        self.workflows = workflows
        self.rules = rules

    def sync_all(self) -> SyncResult:
        """Replace every workflow-generated rule with a fresh compilation.

        Rules of workflows that are no longer active disappear; manually
        authored rules are kept.
        """
        compiled: list[Rule] = []
        for wf in self.workflows.get_active_workflows():
            compiled.extend(decompose_workflow(wf))

        self._replace(lambda r: r.id.startswith(WF_RULE_PREFIX), compiled)
        logger.info("Synced %d workflow rule(s) from active workflows", len(compiled))
        return SyncResult(rule_count=len(compiled))

    def sync_workflow(self, workflow_id: str, enabled: bool) -> SyncResult:
        """Replace the rules of a single workflow.

        Args:
            workflow_id: The workflow whose rules are replaced.
            enabled: When False (or when the workflow no longer exists) the
                workflow's rules are removed and nothing is added.
        """
        compiled: list[Rule] = []
        if enabled:
            wf = self.workflows.get_workflow(workflow_id)
            if wf is not None:
                compiled = decompose_workflow(wf)

        prefix = rule_prefix(workflow_id)
        self._replace(lambda r: r.id.startswith(prefix), compiled)
        logger.info("Synced %d rule(s) for workflow %s", len(compiled), workflow_id)
        return SyncResult(rule_count=len(compiled))

    def _replace(self, predicate: RulePredicate, compiled: list[Rule]) -> None:
        try:
            self.rules.replace_rules(predicate, compiled)
        except Exception as exc:
            raise WorkflowSyncError(f"Failed to write compiled rules: {exc}") from exc
