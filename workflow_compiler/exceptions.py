"""Workflow compiler exceptions."""


class WorkflowError(Exception):
    """Base exception for all workflow compiler errors."""


class WorkflowDefinitionError(WorkflowError):
    """Raised when a workflow definition cannot be loaded."""


class WorkflowSchemaError(WorkflowDefinitionError):
    """Raised when a workflow document fails JSON schema validation."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        self.errors = errors or []
        super().__init__(message)


class WorkflowSyncError(WorkflowError):
    """Raised when compiled rules cannot be written to the rule repository."""
