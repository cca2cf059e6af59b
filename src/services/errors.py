"""Error taxonomy for the automation engine.

Only WorkflowNotFoundError reaches a caller, and then only as the error text of
a failed ExecutionResult. The others are raised at collaborator boundaries and
converted into empty or default results where the operation is best-effort.
"""

from typing import Optional


class AutomationError(Exception):
    """Base class for automation engine errors."""


class FeatureDisabledError(AutomationError):
    """Automation (or one of its stages) is switched off in settings."""


class SourceUnavailableError(AutomationError):
    """A pattern or AI suggestion source failed to produce a result.

    Attributes:
        source: Name of the failing source
    """

    def __init__(self, source: str, reason: str):
        self.source = source
        super().__init__(f"{source} unavailable: {reason}")


class WorkflowNotFoundError(AutomationError):
    """The workflow to execute does not exist or belongs to another user."""

    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__("Workflow not found")


class ActionExecutionError(AutomationError):
    """A single action failed. Fatal to that action only."""

    def __init__(self, action_type: str, reason: str):
        self.action_type = action_type
        super().__init__(f"{action_type} failed: {reason}")


class PersistenceError(AutomationError):
    """A store read or write failed.

    Attributes:
        operation: Store operation that failed, e.g. "workflow_create"
        cause: Underlying driver exception, if any
    """

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"{operation} failed{detail}")
