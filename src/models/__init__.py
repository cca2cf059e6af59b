"""Models package exports."""

from src.models.automation import (
    Action,
    ActionResult,
    ActionType,
    AnalysisResult,
    AutomationSettings,
    AutomationSuggestion,
    AutomationWorkflow,
    ConversationMessage,
    ConversationPattern,
    ExecutionResult,
    HistoryEntry,
    MessageRole,
    PatternDetectionResult,
    PatternType,
    SuggestionRequest,
    SuggestionSourceKind,
    SuggestionType,
    TriggerCondition,
    TriggerConditionType,
    TriggerType,
    UserContext,
    WorkflowCreate,
    WorkflowExecution,
    WorkflowUpdate,
)

__all__ = [
    "Action",
    "ActionResult",
    "ActionType",
    "AnalysisResult",
    "AutomationSettings",
    "AutomationSuggestion",
    "AutomationWorkflow",
    "ConversationMessage",
    "ConversationPattern",
    "ExecutionResult",
    "HistoryEntry",
    "MessageRole",
    "PatternDetectionResult",
    "PatternType",
    "SuggestionRequest",
    "SuggestionSourceKind",
    "SuggestionType",
    "TriggerCondition",
    "TriggerConditionType",
    "TriggerType",
    "UserContext",
    "WorkflowCreate",
    "WorkflowExecution",
    "WorkflowUpdate",
]
