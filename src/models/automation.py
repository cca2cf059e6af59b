"""Automation models: settings, workflows, suggestions and execution records."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


class TriggerConditionType(str, Enum):
    """Kinds of test a trigger condition applies to a message."""

    CONTAINS = "contains"
    MATCHES = "matches"
    SIMILAR_TO = "similar_to"


class TriggerType(str, Enum):
    """How a workflow gets started."""

    PATTERN = "pattern"
    KEYWORD = "keyword"
    CONTEXT = "context"
    MANUAL = "manual"


class ActionType(str, Enum):
    """Well-known action types. Actions may carry other type strings too."""

    SUGGEST_RESPONSE = "suggest_response"
    APPLY_TEMPLATE = "apply_template"
    INSERT_TEXT = "insert_text"
    SHOW_SUGGESTION = "show_suggestion"
    EXECUTE_WORKFLOW = "execute_workflow"


class PatternType(str, Enum):
    """Conversation pattern categories."""

    REPETITIVE_QUESTION = "repetitive_question"
    COMMON_RESPONSE = "common_response"
    WORKFLOW_SEQUENCE = "workflow_sequence"
    CONTEXT_PATTERN = "context_pattern"


class SuggestionSourceKind(str, Enum):
    """Where a suggestion came from."""

    DETECTED_PATTERN = "detected_pattern"
    USER_WORKFLOW = "user_workflow"
    AI_GENERATED = "ai_generated"


class SuggestionType(str, Enum):
    WORKFLOW = "workflow"
    PATTERN = "pattern"
    TEMPLATE = "template"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class TriggerCondition(BaseModel):
    """A single test against message text. All of a workflow's conditions must pass."""

    model_config = ConfigDict(frozen=True)

    type: TriggerConditionType
    value: str
    case_sensitive: bool = False
    threshold: float = Field(default=0.7, ge=0.0, le=1.0)


class Action(BaseModel):
    """An opaque instruction run as part of a workflow."""

    type: str
    data: dict[str, Any] = Field(default_factory=dict)
    confirmation_required: bool = False
    delay_ms: int = Field(default=0, ge=0)


class AutomationSuggestion(BaseModel):
    """A confidence-scored candidate automation for one message. Never persisted."""

    id: str
    type: SuggestionType
    title: str
    description: str
    confidence: float = Field(ge=0.0, le=1.0)
    actions: list[Action] = Field(default_factory=list)
    source: SuggestionSourceKind
    requires_confirmation: bool = True


class AutomationSettings(BaseModel):
    """Per-user automation behaviour.

    The value is immutable; ``merged`` builds a new instance so callers holding
    the previous one never observe a change.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    enabled: bool = True
    pattern_detection_enabled: bool = True
    workflow_suggestions_enabled: bool = True
    context_aware_suggestions_enabled: bool = True
    confirmation_required: bool = True
    max_suggestions_per_message: int = Field(default=3, ge=0)
    confidence_threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    auto_apply_high_confidence: bool = False
    high_confidence_threshold: float = Field(default=0.8, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def check_thresholds(self) -> "AutomationSettings":
        if self.high_confidence_threshold < self.confidence_threshold:
            raise ValueError(
                "high_confidence_threshold must be >= confidence_threshold"
            )
        return self

    def merged(self, patch: Optional[dict[str, Any]]) -> "AutomationSettings":
        """Return a new settings value with the known keys of ``patch`` applied."""
        if not patch:
            return self
        known = {k: v for k, v in patch.items() if k in type(self).model_fields}
        return type(self).model_validate({**self.model_dump(), **known})

    def should_auto_apply(self, suggestion: AutomationSuggestion) -> bool:
        """Whether a suggestion may be applied without showing it first."""
        if not self.auto_apply_high_confidence:
            return False
        if suggestion.confidence < self.high_confidence_threshold:
            return False
        return not (self.confirmation_required and suggestion.requires_confirmation)


class WorkflowCreate(BaseModel):
    """User-editable fields of a new workflow."""

    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    trigger_type: TriggerType = TriggerType.MANUAL
    trigger_conditions: list[TriggerCondition] = Field(default_factory=list)
    actions: list[Action] = Field(default_factory=list)
    is_active: bool = True
    priority: int = 0


class WorkflowUpdate(BaseModel):
    """Partial update of a workflow; unset fields are left alone."""

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    trigger_type: Optional[TriggerType] = None
    trigger_conditions: Optional[list[TriggerCondition]] = None
    actions: Optional[list[Action]] = None
    is_active: Optional[bool] = None
    priority: Optional[int] = None


class AutomationWorkflow(BaseModel):
    """A user-owned rule: trigger conditions plus ordered actions."""

    id: UUID
    user_id: UUID
    title: str
    description: Optional[str] = None
    trigger_type: TriggerType
    trigger_conditions: list[TriggerCondition] = Field(default_factory=list)
    actions: list[Action] = Field(default_factory=list)
    is_active: bool = True
    priority: int = 0
    usage_count: int = Field(default=0, ge=0)
    last_used_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class ConversationPattern(BaseModel):
    """A detected signal about conversation structure, forwarded as-is."""

    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    user_id: Optional[str] = None
    pattern_type: PatternType
    pattern_data: dict[str, Any] = Field(default_factory=dict)
    confidence: float = Field(ge=0.0, le=1.0)
    detection_count: int = 1
    last_detected_at: Optional[datetime] = None
    is_active: bool = True


class ConversationMessage(BaseModel):
    role: MessageRole
    content: str
    created_at: Optional[datetime] = None


class PatternDetectionResult(BaseModel):
    patterns: list[ConversationPattern] = Field(default_factory=list)
    suggestions: list[AutomationSuggestion] = Field(default_factory=list)
    confidence_threshold: float = 0.3


class HistoryEntry(BaseModel):
    role: MessageRole
    content: str
    timestamp: Optional[datetime] = None


class UserContext(BaseModel):
    recent_topics: list[str] = Field(default_factory=list)
    common_questions: list[str] = Field(default_factory=list)
    preferred_responses: list[str] = Field(default_factory=list)


class SuggestionRequest(BaseModel):
    """Input handed to the AI suggestion source."""

    conversation_id: str
    message_content: str
    conversation_history: list[HistoryEntry] = Field(default_factory=list)
    user_context: Optional[UserContext] = None


class ActionResult(BaseModel):
    """Outcome of one action within a workflow run."""

    action: Action
    executed_at: datetime
    success: bool
    error: Optional[str] = None


class WorkflowExecution(BaseModel):
    """Append-only audit record; exactly one is written per execution."""

    id: UUID
    user_id: UUID
    workflow_id: Optional[UUID] = None
    conversation_id: str
    trigger_type: str
    trigger_data: dict[str, Any] = Field(default_factory=dict)
    actions_executed: list[ActionResult] = Field(default_factory=list)
    success: bool
    error_message: Optional[str] = None
    execution_time_ms: int
    created_at: datetime


class ExecutionResult(BaseModel):
    """What execute_workflow hands back to its caller.

    ``success`` means the workflow ran to completion; per-action status lives
    in ``actions_executed``.
    """

    success: bool
    actions_executed: list[ActionResult] = Field(default_factory=list)
    error: Optional[str] = None
    execution_time_ms: int = 0


class AnalysisResult(BaseModel):
    patterns: list[ConversationPattern] = Field(default_factory=list)
    suggestions: list[AutomationSuggestion] = Field(default_factory=list)
    workflows: list[AutomationWorkflow] = Field(default_factory=list)
