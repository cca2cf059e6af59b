"""Suggestion aggregator: merges pattern and AI suggestions for one message."""

import asyncio
from typing import Any, Optional, Sequence

import structlog

from src.config import get_settings
from src.models.automation import (
    AnalysisResult,
    AutomationSettings,
    AutomationSuggestion,
    AutomationWorkflow,
    ConversationMessage,
    HistoryEntry,
    PatternDetectionResult,
    SuggestionRequest,
)
from src.services.errors import FeatureDisabledError
from src.services.sources import PatternSource, SuggestionSource
from src.services.workflow_service import WorkflowService

logger = structlog.get_logger(__name__)


async def _skipped(value: Any) -> Any:
    return value


class SuggestionAggregator:
    """Runs both suggestion sources, then filters and caps the combined list.

    Source failures are isolated: each one degrades to an empty contribution
    and the call as a whole never raises.
    """

    def __init__(
        self,
        pattern_source: PatternSource,
        suggestion_source: SuggestionSource,
        workflow_service: WorkflowService,
        history_window: Optional[int] = None,
    ):
        self.pattern_source = pattern_source
        self.suggestion_source = suggestion_source
        self.workflow_service = workflow_service
        self.history_window = (
            history_window if history_window is not None
            else get_settings().automation_history_window
        )

    async def analyze(
        self,
        settings: AutomationSettings,
        conversation_id: str,
        user_id: str,
        messages: Sequence[ConversationMessage],
    ) -> AnalysisResult:
        if not settings.enabled:
            logger.debug("automation_disabled", user_id=user_id)
            return AnalysisResult(workflows=await self._list_workflows(user_id))

        pattern_call = (
            self.pattern_source.detect_patterns(conversation_id, user_id, messages)
            if settings.pattern_detection_enabled
            else _skipped(PatternDetectionResult())
        )
        ai_call = (
            self.suggestion_source.generate_suggestions(
                self.build_request(conversation_id, messages)
            )
            if settings.workflow_suggestions_enabled
            else _skipped([])
        )

        pattern_outcome, ai_outcome, workflows = await asyncio.gather(
            pattern_call,
            ai_call,
            self._list_workflows(user_id),
            return_exceptions=True,
        )

        pattern_result = self._unwrap(pattern_outcome, "pattern_source", PatternDetectionResult())
        ai_suggestions = self._unwrap(ai_outcome, "suggestion_source", [])
        if isinstance(workflows, BaseException):
            workflows = []

        suggestions = select_suggestions(
            [*pattern_result.suggestions, *ai_suggestions], settings
        )

        logger.info(
            "conversation_analyzed",
            conversation_id=conversation_id,
            user_id=user_id,
            pattern_count=len(pattern_result.patterns),
            pattern_suggestions=len(pattern_result.suggestions),
            ai_suggestions=len(ai_suggestions),
            returned_suggestions=len(suggestions),
            workflow_count=len(workflows),
        )

        return AnalysisResult(
            patterns=list(pattern_result.patterns),
            suggestions=suggestions,
            workflows=workflows,
        )

    def build_request(
        self, conversation_id: str, messages: Sequence[ConversationMessage]
    ) -> SuggestionRequest:
        """Latest message plus the trailing history window for the AI source."""
        window = list(messages)[-self.history_window:] if self.history_window > 0 else []
        return SuggestionRequest(
            conversation_id=conversation_id,
            message_content=messages[-1].content if messages else "",
            conversation_history=[
                HistoryEntry(role=m.role, content=m.content, timestamp=m.created_at)
                for m in window
            ],
        )

    async def _list_workflows(self, user_id: str) -> list[AutomationWorkflow]:
        try:
            return await self.workflow_service.list_active(user_id)
        except Exception as e:
            logger.warning(
                "workflow_listing_failed",
                user_id=user_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return []

    @staticmethod
    def _unwrap(outcome: Any, source: str, default: Any) -> Any:
        if isinstance(outcome, FeatureDisabledError):
            logger.debug("suggestion_source_disabled", source=source, reason=str(outcome))
            return default
        if isinstance(outcome, BaseException):
            logger.warning(
                "suggestion_source_unavailable",
                source=source,
                error=str(outcome),
                error_type=type(outcome).__name__,
            )
            return default
        return outcome


def select_suggestions(
    candidates: Sequence[AutomationSuggestion], settings: AutomationSettings
) -> list[AutomationSuggestion]:
    """Keep candidates at or above the confidence threshold, then cap the count.

    Input order is preserved; there is no re-sort by confidence.
    """
    kept = [s for s in candidates if s.confidence >= settings.confidence_threshold]
    return kept[: settings.max_suggestions_per_message]
