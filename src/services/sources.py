"""Contracts for the collaborators that feed the suggestion aggregator."""

from typing import Protocol, Sequence

from src.models.automation import (
    AutomationSuggestion,
    ConversationMessage,
    PatternDetectionResult,
    SuggestionRequest,
)


class PatternSource(Protocol):
    """Detects conversation patterns and turns them into suggestions."""

    async def detect_patterns(
        self,
        conversation_id: str,
        user_id: str,
        messages: Sequence[ConversationMessage],
    ) -> PatternDetectionResult: ...


class SuggestionSource(Protocol):
    """Produces model-generated suggestions for the latest message."""

    async def generate_suggestions(
        self, request: SuggestionRequest
    ) -> list[AutomationSuggestion]: ...
