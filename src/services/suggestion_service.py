"""AI suggestion source backed by the OpenAI chat completions API."""

import json
from typing import Any, Optional
from uuid import uuid4

import structlog
from openai import AsyncOpenAI
from pydantic import ValidationError

from src.config import get_settings
from src.models.automation import (
    AutomationSuggestion,
    SuggestionRequest,
    SuggestionSourceKind,
)
from src.prompts.defaults import get_prompt
from src.services.errors import FeatureDisabledError, SourceUnavailableError

logger = structlog.get_logger(__name__)

HISTORY_LIMIT = 10
HISTORY_ENTRY_CHARS = 200


class WorkflowSuggestionService:
    """Asks a chat model for automation suggestions about the current message."""

    source_name = "ai_suggestions"

    def __init__(self):
        self.settings = get_settings()
        self._client: Optional[AsyncOpenAI] = None

    @property
    def client(self) -> AsyncOpenAI:
        """Lazy-load OpenAI client."""
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.settings.openai_api_key)
        return self._client

    async def generate_suggestions(
        self, request: SuggestionRequest
    ) -> list[AutomationSuggestion]:
        """Generate suggestions for the latest message.

        Raises:
            FeatureDisabledError: No OpenAI API key is configured
            SourceUnavailableError: The completion request failed
        """
        if not self.settings.openai_api_key:
            raise FeatureDisabledError("AI suggestions require OPENAI_API_KEY")

        try:
            response = await self.client.chat.completions.create(
                model=self.settings.suggestion_model,
                messages=[
                    {"role": "system", "content": get_prompt("workflow-suggestions-system")},
                    {"role": "user", "content": self.build_prompt(request)},
                ],
                temperature=self.settings.suggestion_temperature,
                max_tokens=self.settings.suggestion_max_tokens,
            )
        except Exception as e:
            raise SourceUnavailableError(self.source_name, str(e)) from e

        content = response.choices[0].message.content if response.choices else None
        suggestions = self.parse_suggestions(content)

        logger.info(
            "ai_suggestions_generated",
            conversation_id=request.conversation_id,
            model=self.settings.suggestion_model,
            count=len(suggestions),
        )
        return suggestions

    def build_prompt(self, request: SuggestionRequest) -> str:
        """Render the user prompt from the message, recent history and context."""
        parts = [
            "Analyze this conversation and suggest automation workflows:\n",
            f'CURRENT MESSAGE: "{request.message_content}"\n',
        ]

        history = request.conversation_history[-HISTORY_LIMIT:]
        if history:
            parts.append("RECENT CONVERSATION HISTORY:")
            for entry in history:
                text = entry.content[:HISTORY_ENTRY_CHARS]
                if len(entry.content) > HISTORY_ENTRY_CHARS:
                    text += "..."
                parts.append(f"{entry.role.value.upper()}: {text}")
            parts.append("")

        context = request.user_context
        if context:
            if context.recent_topics:
                parts.append(f"RECENT TOPICS: {', '.join(context.recent_topics)}")
            if context.common_questions:
                parts.append(f"COMMON QUESTIONS: {', '.join(context.common_questions)}")
            if context.preferred_responses:
                parts.append(
                    f"PREFERRED RESPONSES: {', '.join(context.preferred_responses[:3])}"
                )

        parts.append("")
        parts.append(
            get_prompt("workflow-suggestions-request").format(
                count=self.settings.max_ai_suggestions
            )
        )
        return "\n".join(parts)

    def parse_suggestions(self, content: Optional[str]) -> list[AutomationSuggestion]:
        """Validate a JSON array of suggestions, dropping malformed entries."""
        if not content:
            return []

        try:
            parsed = json.loads(_strip_code_fence(content))
        except json.JSONDecodeError as e:
            logger.warning("ai_suggestions_unparseable", error=str(e), content_length=len(content))
            return []

        if not isinstance(parsed, list):
            logger.warning("ai_suggestions_not_a_list", payload_type=type(parsed).__name__)
            return []

        suggestions = []
        for item in parsed:
            suggestion = self._validate(item)
            if suggestion is not None:
                suggestions.append(suggestion)
            if len(suggestions) >= self.settings.max_ai_suggestions:
                break
        return suggestions

    def _validate(self, item: Any) -> Optional[AutomationSuggestion]:
        if not isinstance(item, dict):
            return None
        if not isinstance(item.get("requires_confirmation"), bool):
            return None
        if not item.get("actions"):
            return None

        payload = {
            **item,
            "id": str(item.get("id") or f"ai-{uuid4()}"),
            "source": SuggestionSourceKind.AI_GENERATED,
        }
        try:
            return AutomationSuggestion.model_validate(payload)
        except ValidationError as e:
            logger.debug("ai_suggestion_rejected", error_count=e.error_count())
            return None


def _strip_code_fence(content: str) -> str:
    """Remove a surrounding ```json fence if the model added one."""
    text = content.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()
