"""Pattern service for detecting and recording conversation patterns."""

import json
from datetime import datetime, timezone
from typing import Optional, Sequence
from uuid import UUID, uuid4

import structlog

from src.config import get_settings
from src.database import get_pool
from src.models.automation import (
    Action,
    ActionType,
    AutomationSuggestion,
    ConversationMessage,
    ConversationPattern,
    MessageRole,
    PatternDetectionResult,
    PatternType,
    SuggestionSourceKind,
    SuggestionType,
)
from src.services.trigger_evaluator import calculate_similarity

logger = structlog.get_logger(__name__)

QUESTION_WORDS = {
    "what", "how", "why", "when", "where", "who", "which", "can", "could",
    "would", "should", "do", "does", "did", "is", "are", "was", "were",
}

# Group size at which confidence saturates to 1.0
REPETITIVE_QUESTION_SCALE = 5
COMMON_RESPONSE_SCALE = 4
WORKFLOW_SEQUENCE_SCALE = 3

MAX_EXAMPLES = 3


def is_question(text: str) -> bool:
    """Heuristic: starts with an interrogative or auxiliary word, or has a '?'."""
    words = text.lower().split()
    return bool(words and words[0] in QUESTION_WORDS) or "?" in text


class PatternDetectionService:
    """Detects repetitive questions, common responses and repeated exchanges."""

    def __init__(self):
        self.settings = get_settings()

    async def detect_patterns(
        self,
        conversation_id: str,
        user_id: str,
        messages: Sequence[ConversationMessage],
    ) -> PatternDetectionResult:
        """Analyze a conversation and return patterns plus derived suggestions.

        Conversations with fewer than ``pattern_min_user_messages`` user
        messages produce an empty result.
        """
        threshold = self.settings.pattern_min_confidence
        user_messages = [m for m in messages if m.role == MessageRole.USER]

        if len(user_messages) < self.settings.pattern_min_user_messages:
            return PatternDetectionResult(confidence_threshold=threshold)

        patterns: list[ConversationPattern] = []
        patterns.extend(
            self._group_similar(
                [m for m in user_messages if is_question(m.content.strip())],
                user_id,
                PatternType.REPETITIVE_QUESTION,
                REPETITIVE_QUESTION_SCALE,
            )
        )
        patterns.extend(
            self._group_similar(
                [m for m in messages if m.role == MessageRole.ASSISTANT],
                user_id,
                PatternType.COMMON_RESPONSE,
                COMMON_RESPONSE_SCALE,
            )
        )
        patterns.extend(self._detect_sequences(messages, user_id))

        patterns = [p for p in patterns if p.confidence >= threshold]
        suggestions = [self._suggestion_for(p) for p in patterns]

        logger.info(
            "patterns_detected",
            conversation_id=conversation_id,
            user_id=user_id,
            pattern_count=len(patterns),
            suggestion_count=len(suggestions),
        )

        return PatternDetectionResult(
            patterns=patterns,
            suggestions=suggestions,
            confidence_threshold=threshold,
        )

    def _group_similar(
        self,
        messages: Sequence[ConversationMessage],
        user_id: str,
        pattern_type: PatternType,
        scale: int,
    ) -> list[ConversationPattern]:
        """Group messages whose text is similar to a group's first message."""
        groups: list[list[ConversationMessage]] = []

        for message in messages:
            content = message.content.strip()
            if len(content) < self.settings.pattern_min_length:
                continue

            for group in groups:
                similarity = calculate_similarity(content, group[0].content.strip())
                if similarity >= self.settings.default_similarity_threshold:
                    group.append(message)
                    break
            else:
                groups.append([message])

        return [
            ConversationPattern(
                user_id=user_id,
                pattern_type=pattern_type,
                pattern_data={
                    "text": group[0].content.strip(),
                    "frequency": len(group),
                    "examples": [m.content for m in group[:MAX_EXAMPLES]],
                },
                confidence=min(len(group) / scale, 1.0),
                detection_count=len(group),
                last_detected_at=group[-1].created_at,
            )
            for group in groups
            if len(group) >= 2
        ]

    def _detect_sequences(
        self, messages: Sequence[ConversationMessage], user_id: str
    ) -> list[ConversationPattern]:
        """Find identical user -> assistant exchanges that repeat."""
        sequences: dict[tuple[str, str], list[ConversationMessage]] = {}

        for current, following in zip(messages, messages[1:]):
            if current.role == MessageRole.USER and following.role == MessageRole.ASSISTANT:
                sequences.setdefault((current.content, following.content), []).append(current)

        patterns = []
        for (user_text, assistant_text), occurrences in sequences.items():
            if len(occurrences) < 2:
                continue
            patterns.append(
                ConversationPattern(
                    user_id=user_id,
                    pattern_type=PatternType.WORKFLOW_SEQUENCE,
                    pattern_data={
                        "text": f"{user_text}|{assistant_text}",
                        "frequency": len(occurrences),
                        "examples": [f"User: {user_text}\nAssistant: {assistant_text}"],
                    },
                    confidence=min(len(occurrences) / WORKFLOW_SEQUENCE_SCALE, 1.0),
                    detection_count=len(occurrences),
                    last_detected_at=occurrences[-1].created_at,
                )
            )
        return patterns

    def _suggestion_for(self, pattern: ConversationPattern) -> AutomationSuggestion:
        text = pattern.pattern_data.get("text", "")
        suggestion_id = f"suggestion-{pattern.id or uuid4()}"

        if pattern.pattern_type == PatternType.REPETITIVE_QUESTION:
            return AutomationSuggestion(
                id=suggestion_id,
                type=SuggestionType.PATTERN,
                title="Repetitive Question Detected",
                description=f'You frequently ask: "{text[:50]}..."',
                confidence=pattern.confidence,
                actions=[
                    Action(
                        type=ActionType.SUGGEST_RESPONSE.value,
                        data={"suggestion": "Create a workflow for this common question"},
                        confirmation_required=True,
                    )
                ],
                source=SuggestionSourceKind.DETECTED_PATTERN,
                requires_confirmation=True,
            )

        if pattern.pattern_type == PatternType.COMMON_RESPONSE:
            return AutomationSuggestion(
                id=suggestion_id,
                type=SuggestionType.PATTERN,
                title="Common Response Pattern",
                description="Assistant frequently responds with similar content",
                confidence=pattern.confidence,
                actions=[Action(type=ActionType.APPLY_TEMPLATE.value, data={"text": text})],
                source=SuggestionSourceKind.DETECTED_PATTERN,
                requires_confirmation=False,
            )

        return AutomationSuggestion(
            id=suggestion_id,
            type=SuggestionType.WORKFLOW,
            title="Workflow Sequence Detected",
            description="Create an automated workflow for this interaction pattern",
            confidence=pattern.confidence,
            actions=[
                Action(
                    type=ActionType.EXECUTE_WORKFLOW.value,
                    data={"workflow_id": f"auto-{uuid4()}"},
                    confirmation_required=True,
                )
            ],
            source=SuggestionSourceKind.DETECTED_PATTERN,
            requires_confirmation=True,
        )

    async def save_patterns(self, patterns: Sequence[ConversationPattern]) -> int:
        """Upsert detected patterns, bumping detection_count on repeats.

        Returns the number of patterns written.
        """
        if not patterns:
            return 0

        pool = await get_pool()
        now = datetime.now(timezone.utc)

        async with pool.acquire() as conn:
            for pattern in patterns:
                await conn.execute(
                    """
                    INSERT INTO conversation_patterns
                    (id, user_id, pattern_type, pattern_key, pattern_data, confidence,
                     detection_count, last_detected_at, is_active, created_at, updated_at)
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
                    ON CONFLICT (user_id, pattern_type, pattern_key) DO UPDATE
                    SET pattern_data = EXCLUDED.pattern_data,
                        confidence = GREATEST(conversation_patterns.confidence, EXCLUDED.confidence),
                        detection_count = conversation_patterns.detection_count + EXCLUDED.detection_count,
                        last_detected_at = EXCLUDED.last_detected_at,
                        updated_at = EXCLUDED.updated_at
                    """,
                    uuid4(),
                    UUID(pattern.user_id),
                    pattern.pattern_type.value,
                    str(pattern.pattern_data.get("text", ""))[:500],
                    json.dumps(pattern.pattern_data),
                    pattern.confidence,
                    pattern.detection_count,
                    pattern.last_detected_at or now,
                    pattern.is_active,
                    now,
                    now,
                )

        logger.info("patterns_saved", count=len(patterns))
        return len(patterns)

    async def get_user_patterns(
        self, user_id: str, pattern_type: Optional[PatternType] = None
    ) -> list[ConversationPattern]:
        """List a user's active patterns, most confident first."""
        pool = await get_pool()
        uid = UUID(user_id)

        async with pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT id, user_id, pattern_type, pattern_data, confidence,
                       detection_count, last_detected_at, is_active
                FROM conversation_patterns
                WHERE user_id = $1 AND is_active = TRUE
                AND ($2::text IS NULL OR pattern_type = $2)
                ORDER BY confidence DESC, detection_count DESC
                """,
                uid,
                pattern_type.value if pattern_type else None,
            )

        patterns = []
        for row in rows:
            data = row["pattern_data"]
            patterns.append(
                ConversationPattern(
                    id=str(row["id"]),
                    user_id=str(row["user_id"]),
                    pattern_type=row["pattern_type"],
                    pattern_data=json.loads(data) if isinstance(data, str) else dict(data),
                    confidence=row["confidence"],
                    detection_count=row["detection_count"],
                    last_detected_at=row["last_detected_at"],
                    is_active=row["is_active"],
                )
            )
        return patterns
