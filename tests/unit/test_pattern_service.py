"""Unit tests for PatternDetectionService."""

import json
from datetime import datetime, timezone
from unittest.mock import patch
from uuid import uuid4

import pytest

from src.models.automation import (
    ConversationMessage,
    ConversationPattern,
    PatternType,
    SuggestionSourceKind,
)
from src.services.pattern_service import PatternDetectionService, is_question


def user(content: str) -> ConversationMessage:
    return ConversationMessage(role="user", content=content)


def assistant(content: str) -> ConversationMessage:
    return ConversationMessage(role="assistant", content=content)


@pytest.fixture
def service():
    return PatternDetectionService()


class TestIsQuestion:
    def test_question_word(self):
        assert is_question("how do I reset my password") is True

    def test_question_mark(self):
        assert is_question("reset password?") is True

    def test_statement(self):
        assert is_question("thanks, that worked") is False


class TestDetectPatterns:
    @pytest.mark.asyncio
    async def test_too_few_user_messages(self, service, user_id):
        result = await service.detect_patterns(
            "conv-1", user_id, [user("how do I reset my password"), user("how do I reset my password")]
        )

        assert result.patterns == []
        assert result.suggestions == []

    @pytest.mark.asyncio
    async def test_repetitive_questions(self, service, user_id):
        messages = [
            user("how do I reset my password"),
            user("how do I reset my password now"),
            user("something unrelated entirely"),
        ]

        result = await service.detect_patterns("conv-1", user_id, messages)

        questions = [p for p in result.patterns if p.pattern_type == PatternType.REPETITIVE_QUESTION]
        assert len(questions) == 1
        assert questions[0].detection_count == 2
        assert questions[0].confidence == pytest.approx(0.4)
        assert questions[0].pattern_data["text"] == "how do I reset my password"

    @pytest.mark.asyncio
    async def test_short_messages_are_ignored(self, service, user_id):
        messages = [user("why?"), user("why?"), user("why?")]

        result = await service.detect_patterns("conv-1", user_id, messages)

        assert result.patterns == []

    @pytest.mark.asyncio
    async def test_common_responses(self, service, user_id):
        reply = "Please check the billing page for details"
        messages = [
            user("first message here"), assistant(reply),
            user("second message here"), assistant(reply),
            user("third message here"), assistant(reply),
        ]

        result = await service.detect_patterns("conv-1", user_id, messages)

        responses = [p for p in result.patterns if p.pattern_type == PatternType.COMMON_RESPONSE]
        assert len(responses) == 1
        assert responses[0].confidence == pytest.approx(0.75)

    @pytest.mark.asyncio
    async def test_workflow_sequences(self, service, user_id):
        messages = [
            user("show my invoices"), assistant("Here are your invoices"),
            user("show my invoices"), assistant("Here are your invoices"),
            user("thanks a lot for that"),
        ]

        result = await service.detect_patterns("conv-1", user_id, messages)

        sequences = [p for p in result.patterns if p.pattern_type == PatternType.WORKFLOW_SEQUENCE]
        assert len(sequences) == 1
        assert sequences[0].confidence == pytest.approx(2 / 3)
        assert sequences[0].pattern_data["text"] == "show my invoices|Here are your invoices"

    @pytest.mark.asyncio
    async def test_suggestions_come_from_patterns(self, service, user_id):
        messages = [
            user("show my invoices"), assistant("Here are your invoices"),
            user("show my invoices"), assistant("Here are your invoices"),
            user("thanks a lot for that"),
        ]

        result = await service.detect_patterns("conv-1", user_id, messages)

        assert len(result.suggestions) == len(result.patterns)
        assert all(s.source == SuggestionSourceKind.DETECTED_PATTERN for s in result.suggestions)
        action_types = {s.actions[0].type for s in result.suggestions}
        assert "execute_workflow" in action_types
        assert "apply_template" in action_types


class TestSavePatterns:
    @pytest.mark.asyncio
    async def test_no_patterns_skips_database(self, service):
        with patch("src.services.pattern_service.get_pool") as get_pool:
            assert await service.save_patterns([]) == 0
        get_pool.assert_not_called()

    @pytest.mark.asyncio
    async def test_upserts_each_pattern(self, service, user_id, mock_pool):
        pool, conn = mock_pool
        patterns = [
            ConversationPattern(
                user_id=user_id,
                pattern_type=PatternType.REPETITIVE_QUESTION,
                pattern_data={"text": "how do I reset"},
                confidence=0.4,
                detection_count=2,
            )
        ]

        with patch("src.services.pattern_service.get_pool", return_value=pool):
            assert await service.save_patterns(patterns) == 1

        args = conn.execute.call_args[0]
        assert "ON CONFLICT (user_id, pattern_type, pattern_key)" in args[0]
        assert args[3] == "repetitive_question"
        assert args[4] == "how do I reset"


class TestGetUserPatterns:
    @pytest.mark.asyncio
    async def test_returns_patterns(self, service, user_id, mock_pool):
        pool, conn = mock_pool
        conn.fetch.return_value = [
            {
                "id": uuid4(),
                "user_id": user_id,
                "pattern_type": "common_response",
                "pattern_data": json.dumps({"text": "Hello"}),
                "confidence": 0.8,
                "detection_count": 4,
                "last_detected_at": datetime.now(timezone.utc),
                "is_active": True,
            }
        ]

        with patch("src.services.pattern_service.get_pool", return_value=pool):
            patterns = await service.get_user_patterns(user_id)

        assert len(patterns) == 1
        assert patterns[0].pattern_type == PatternType.COMMON_RESPONSE
        assert patterns[0].pattern_data == {"text": "Hello"}

    @pytest.mark.asyncio
    async def test_filters_by_type(self, service, user_id, mock_pool):
        pool, conn = mock_pool

        with patch("src.services.pattern_service.get_pool", return_value=pool):
            await service.get_user_patterns(user_id, PatternType.WORKFLOW_SEQUENCE)

        assert conn.fetch.call_args[0][2] == "workflow_sequence"
