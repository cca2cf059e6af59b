"""Unit tests for WorkflowSuggestionService."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.config import Settings
from src.models.automation import (
    HistoryEntry,
    SuggestionRequest,
    SuggestionSourceKind,
    UserContext,
)
from src.services.errors import FeatureDisabledError, SourceUnavailableError
from src.services.suggestion_service import WorkflowSuggestionService


def ai_item(**overrides):
    item = {
        "id": "s1",
        "type": "template",
        "title": "Refund reply",
        "description": "Insert the refund policy",
        "confidence": 0.8,
        "actions": [{"type": "insert_text", "data": {"text": "Our policy..."}}],
        "requires_confirmation": True,
    }
    item.update(overrides)
    return item


def completion(content):
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    return response


@pytest.fixture
def service():
    svc = WorkflowSuggestionService()
    svc._client = MagicMock()
    svc._client.chat.completions.create = AsyncMock()
    return svc


@pytest.fixture
def request_data():
    return SuggestionRequest(
        conversation_id="conv-1",
        message_content="I want a refund",
        conversation_history=[HistoryEntry(role="user", content="I want a refund")],
    )


class TestGenerateSuggestions:
    @pytest.mark.asyncio
    async def test_returns_validated_suggestions(self, service, request_data):
        service._client.chat.completions.create.return_value = completion(
            json.dumps([ai_item()])
        )

        suggestions = await service.generate_suggestions(request_data)

        assert len(suggestions) == 1
        assert suggestions[0].source == SuggestionSourceKind.AI_GENERATED
        assert suggestions[0].actions[0].type == "insert_text"
        kwargs = service._client.chat.completions.create.call_args.kwargs
        assert kwargs["messages"][0]["role"] == "system"
        assert "I want a refund" in kwargs["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_without_api_key_is_disabled(self, request_data):
        with patch(
            "src.services.suggestion_service.get_settings",
            return_value=Settings(openai_api_key=""),
        ):
            service = WorkflowSuggestionService()

        with pytest.raises(FeatureDisabledError):
            await service.generate_suggestions(request_data)

    @pytest.mark.asyncio
    async def test_api_failure_raises_source_unavailable(self, service, request_data):
        service._client.chat.completions.create.side_effect = RuntimeError("timeout")

        with pytest.raises(SourceUnavailableError) as exc_info:
            await service.generate_suggestions(request_data)

        assert exc_info.value.source == "ai_suggestions"

    @pytest.mark.asyncio
    async def test_empty_completion_yields_nothing(self, service, request_data):
        service._client.chat.completions.create.return_value = completion(None)

        assert await service.generate_suggestions(request_data) == []


class TestParseSuggestions:
    def test_malformed_json_yields_empty(self, service):
        assert service.parse_suggestions("not json at all") == []

    def test_non_array_yields_empty(self, service):
        assert service.parse_suggestions(json.dumps(ai_item())) == []

    def test_strips_code_fence(self, service):
        content = "```json\n" + json.dumps([ai_item()]) + "\n```"
        assert len(service.parse_suggestions(content)) == 1

    def test_drops_entries_without_actions(self, service):
        content = json.dumps([ai_item(actions=[]), ai_item(id="s2")])
        assert [s.id for s in service.parse_suggestions(content)] == ["s2"]

    def test_drops_entries_without_boolean_confirmation(self, service):
        content = json.dumps([ai_item(requires_confirmation="yes"), ai_item(id="s2")])
        assert [s.id for s in service.parse_suggestions(content)] == ["s2"]

    def test_drops_out_of_range_confidence(self, service):
        content = json.dumps([ai_item(confidence=1.4), ai_item(id="s2")])
        assert [s.id for s in service.parse_suggestions(content)] == ["s2"]

    def test_source_is_always_ai_generated(self, service):
        content = json.dumps([ai_item(source="detected_pattern")])
        assert service.parse_suggestions(content)[0].source == SuggestionSourceKind.AI_GENERATED

    def test_missing_id_is_generated(self, service):
        item = ai_item()
        del item["id"]
        suggestion = service.parse_suggestions(json.dumps([item]))[0]
        assert suggestion.id.startswith("ai-")

    def test_caps_at_configured_count(self, service):
        service.settings = Settings(max_ai_suggestions=2)
        content = json.dumps([ai_item(id=f"s{i}") for i in range(5)])
        assert [s.id for s in service.parse_suggestions(content)] == ["s0", "s1"]


class TestBuildPrompt:
    def test_truncates_long_history_entries(self, service):
        request = SuggestionRequest(
            conversation_id="conv-1",
            message_content="latest",
            conversation_history=[HistoryEntry(role="assistant", content="x" * 300)],
        )

        prompt = service.build_prompt(request)

        assert "ASSISTANT: " + "x" * 200 + "..." in prompt
        assert "x" * 201 not in prompt

    def test_keeps_last_ten_history_entries(self, service):
        request = SuggestionRequest(
            conversation_id="conv-1",
            message_content="latest",
            conversation_history=[
                HistoryEntry(role="user", content=f"entry-{i:02d}") for i in range(12)
            ],
        )

        prompt = service.build_prompt(request)

        assert "entry-01" not in prompt
        assert "entry-02" in prompt
        assert "entry-11" in prompt

    def test_includes_user_context(self, service):
        request = SuggestionRequest(
            conversation_id="conv-1",
            message_content="latest",
            user_context=UserContext(recent_topics=["billing", "refunds"]),
        )

        assert "RECENT TOPICS: billing, refunds" in service.build_prompt(request)
