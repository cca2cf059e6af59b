"""Validate bundled prompt defaults."""

import pytest

from src.prompts.defaults import PROMPT_DEFAULTS, get_prompt


EXPECTED_PROMPT_NAMES = [
    "workflow-suggestions-system",
    "workflow-suggestions-request",
]


class TestPromptDefaults:
    def test_all_prompt_names_exist(self):
        for name in EXPECTED_PROMPT_NAMES:
            assert name in PROMPT_DEFAULTS, f"Missing prompt: {name}"

    def test_all_values_are_non_empty_strings(self):
        for name, text in PROMPT_DEFAULTS.items():
            assert isinstance(text, str), f"{name} is not a string"
            assert len(text.strip()) > 0, f"{name} is empty"

    def test_system_prompt_describes_json_contract(self):
        text = get_prompt("workflow-suggestions-system")
        assert "requires_confirmation" in text
        assert "JSON array" in text

    def test_request_prompt_takes_count(self):
        text = get_prompt("workflow-suggestions-request").format(count=3)
        assert "3 most relevant" in text

    def test_unknown_prompt_raises(self):
        with pytest.raises(KeyError):
            get_prompt("does-not-exist")
