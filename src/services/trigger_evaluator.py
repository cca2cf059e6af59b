"""Trigger condition evaluation against chat messages.

All functions here are pure and never raise: a condition that cannot be
evaluated counts as not matching.
"""

import re
from typing import Callable, Iterable

import structlog

from src.models.automation import TriggerCondition, TriggerConditionType

logger = structlog.get_logger(__name__)


def calculate_similarity(text1: str, text2: str, case_sensitive: bool = False) -> float:
    """Word-overlap similarity in [0, 1].

    Counts the words of ``text1`` that also appear in ``text2`` and divides by
    the longer word count. Identical strings score 1.0.
    """
    if text1 == text2:
        return 1.0

    if not case_sensitive:
        text1, text2 = text1.lower(), text2.lower()

    words1 = text1.split()
    words2 = text2.split()
    if not words1 or not words2:
        return 0.0

    vocabulary = set(words2)
    common = [word for word in words1 if word in vocabulary]
    return len(common) / max(len(words1), len(words2))


def _contains(message: str, condition: TriggerCondition) -> bool:
    if condition.case_sensitive:
        return condition.value in message
    return condition.value.lower() in message.lower()


def _matches(message: str, condition: TriggerCondition) -> bool:
    flags = 0 if condition.case_sensitive else re.IGNORECASE
    try:
        pattern = re.compile(condition.value, flags)
    except re.error as e:
        logger.warning("invalid_trigger_regex", pattern=condition.value, error=str(e))
        return False
    return pattern.search(message) is not None


def _similar_to(message: str, condition: TriggerCondition) -> bool:
    similarity = calculate_similarity(message, condition.value, condition.case_sensitive)
    return similarity >= condition.threshold


EVALUATORS: dict[TriggerConditionType, Callable[[str, TriggerCondition], bool]] = {
    TriggerConditionType.CONTAINS: _contains,
    TriggerConditionType.MATCHES: _matches,
    TriggerConditionType.SIMILAR_TO: _similar_to,
}


def evaluate_condition(message: str, condition: TriggerCondition) -> bool:
    """Evaluate one condition; unknown types and internal errors fail closed."""
    evaluator = EVALUATORS.get(condition.type)
    if evaluator is None:
        logger.warning("unknown_trigger_condition_type", condition_type=str(condition.type))
        return False

    try:
        return evaluator(message, condition)
    except Exception as e:
        logger.warning(
            "trigger_condition_evaluation_failed",
            condition_type=condition.type.value,
            error=str(e),
            error_type=type(e).__name__,
        )
        return False


def matches(message: str, conditions: Iterable[TriggerCondition]) -> bool:
    """True when every condition passes. No conditions means always true."""
    return all(evaluate_condition(message, condition) for condition in conditions)
