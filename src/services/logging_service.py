"""Structured logging configuration with redaction support."""

import logging
import sys
from typing import Any, Dict

import structlog

SENSITIVE_KEYS = {
    "api_key",
    "openai_api_key",
    "authorization",
    "secret",
    "password",
    "postgres_url",
}

# Chat text is replaced by its length so message bodies never reach the logs
CONTENT_KEYS = {
    "content",
    "message_content",
    "message_text",
}


def redact_sensitive(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Redact credentials and chat content from log entries.

    Redacts:
    - api_key fields and the database URL
    - Authorization headers
    - Any field containing 'secret' or 'password'
    - Raw message content (replaced with its character count)
    """
    for key in list(event_dict.keys()):
        key_lower = key.lower()
        if any(sensitive in key_lower for sensitive in SENSITIVE_KEYS):
            event_dict[key] = "REDACTED"
        elif key_lower in CONTENT_KEYS and isinstance(event_dict[key], str):
            event_dict[key] = f"<{len(event_dict[key])} chars>"

    return event_dict


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structlog for JSON output with contextvars support.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_sensitive,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_automation_context(user_id: str, conversation_id: str | None = None) -> None:
    """Attach user and conversation ids to every log line in this task."""
    context = {"user_id": user_id}
    if conversation_id is not None:
        context["conversation_id"] = conversation_id
    structlog.contextvars.bind_contextvars(**context)
