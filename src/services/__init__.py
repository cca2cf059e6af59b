"""Services package exports."""

from src.services.automation_service import AutomationService
from src.services.logging_service import configure_logging

__all__ = [
    "AutomationService",
    "configure_logging",
]
