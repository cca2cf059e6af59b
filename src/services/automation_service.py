"""Automation facade: the single entry point the chat application calls."""

from typing import Any, Optional, Sequence

import structlog

from src.models.automation import (
    AnalysisResult,
    AutomationSettings,
    AutomationWorkflow,
    ConversationMessage,
    ExecutionResult,
    TriggerType,
    WorkflowCreate,
    WorkflowUpdate,
)
from src.services.aggregator import SuggestionAggregator
from src.services.errors import PersistenceError
from src.services.execution_service import WorkflowExecutionService
from src.services.logging_service import bind_automation_context
from src.services.pattern_service import PatternDetectionService
from src.services.settings_service import SettingsService
from src.services.sources import PatternSource, SuggestionSource
from src.services.suggestion_service import WorkflowSuggestionService
from src.services.trigger_evaluator import matches
from src.services.workflow_service import WorkflowService

logger = structlog.get_logger(__name__)


class AutomationService:
    """Wires settings, suggestion sources, the workflow store and the executor.

    Each instance owns its current AutomationSettings value. The value is
    replaced, never mutated, and is passed explicitly to the aggregator.
    """

    def __init__(
        self,
        pattern_source: Optional[PatternSource] = None,
        suggestion_source: Optional[SuggestionSource] = None,
        workflow_service: Optional[WorkflowService] = None,
        settings_service: Optional[SettingsService] = None,
        execution_service: Optional[WorkflowExecutionService] = None,
        settings: Optional[AutomationSettings] = None,
    ):
        self.workflow_service = workflow_service or WorkflowService()
        self.settings_service = settings_service or SettingsService()
        self.execution_service = execution_service or WorkflowExecutionService(
            workflow_service=self.workflow_service
        )
        self.aggregator = SuggestionAggregator(
            pattern_source=pattern_source or PatternDetectionService(),
            suggestion_source=suggestion_source or WorkflowSuggestionService(),
            workflow_service=self.workflow_service,
        )
        self._settings = settings or AutomationSettings()

    async def initialize(self, user_id: str) -> AutomationSettings:
        """Load the user's persisted settings over the current defaults."""
        self._settings = await self.settings_service.load_merged(user_id, self._settings)
        logger.info("automation_initialized", user_id=user_id, enabled=self._settings.enabled)
        return self._settings

    def get_settings(self) -> AutomationSettings:
        return self._settings

    async def update_settings(
        self, user_id: str, patch: dict[str, Any]
    ) -> AutomationSettings:
        """Apply a settings patch now and persist it in the background.

        Raises:
            pydantic.ValidationError: If the patch produces invalid settings;
                the current settings are left unchanged
        """
        self._settings = self._settings.merged(patch)
        self.settings_service.persist_in_background(user_id, self._settings)
        logger.info("automation_settings_updated", user_id=user_id, fields=sorted(patch))
        return self._settings

    async def analyze_conversation(
        self,
        conversation_id: str,
        user_id: str,
        messages: Sequence[ConversationMessage],
    ) -> AnalysisResult:
        """Patterns, suggestions and active workflows for the latest message."""
        bind_automation_context(user_id, conversation_id)
        return await self.aggregator.analyze(
            self._settings, conversation_id, user_id, messages
        )

    async def create_workflow(
        self, user_id: str, data: WorkflowCreate
    ) -> Optional[AutomationWorkflow]:
        try:
            return await self.workflow_service.create(user_id, data)
        except PersistenceError as e:
            logger.error("workflow_create_failed", user_id=user_id, error=str(e))
            return None

    async def get_user_workflows(self, user_id: str) -> list[AutomationWorkflow]:
        try:
            return await self.workflow_service.list_active(user_id)
        except PersistenceError as e:
            logger.error("workflow_list_failed", user_id=user_id, error=str(e))
            return []

    async def update_workflow(
        self, workflow_id: str, user_id: str, patch: WorkflowUpdate
    ) -> Optional[AutomationWorkflow]:
        try:
            return await self.workflow_service.update(workflow_id, user_id, patch)
        except PersistenceError as e:
            logger.error(
                "workflow_update_failed",
                workflow_id=workflow_id,
                user_id=user_id,
                error=str(e),
            )
            return None

    async def delete_workflow(self, workflow_id: str, user_id: str) -> bool:
        """Soft-delete; the row stays for the audit trail."""
        try:
            return await self.workflow_service.deactivate(workflow_id, user_id)
        except PersistenceError as e:
            logger.error(
                "workflow_delete_failed",
                workflow_id=workflow_id,
                user_id=user_id,
                error=str(e),
            )
            return False

    async def execute_workflow(
        self,
        workflow_id: str,
        user_id: str,
        conversation_id: str,
        trigger_data: Optional[dict[str, Any]] = None,
        trigger_type: str = TriggerType.MANUAL.value,
    ) -> ExecutionResult:
        bind_automation_context(user_id, conversation_id)
        return await self.execution_service.execute(
            workflow_id,
            user_id,
            conversation_id,
            trigger_data=trigger_data,
            trigger_type=trigger_type,
        )

    def should_trigger_automation(self, message: str, workflow: AutomationWorkflow) -> bool:
        """Inactive workflows never match; otherwise all conditions must pass."""
        if not workflow.is_active:
            return False
        return matches(message, workflow.trigger_conditions)

    async def process_message(
        self, user_id: str, conversation_id: str, message: str
    ) -> list[ExecutionResult]:
        """Run every automatic workflow whose trigger conditions match ``message``.

        Manual workflows are skipped. Matching workflows run in priority order.
        """
        if not self._settings.enabled:
            return []

        results = []
        for workflow in await self.get_user_workflows(user_id):
            if workflow.trigger_type == TriggerType.MANUAL:
                continue
            if not self.should_trigger_automation(message, workflow):
                continue

            logger.info(
                "workflow_triggered",
                workflow_id=str(workflow.id),
                trigger_type=workflow.trigger_type.value,
                user_id=user_id,
            )
            results.append(
                await self.execute_workflow(
                    str(workflow.id),
                    user_id,
                    conversation_id,
                    trigger_data={"message": message},
                    trigger_type=workflow.trigger_type.value,
                )
            )
        return results
