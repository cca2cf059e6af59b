"""Workflow execution engine and its audit log."""

import json
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional
from uuid import UUID, uuid4

import structlog

from src.database import get_pool
from src.models.automation import (
    Action,
    ActionResult,
    AutomationWorkflow,
    ExecutionResult,
    TriggerType,
    WorkflowExecution,
)
from src.services.errors import ActionExecutionError, WorkflowNotFoundError
from src.services.workflow_service import WorkflowService

logger = structlog.get_logger(__name__)

# Receives the action plus a context dict with workflow_id, user_id,
# conversation_id and trigger_data
ActionHandler = Callable[[Action, dict[str, Any]], Awaitable[Any]]


def _elapsed_ms(start_time: float) -> int:
    return int((time.perf_counter() - start_time) * 1000)


def _optional_uuid(value: Optional[str]) -> Optional[UUID]:
    if value is None:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None


class WorkflowExecutionService:
    """Runs a workflow's actions and records exactly one audit row per run.

    Actions are opaque to the engine. A caller may register a handler per
    action type; actions without a handler are recorded as executed so the
    UI layer can apply them.
    """

    def __init__(
        self,
        workflow_service: Optional[WorkflowService] = None,
        handlers: Optional[dict[str, ActionHandler]] = None,
    ):
        self.workflow_service = workflow_service or WorkflowService()
        self._handlers: dict[str, ActionHandler] = dict(handlers or {})

    def register_handler(self, action_type: str, handler: ActionHandler) -> None:
        self._handlers[action_type] = handler

    async def execute(
        self,
        workflow_id: str,
        user_id: str,
        conversation_id: str,
        trigger_data: Optional[dict[str, Any]] = None,
        trigger_type: str = TriggerType.MANUAL.value,
    ) -> ExecutionResult:
        """Execute a workflow and log the outcome.

        Never raises. A missing workflow or an unexpected error yields
        ``success=False`` with the error text; a failing action only marks
        its own ActionResult.
        """
        start_time = time.perf_counter()
        trigger_data = trigger_data or {}
        workflow: Optional[AutomationWorkflow] = None

        try:
            workflow = await self.workflow_service.get_by_id(workflow_id, user_id)
            if workflow is None:
                raise WorkflowNotFoundError(workflow_id)

            actions_executed = await self._run_actions(
                workflow, user_id, conversation_id, trigger_data
            )
            await self._increment_usage(workflow_id)
        except Exception as e:
            execution_time_ms = _elapsed_ms(start_time)
            error_message = str(e) or type(e).__name__
            logger.error(
                "workflow_execution_failed",
                workflow_id=workflow_id,
                user_id=user_id,
                conversation_id=conversation_id,
                error=error_message,
                error_type=type(e).__name__,
                execution_time_ms=execution_time_ms,
            )
            # Only a loaded workflow may be referenced by the audit row
            if workflow is None:
                logged_id = None
                trigger_data = {**trigger_data, "requested_workflow_id": workflow_id}
            else:
                logged_id = workflow_id
            await self.log_execution(
                user_id=user_id,
                workflow_id=logged_id,
                conversation_id=conversation_id,
                trigger_type=trigger_type,
                trigger_data=trigger_data,
                actions_executed=[],
                success=False,
                error_message=error_message,
                execution_time_ms=execution_time_ms,
            )
            return ExecutionResult(
                success=False,
                error=error_message,
                execution_time_ms=execution_time_ms,
            )

        execution_time_ms = _elapsed_ms(start_time)
        failed = sum(1 for result in actions_executed if not result.success)
        logger.info(
            "workflow_executed",
            workflow_id=workflow_id,
            user_id=user_id,
            conversation_id=conversation_id,
            trigger_type=trigger_type,
            action_count=len(actions_executed),
            failed_actions=failed,
            execution_time_ms=execution_time_ms,
        )
        await self.log_execution(
            user_id=user_id,
            workflow_id=workflow_id,
            conversation_id=conversation_id,
            trigger_type=trigger_type,
            trigger_data=trigger_data,
            actions_executed=actions_executed,
            success=True,
            execution_time_ms=execution_time_ms,
        )
        return ExecutionResult(
            success=True,
            actions_executed=actions_executed,
            execution_time_ms=execution_time_ms,
        )

    async def _run_actions(
        self,
        workflow: AutomationWorkflow,
        user_id: str,
        conversation_id: str,
        trigger_data: dict[str, Any],
    ) -> list[ActionResult]:
        """Run every action in order; one failure never stops the rest."""
        context = {
            "workflow_id": str(workflow.id),
            "user_id": user_id,
            "conversation_id": conversation_id,
            "trigger_data": trigger_data,
        }
        results = []

        for index, action in enumerate(workflow.actions):
            executed_at = datetime.now(timezone.utc)
            try:
                handler = self._handlers.get(action.type)
                if handler is not None:
                    await handler(action, context)
                else:
                    logger.debug(
                        "workflow_action_recorded",
                        workflow_id=str(workflow.id),
                        action_type=action.type,
                        position=index,
                    )
                results.append(
                    ActionResult(action=action, executed_at=executed_at, success=True)
                )
            except Exception as e:
                failure = (
                    e if isinstance(e, ActionExecutionError)
                    else ActionExecutionError(action.type, str(e) or type(e).__name__)
                )
                logger.warning(
                    "workflow_action_failed",
                    workflow_id=str(workflow.id),
                    action_type=action.type,
                    position=index,
                    error=str(failure),
                    error_type=type(e).__name__,
                )
                results.append(
                    ActionResult(
                        action=action,
                        executed_at=executed_at,
                        success=False,
                        error=str(failure),
                    )
                )

        return results

    async def _increment_usage(self, workflow_id: str) -> None:
        try:
            await self.workflow_service.increment_usage(workflow_id)
        except Exception as e:
            logger.error(
                "workflow_usage_update_failed",
                workflow_id=workflow_id,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def log_execution(
        self,
        user_id: str,
        workflow_id: Optional[str],
        conversation_id: str,
        trigger_type: str,
        trigger_data: dict[str, Any],
        actions_executed: list[ActionResult],
        success: bool,
        execution_time_ms: int,
        error_message: Optional[str] = None,
    ) -> Optional[WorkflowExecution]:
        """Append an audit record. Failures are logged and swallowed."""
        try:
            record = WorkflowExecution(
                id=uuid4(),
                user_id=UUID(user_id),
                workflow_id=_optional_uuid(workflow_id),
                conversation_id=conversation_id,
                trigger_type=trigger_type,
                trigger_data=trigger_data,
                actions_executed=actions_executed,
                success=success,
                error_message=error_message,
                execution_time_ms=execution_time_ms,
                created_at=datetime.now(timezone.utc),
            )

            pool = await get_pool()
            async with pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO workflow_executions
                    (id, user_id, workflow_id, conversation_id, trigger_type, trigger_data,
                     actions_executed, success, error_message, execution_time_ms, created_at)
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
                    """,
                    record.id,
                    record.user_id,
                    record.workflow_id,
                    record.conversation_id,
                    record.trigger_type,
                    json.dumps(record.trigger_data, default=str),
                    json.dumps([r.model_dump(mode="json") for r in record.actions_executed]),
                    record.success,
                    record.error_message,
                    record.execution_time_ms,
                    record.created_at,
                )
        except Exception as e:
            logger.error(
                "workflow_execution_log_failed",
                user_id=user_id,
                workflow_id=workflow_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        return record

    async def list_executions(
        self,
        user_id: str,
        workflow_id: Optional[str] = None,
        limit: int = 20,
    ) -> list[WorkflowExecution]:
        """Read a user's audit trail, newest first."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT id, user_id, workflow_id, conversation_id, trigger_type,
                       trigger_data, actions_executed, success, error_message,
                       execution_time_ms, created_at
                FROM workflow_executions
                WHERE user_id = $1 AND ($2::uuid IS NULL OR workflow_id = $2)
                ORDER BY created_at DESC
                LIMIT $3
                """,
                UUID(user_id),
                _optional_uuid(workflow_id),
                limit,
            )

        executions = []
        for row in rows:
            data = dict(row)
            for field in ("trigger_data", "actions_executed"):
                if isinstance(data[field], str):
                    data[field] = json.loads(data[field])
            data["execution_time_ms"] = data["execution_time_ms"] or 0
            executions.append(WorkflowExecution.model_validate(data))
        return executions
