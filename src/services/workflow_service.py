"""Workflow store: CRUD over user-owned automation workflows."""

import json
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

import asyncpg
import structlog

from src.database import get_pool
from src.models.automation import AutomationWorkflow, WorkflowCreate, WorkflowUpdate
from src.services.errors import PersistenceError

logger = structlog.get_logger(__name__)

WORKFLOW_COLUMNS = """
    id, user_id, title, description, trigger_type, trigger_conditions, actions,
    is_active, priority, usage_count, last_used_at, created_at, updated_at
"""

JSON_FIELDS = {"trigger_conditions", "actions"}

UPDATABLE_FIELDS = {
    "title", "description", "trigger_type", "trigger_conditions",
    "actions", "is_active", "priority",
}

# Only description may be cleared; None for any other field means "leave as is"
NULLABLE_FIELDS = {"description"}


def _parse_uuid(value: str) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _load_json(value: Any) -> Any:
    if isinstance(value, str):
        return json.loads(value)
    return value


def row_to_workflow(row: Any) -> AutomationWorkflow:
    """Build a workflow model from a database row."""
    data = dict(row)
    for field in JSON_FIELDS:
        data[field] = _load_json(data.get(field)) or []
    return AutomationWorkflow.model_validate(data)


def _column_value(field: str, value: Any) -> Any:
    if value is None:
        return None
    if field in JSON_FIELDS:
        return json.dumps([item.model_dump(mode="json") for item in value])
    if field == "trigger_type":
        return value.value
    return value


class WorkflowService:
    """Persists automation workflows. Rows are only ever soft-deleted."""

    async def create(
        self, user_id: str, data: WorkflowCreate
    ) -> Optional[AutomationWorkflow]:
        """Insert a new workflow owned by ``user_id``.

        Returns None when the workflows table does not exist.

        Raises:
            PersistenceError: On any other database failure
        """
        pool = await get_pool()
        now = datetime.now(timezone.utc)

        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO automation_workflows
                    (id, user_id, title, description, trigger_type, trigger_conditions,
                     actions, is_active, priority, usage_count, created_at, updated_at)
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, 0, $10, $11)
                    RETURNING {WORKFLOW_COLUMNS}
                    """,
                    uuid4(),
                    UUID(user_id),
                    data.title,
                    data.description,
                    data.trigger_type.value,
                    _column_value("trigger_conditions", data.trigger_conditions),
                    _column_value("actions", data.actions),
                    data.is_active,
                    data.priority,
                    now,
                    now,
                )
        except asyncpg.exceptions.UndefinedTableError:
            logger.warning("automation_workflows_table_missing", operation="create")
            return None
        except asyncpg.PostgresError as e:
            raise PersistenceError("workflow_create", e) from e

        workflow = row_to_workflow(row)
        logger.info(
            "workflow_created",
            workflow_id=str(workflow.id),
            user_id=user_id,
            trigger_type=workflow.trigger_type.value,
            action_count=len(workflow.actions),
        )
        return workflow

    async def list_active(self, user_id: str) -> list[AutomationWorkflow]:
        """Active workflows for a user, highest priority then newest first.

        Returns an empty list when the workflows table does not exist.
        """
        uid = _parse_uuid(user_id)
        if uid is None:
            return []

        pool = await get_pool()

        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    f"""
                    SELECT {WORKFLOW_COLUMNS}
                    FROM automation_workflows
                    WHERE user_id = $1 AND is_active = TRUE
                    ORDER BY priority DESC, created_at DESC
                    """,
                    uid,
                )
        except asyncpg.exceptions.UndefinedTableError:
            logger.warning("automation_workflows_table_missing", operation="list_active")
            return []
        except asyncpg.PostgresError as e:
            raise PersistenceError("workflow_list", e) from e

        return [row_to_workflow(row) for row in rows]

    async def get_by_id(
        self, workflow_id: str, user_id: str
    ) -> Optional[AutomationWorkflow]:
        """Fetch one workflow, scoped to its owner. Malformed ids read as missing."""
        wid, uid = _parse_uuid(workflow_id), _parse_uuid(user_id)
        if wid is None or uid is None:
            return None

        pool = await get_pool()

        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    SELECT {WORKFLOW_COLUMNS}
                    FROM automation_workflows
                    WHERE id = $1 AND user_id = $2
                    """,
                    wid,
                    uid,
                )
        except asyncpg.PostgresError as e:
            raise PersistenceError("workflow_get", e) from e

        if row is None:
            return None
        return row_to_workflow(row)

    async def update(
        self, workflow_id: str, user_id: str, patch: WorkflowUpdate
    ) -> Optional[AutomationWorkflow]:
        """Apply a partial update. Returns None if the owner has no such workflow."""
        wid, uid = _parse_uuid(workflow_id), _parse_uuid(user_id)
        if wid is None or uid is None:
            return None

        changes = {
            key: value
            for key, value in patch.model_dump(exclude_unset=True).items()
            if key in UPDATABLE_FIELDS
            and (value is not None or key in NULLABLE_FIELDS)
        }
        if not changes:
            return await self.get_by_id(workflow_id, user_id)

        set_clauses = []
        params: list[Any] = [wid, uid]
        for key in changes:
            params.append(_column_value(key, getattr(patch, key)))
            set_clauses.append(f"{key} = ${len(params)}")
        params.append(datetime.now(timezone.utc))
        set_clauses.append(f"updated_at = ${len(params)}")

        pool = await get_pool()

        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    UPDATE automation_workflows
                    SET {", ".join(set_clauses)}
                    WHERE id = $1 AND user_id = $2
                    RETURNING {WORKFLOW_COLUMNS}
                    """,
                    *params,
                )
        except asyncpg.PostgresError as e:
            raise PersistenceError("workflow_update", e) from e

        if row is None:
            return None

        logger.info(
            "workflow_updated",
            workflow_id=workflow_id,
            user_id=user_id,
            fields=sorted(changes),
        )
        return row_to_workflow(row)

    async def deactivate(self, workflow_id: str, user_id: str) -> bool:
        """Soft-delete a workflow by clearing is_active."""
        updated = await self.update(workflow_id, user_id, WorkflowUpdate(is_active=False))
        if updated is None:
            return False
        logger.info("workflow_deactivated", workflow_id=workflow_id, user_id=user_id)
        return True

    async def increment_usage(self, workflow_id: str) -> None:
        """Atomically bump usage_count and stamp last_used_at."""
        wid = _parse_uuid(workflow_id)
        if wid is None:
            return

        pool = await get_pool()

        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    """
                    UPDATE automation_workflows
                    SET usage_count = usage_count + 1, last_used_at = NOW()
                    WHERE id = $1
                    """,
                    wid,
                )
        except asyncpg.PostgresError as e:
            raise PersistenceError("workflow_increment_usage", e) from e
