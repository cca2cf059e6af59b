"""Settings store for per-user automation preferences."""

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

import asyncpg
import structlog

from src.database import get_pool
from src.models.automation import AutomationSettings
from src.services.errors import PersistenceError

logger = structlog.get_logger(__name__)

# Key inside user_settings.preferences that holds the automation settings
PREFERENCES_KEY = "automation"

# Module-level background task tracking
_pending_tasks: set[asyncio.Task] = set()


def schedule_write(coro) -> asyncio.Task:
    """Schedule a background write task and keep a reference until it finishes."""
    task = asyncio.create_task(coro)
    _pending_tasks.add(task)
    task.add_done_callback(_pending_tasks.discard)
    return task


async def await_pending_writes(timeout: float = 5.0) -> None:
    """Wait for outstanding settings writes, e.g. during shutdown.

    Args:
        timeout: Maximum seconds to wait for pending tasks
    """
    if not _pending_tasks:
        return

    logger.info("draining_pending_settings_writes", count=len(_pending_tasks))
    try:
        await asyncio.wait_for(
            asyncio.gather(*_pending_tasks, return_exceptions=True),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        logger.warning(
            "pending_settings_writes_timeout",
            remaining=len(_pending_tasks),
            timeout=timeout,
        )


class SettingsService:
    """Reads and writes the automation section of user_settings.preferences."""

    async def load(self, user_id: str) -> Optional[dict[str, Any]]:
        """Return the persisted settings patch for a user, or None if absent.

        Raises:
            PersistenceError: If the query fails
        """
        pool = await get_pool()

        try:
            async with pool.acquire() as conn:
                raw = await conn.fetchval(
                    """
                    SELECT preferences -> $2
                    FROM user_settings
                    WHERE user_id = $1
                    """,
                    UUID(user_id),
                    PREFERENCES_KEY,
                )
        except asyncpg.PostgresError as e:
            raise PersistenceError("settings_load", e) from e

        if raw is None:
            return None
        patch = json.loads(raw) if isinstance(raw, str) else raw
        if not isinstance(patch, dict):
            logger.warning("automation_settings_malformed", user_id=user_id)
            return None
        return patch

    async def save(self, user_id: str, settings: AutomationSettings) -> None:
        """Upsert the automation section, leaving other preferences untouched.

        Raises:
            PersistenceError: If the write fails
        """
        pool = await get_pool()
        now = datetime.now(timezone.utc)

        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO user_settings (user_id, preferences, created_at, updated_at)
                    VALUES ($1, jsonb_build_object($2::text, $3::jsonb), $4, $4)
                    ON CONFLICT (user_id) DO UPDATE
                    SET preferences = COALESCE(user_settings.preferences, '{}'::jsonb)
                                      || jsonb_build_object($2::text, $3::jsonb),
                        updated_at = EXCLUDED.updated_at
                    """,
                    UUID(user_id),
                    PREFERENCES_KEY,
                    settings.model_dump_json(),
                    now,
                )
        except asyncpg.PostgresError as e:
            raise PersistenceError("settings_save", e) from e

        logger.info("automation_settings_saved", user_id=user_id)

    async def load_merged(
        self, user_id: str, defaults: AutomationSettings
    ) -> AutomationSettings:
        """Merge the persisted patch over ``defaults``.

        Any failure (store error, invalid stored values) keeps ``defaults``.
        """
        try:
            patch = await self.load(user_id)
            return defaults.merged(patch)
        except Exception as e:
            logger.warning(
                "automation_settings_load_failed",
                user_id=user_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return defaults

    def persist_in_background(self, user_id: str, settings: AutomationSettings) -> asyncio.Task:
        """Save without blocking the caller; failures are logged only."""
        return schedule_write(self._save_best_effort(user_id, settings))

    async def _save_best_effort(self, user_id: str, settings: AutomationSettings) -> None:
        try:
            await self.save(user_id, settings)
        except Exception as e:
            logger.error(
                "automation_settings_save_failed",
                user_id=user_id,
                error=str(e),
                error_type=type(e).__name__,
            )
