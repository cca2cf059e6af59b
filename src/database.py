"""Postgres pool, migrations and table checks for the automation engine."""

from pathlib import Path
from typing import Optional

import asyncpg
import structlog

from src.config import get_settings

logger = structlog.get_logger(__name__)

MIGRATIONS_DIR = Path(__file__).parent.parent / "migrations"

# Tables the engine reads and writes; absence of any of them degrades features
AUTOMATION_TABLES = (
    "automation_workflows",
    "workflow_executions",
    "conversation_patterns",
    "user_settings",
)

_pool: Optional[asyncpg.Pool] = None


async def get_pool() -> asyncpg.Pool:
    """Return the shared connection pool.

    Raises:
        RuntimeError: If init_database() has not been awaited yet
    """
    if _pool is None:
        raise RuntimeError("Database pool not initialized. Call init_database() first.")
    return _pool


async def init_database(dsn: Optional[str] = None) -> asyncpg.Pool:
    """Create the connection pool once and return it.

    Args:
        dsn: Optional connection string overriding Settings.postgres_url
    """
    global _pool

    if _pool is not None:
        return _pool

    dsn = dsn or get_settings().postgres_url

    try:
        _pool = await asyncpg.create_pool(dsn, min_size=1, max_size=5, command_timeout=30)
    except Exception as e:
        logger.error("database_pool_creation_failed", error=str(e), error_type=type(e).__name__)
        raise

    logger.info("database_pool_created", min_size=1, max_size=5)
    return _pool


async def close_database() -> None:
    global _pool

    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("database_pool_closed")


async def run_migrations(migrations_dir: Path = MIGRATIONS_DIR) -> list[str]:
    """Apply every *.sql file in name order inside a single transaction.

    The SQL files use IF NOT EXISTS throughout, so re-running is harmless.

    Returns:
        Names of the files that were executed
    """
    pool = await get_pool()

    if not migrations_dir.exists():
        logger.warning("migrations_directory_not_found", path=str(migrations_dir))
        return []

    migration_files = sorted(migrations_dir.glob("*.sql"))
    applied: list[str] = []

    async with pool.acquire() as conn:
        async with conn.transaction():
            for migration_file in migration_files:
                try:
                    await conn.execute(migration_file.read_text())
                except asyncpg.PostgresError as e:
                    logger.error("migration_failed", file=migration_file.name, error=str(e))
                    raise
                applied.append(migration_file.name)
                logger.info("migration_applied", file=migration_file.name)

    return applied


async def missing_tables() -> list[str]:
    """List automation tables that do not exist in the public schema."""
    pool = await get_pool()

    async with pool.acquire() as conn:
        rows = await conn.fetch(
            """
            SELECT table_name FROM information_schema.tables
            WHERE table_schema = 'public' AND table_name = ANY($1::text[])
            """,
            list(AUTOMATION_TABLES),
        )

    present = {row["table_name"] for row in rows}
    return [name for name in AUTOMATION_TABLES if name not in present]


async def health_check() -> dict:
    """Report connectivity and which automation tables are missing."""
    try:
        missing = await missing_tables()
    except Exception as e:
        logger.error("database_health_check_failed", error=str(e), error_type=type(e).__name__)
        return {"healthy": False, "missing_tables": list(AUTOMATION_TABLES)}

    if missing:
        logger.warning("automation_tables_missing", tables=missing)
    return {"healthy": True, "missing_tables": missing}
