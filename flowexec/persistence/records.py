"""
Execution records: the final status of a run, written once when it completes.
"""

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import asyncpg
from pydantic import BaseModel, Field

from ..config import config

logger = logging.getLogger(__name__)


class ExecutionRecord(BaseModel):
    status: str  # "success" | "error"
    output: Optional[Any] = None
    error: Optional[str] = None
    completed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    duration: str = "0"  # milliseconds, as text


class ExecutionRecordStore(ABC):

    @abstractmethod
    async def complete_execution(self, execution_id: str, record: ExecutionRecord) -> None:
        """ Store the final record of ``execution_id``. """


class InMemoryExecutionRecordStore(ExecutionRecordStore):
    """ Keeps records in a dict; used when no database is configured. """

    def __init__(self):
        self.records: Dict[str, ExecutionRecord] = {}
        self.writes: List[Tuple[str, ExecutionRecord]] = []

    async def complete_execution(self, execution_id: str, record: ExecutionRecord) -> None:
        self.records[execution_id] = record
        self.writes.append((execution_id, record))

    def get(self, execution_id: str) -> Optional[ExecutionRecord]:
        return self.records.get(execution_id)


class PostgresExecutionRecordStore(ExecutionRecordStore):
    """
    Updates the ``workflow_executions`` row of the run.

    Args:
        pool: asyncpg connection pool
    """

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    @classmethod
    async def connect(cls, dsn: str) -> "PostgresExecutionRecordStore":
        return cls(await asyncpg.create_pool(dsn))

    async def init_tables(self):
        async with self.pool.acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS workflow_executions (
                    id TEXT PRIMARY KEY,
                    workflow_id TEXT,
                    status VARCHAR(50) DEFAULT 'running',
                    output JSONB,
                    error TEXT,
                    duration TEXT,
                    created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
                    completed_at TIMESTAMPTZ
                )
            """)
            logger.info("Execution record table initialized")

    async def complete_execution(self, execution_id: str, record: ExecutionRecord) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute("""
                UPDATE workflow_executions
                SET status = $2, output = $3, error = $4, completed_at = $5, duration = $6
                WHERE id = $1
            """,
                execution_id,
                record.status,
                json.dumps(record.output, default=str),
                record.error,
                record.completed_at,
                record.duration,
            )

    async def close(self):
        await self.pool.close()


async def open_record_store(database_url: Optional[str] = None) -> ExecutionRecordStore:
    """
    Postgres store for ``database_url`` (default ``config.database_url``) with
    its table created, or an in-memory store when no database is configured.
    """
    dsn = database_url or config.database_url
    if not dsn:
        logger.info("No database configured; execution records are kept in memory")
        return InMemoryExecutionRecordStore()
    store = await PostgresExecutionRecordStore.connect(dsn)
    await store.init_tables()
    return store
