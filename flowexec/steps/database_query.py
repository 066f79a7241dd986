"""
Database Query step: runs SQL against the Postgres database named by
``DATABASE_URL`` and returns the rows as dicts.
"""

import asyncio
import logging
from typing import Any, Dict

import asyncpg

from ..config import config
from .handler import with_step_logging
from .registry import register_step

logger = logging.getLogger(__name__)


async def run_query(step_input: Dict[str, Any]) -> Dict[str, Any]:
    query = step_input.get("dbQuery") or step_input.get("query")
    if not query or not str(query).strip():
        return {"success": False, "error": "SQL query is required"}
    if not config.database_url:
        return {"success": False, "error": "DATABASE_URL is not configured"}

    try:
        conn = await asyncpg.connect(config.database_url, command_timeout=config.query_timeout_seconds)
        try:
            rows = await conn.fetch(str(query))
        finally:
            await conn.close()
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as e:
        logger.warning("Database query failed: %s", e)
        return {"success": False, "error": f"Database query failed: {e}"}

    records = [dict(row) for row in rows]
    return {"success": True, "rows": records, "count": len(records)}


@register_step("Database Query")
async def database_query_step(step_input: Dict[str, Any]) -> Dict[str, Any]:
    return await with_step_logging(step_input, lambda: run_query(step_input))
