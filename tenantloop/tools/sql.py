"""Sandbox SQL passthrough tools.

Statements run on the sandboxed lane in the ``sandbox`` schema, so the
tenant predicate is added by the gateway no matter what the engine wrote.
"""

import re
from typing import Annotated, Any, Dict

import asyncpg

from ..constants import SANDBOX_SCHEMA
from ..errors import ToolExecutionError
from .decorator import tool
from .models import ToolContext

MAX_ROWS = 100

_IDENTIFIER_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


def _returns_rows(query: str) -> bool:
    words = query.strip().split(None, 1)
    return bool(words) and (
        words[0].upper() == "SELECT" or "RETURNING" in query.upper()
    )


@tool(category="sql")
async def execute_sql(
    query: Annotated[str, "A single SQL statement against your own tables"],
    *,
    context: ToolContext,
) -> Dict[str, Any]:
    """Run one SQL statement (SELECT, INSERT, UPDATE, DELETE, CREATE TABLE, ALTER TABLE ADD) on your private tables."""
    lane = context.services.gateway.sandboxed(context.tenant_id, schema=SANDBOX_SCHEMA)
    try:
        if _returns_rows(query):
            rows = await lane.fetch(query)
            return {
                "rows": rows[:MAX_ROWS],
                "row_count": len(rows),
                "truncated": len(rows) > MAX_ROWS,
            }
        status = await lane.execute(query)
    except asyncpg.PostgresError as e:
        raise ToolExecutionError(f"SQL error: {e}")
    return {"status": status}


@tool(category="sql")
async def get_distinct_column_values(
    table_name: Annotated[str, "Table to inspect"],
    column_name: Annotated[str, "Column whose distinct values to list"],
    *,
    context: ToolContext,
) -> Dict[str, Any]:
    """List the distinct values of one column in one of your tables."""
    for label, value in (("table", table_name), ("column", column_name)):
        if not _IDENTIFIER_RE.match(value):
            raise ToolExecutionError(f"Invalid {label} name: {value!r}")

    lane = context.services.gateway.sandboxed(context.tenant_id, schema=SANDBOX_SCHEMA)
    try:
        rows = await lane.fetch(
            f"SELECT DISTINCT {column_name} FROM {table_name} "
            f"ORDER BY {column_name} LIMIT {MAX_ROWS}"
        )
    except asyncpg.PostgresError as e:
        raise ToolExecutionError(f"SQL error: {e}")
    return {"table": table_name, "column": column_name, "values": [next(iter(r.values())) for r in rows]}
