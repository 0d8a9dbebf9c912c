"""Warehouse access: SQL execution and the agent catalog.

The relay only needs two capabilities from the warehouse, described by
:class:`QueryExecutor` and :class:`AgentDirectory`.
:class:`SnowflakeWarehouse` implements both over a single
``snowflake-connector-python`` connection.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from cortexrelay.config import Settings
from cortexrelay.errors import ConfigurationError, CortexRelayError, QueryExecutionError
from cortexrelay.instrumentation import record_error, record_rows, sql_span
from cortexrelay.models import AgentConfiguration

logger = logging.getLogger(__name__)


class QueryExecutor(Protocol):
    async def execute_query(
        self, sql: str, *, restore_context: bool = False
    ) -> list[dict]:
        """Run *sql* and return its rows. May raise on failure.

        With ``restore_context`` the executor first switches back to its
        configured database and schema, as one uninterrupted sequence.
        """
        ...


class AgentDirectory(Protocol):
    async def get_agent_configuration(
        self, name: str
    ) -> AgentConfiguration | None:
        ...


def _log_abandoned(task: asyncio.Future) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.warning(f"Abandoned statement failed: {error}")
    else:
        logger.info("Abandoned statement finished")


def tables_query(schema: str | None, limit: int = 10) -> str:
    """SQL listing the tables of *schema*."""
    schema = (schema or "").replace("'", "''")
    return (
        "SELECT table_name, table_type, comment "
        "FROM information_schema.tables "
        f"WHERE table_schema = '{schema}' "
        f"LIMIT {int(limit)}"
    )


class SnowflakeWarehouse:
    """A Snowflake connection shared by every query of the process.

    Statements are serialized: at most one statement is in flight on the
    connection, and a context restore plus the statement that follows it
    run under the same lock so concurrent queries cannot interleave
    their ``USE`` statements. Blocking driver calls run in a worker
    thread.

    Args:
        settings: Connection settings.
        connect: Factory returning a DB-API connection. Defaults to
            ``snowflake.connector.connect``.
    """

    def __init__(
        self,
        settings: Settings,
        connect: Callable[..., Any] | None = None,
    ):
        self.settings = settings
        self._connect = connect
        self._connection = None
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    @property
    def auth_method(self) -> str:
        if self.settings.access_token:
            return "oauth"
        if self.settings.password:
            return "password"
        return "none"

    def connection_params(self) -> dict:
        s = self.settings
        if not s.account or not s.user:
            raise ConfigurationError(
                "SNOWFLAKE_ACCOUNT and SNOWFLAKE_USERNAME must be set"
            )
        params = {
            "account": s.account,
            "user": s.user,
            "database": s.database,
            "schema": s.schema_name,
            "warehouse": s.warehouse,
            "role": s.role,
        }
        if s.access_token:
            params.update(token=s.access_token, authenticator="oauth")
        elif s.password:
            params.update(password=s.password, authenticator="snowflake")
        else:
            raise ConfigurationError(
                "No Snowflake authentication configured. Set "
                "SNOWFLAKE_ACCESS_TOKEN or SNOWFLAKE_PASSWORD."
            )
        return {k: v for k, v in params.items() if v is not None}

    def _open(self):
        params = self.connection_params()
        connect = self._connect
        if connect is None:
            try:
                import snowflake.connector
            except ImportError as e:
                raise ImportError(
                    "snowflake-connector-python is required for warehouse "
                    "access. Install it with: pip install cortexrelay[snowflake]"
                ) from e
            connect = snowflake.connector.connect
        connection = connect(**params)
        logger.info(
            f"Connected to Snowflake using {self.auth_method} authentication"
        )
        return connection

    def _run(self, sql: str) -> list[dict]:
        if self._connection is None:
            self._connection = self._open()
        cursor = self._connection.cursor()
        try:
            cursor.execute(sql)
            if not cursor.description:
                return []
            columns = [column[0] for column in cursor.description]
            return [dict(zip(columns, row)) for row in cursor.fetchall()]
        finally:
            cursor.close()

    async def close(self) -> None:
        async with self._lock:
            if self._connection is None:
                return
            try:
                await asyncio.to_thread(self._connection.close)
                logger.info("Disconnected from Snowflake")
            except Exception as e:
                logger.error(f"Error disconnecting from Snowflake: {e}")
            finally:
                self._connection = None

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    async def _execute(self, sql: str) -> list[dict]:
        async with sql_span(sql) as span:
            start = time.perf_counter()
            try:
                rows = await asyncio.to_thread(self._run, sql)
            except CortexRelayError as e:
                record_error(span, e)
                raise
            except Exception as e:
                record_error(span, e)
                raise QueryExecutionError(str(e), statement=sql) from e
            record_rows(span, len(rows))
            elapsed = (time.perf_counter() - start) * 1000
            logger.debug(f"Statement returned {len(rows)} rows in {elapsed:.0f}ms")
            return rows

    async def _restore_context(self) -> None:
        for kind, name in (
            ("DATABASE", self.settings.database),
            ("SCHEMA", self.settings.schema_name),
        ):
            if not name:
                continue
            try:
                await self._execute(f"USE {kind} {name}")
                logger.info(f"Switched back to {name} {kind.lower()}")
            except QueryExecutionError as e:
                logger.warning(
                    f"Could not switch back to {name} {kind.lower()}: {e}"
                )

    async def _exclusive(self, work: Callable[..., Awaitable[Any]], *args) -> Any:
        """Run ``work(*args)`` while holding the connection.

        A cancelled caller stops waiting right away, but the lock is only
        released once *work* finishes, because a worker thread cannot be
        interrupted mid-statement.
        """
        await self._lock.acquire()
        task = asyncio.ensure_future(work(*args))
        task.add_done_callback(lambda _: self._lock.release())
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            logger.warning(
                "Query cancelled while a statement was in flight; "
                "holding the connection until it returns"
            )
            task.add_done_callback(_log_abandoned)
            raise

    async def _sequence(self, sql: str, restore_context: bool) -> list[dict]:
        if restore_context:
            await self._restore_context()
        return await self._execute(sql)

    async def execute_query(
        self, sql: str, *, restore_context: bool = False
    ) -> list[dict]:
        return await self._exclusive(self._sequence, sql, restore_context)

    async def get_agent_configuration(
        self, name: str
    ) -> AgentConfiguration | None:
        """Describe *name* in the agent catalog."""
        quoted = name.replace('"', '""')
        statement = f'DESCRIBE AGENT {self.settings.agent_namespace}."{quoted}"'
        logger.info(f"Describing agent configuration for: {name}")
        try:
            rows = await self._exclusive(self._execute, statement)
        except QueryExecutionError as e:
            raise ConfigurationError(
                f"Agent '{name}' not found or not accessible: {e}"
            ) from e
        return AgentConfiguration.from_describe_rows(rows)

    async def test_connection(self) -> dict:
        try:
            rows = await self.execute_query(
                "SELECT CURRENT_VERSION() AS version, "
                "CURRENT_USER() AS user, CURRENT_ROLE() AS role"
            )
        except (CortexRelayError, ImportError) as e:
            return {
                "success": False,
                "error": str(e),
                "auth_method": self.auth_method,
                "message": "Failed to connect to Snowflake",
            }
        row = {str(k).lower(): v for k, v in (rows[0] if rows else {}).items()}
        return {
            "success": True,
            "version": row.get("version"),
            "user": row.get("user"),
            "role": row.get("role"),
            "auth_method": self.auth_method,
            "message": (
                f"Successfully connected to Snowflake using "
                f"{self.auth_method} authentication"
            ),
        }
