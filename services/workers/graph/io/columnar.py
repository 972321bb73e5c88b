"""Process-lifetime connection to the remote columnar (parquet) store."""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Sequence, Tuple
import asyncio
import logging

import duckdb

from ..core.constants import _QUERY_TIMEOUT
from ..core.errors import ExtractionError

logger = logging.getLogger(__name__)

_EXTENSIONS = ("httpfs", "parquet")


@dataclass(frozen=True)
class QueryResult:
    columns: Tuple[str, ...]
    rows: Tuple[Tuple[Any, ...], ...]


class QueryCollaborator(Protocol):
    async def query(self, sql: str, params: Sequence[Any] = ()) -> QueryResult:
        ...


class ColumnarStore:
    """Lazily opened DuckDB connection with httpfs/parquet loaded.

    The connection is opened on the first :meth:`query` and released by
    :meth:`close` (or by leaving an ``async with`` block). Each query runs on
    its own cursor in a worker thread; a query that outlives ``timeout`` is
    interrupted, not abandoned.
    """

    def __init__(
        self,
        database: str = ":memory:",
        timeout: float = _QUERY_TIMEOUT,
        extensions: Sequence[str] = _EXTENSIONS,
    ) -> None:
        self.database = database
        self.timeout = timeout
        self.extensions = tuple(extensions)
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._open_lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._connection is not None

    def _open(self) -> duckdb.DuckDBPyConnection:
        logger.info("opening columnar store connection", extra={"database": self.database})
        connection = duckdb.connect(self.database)
        try:
            for extension in self.extensions:
                connection.install_extension(extension)
                connection.load_extension(extension)
        except duckdb.Error:
            connection.close()
            raise
        return connection

    async def _ensure_connection(self) -> duckdb.DuckDBPyConnection:
        async with self._open_lock:
            if self._connection is None:
                self._connection = await asyncio.to_thread(self._open)
            return self._connection

    @staticmethod
    def _run(cursor: duckdb.DuckDBPyConnection, sql: str, params: Sequence[Any]) -> QueryResult:
        try:
            relation = cursor.execute(sql, list(params))
            columns = tuple(column[0] for column in relation.description or [])
            rows = tuple(tuple(row) for row in relation.fetchall())
            return QueryResult(columns=columns, rows=rows)
        finally:
            cursor.close()

    async def query(self, sql: str, params: Sequence[Any] = ()) -> QueryResult:
        try:
            connection = await self._ensure_connection()
        except duckdb.Error as exc:
            raise ExtractionError(ExtractionError.QUERY_FAILED, str(exc)) from exc

        cursor = connection.cursor()
        running = asyncio.ensure_future(asyncio.to_thread(self._run, cursor, sql, params))
        try:
            result = await asyncio.wait_for(asyncio.shield(running), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            cursor.interrupt()
            # the worker thread finishes with an interrupt error once the query unwinds
            await asyncio.gather(running, return_exceptions=True)
            logger.warning("query interrupted", extra={"timeout": self.timeout})
            raise ExtractionError(ExtractionError.QUERY_FAILED, f"query timed out after {self.timeout}s") from exc
        except asyncio.CancelledError:
            cursor.interrupt()
            raise
        except duckdb.Error as exc:
            raise ExtractionError(ExtractionError.QUERY_FAILED, str(exc)) from exc
        logger.info("query complete", extra={"rows": len(result.rows)})
        return result

    async def close(self) -> None:
        connection, self._connection = self._connection, None
        if connection is not None:
            await asyncio.to_thread(connection.close)
            logger.info("columnar store connection closed")

    async def __aenter__(self) -> "ColumnarStore":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
