"""SQLAlchemy-backed read-only query store.

The dataset identifier is either a SQLAlchemy URL (anything containing `://`)
or a path to an SQLite file, which is opened read-only. Every query runs in its
own transaction that is rolled back afterwards.
"""

from __future__ import annotations

import asyncio
import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.exc import ArgumentError, DBAPIError, SQLAlchemyError

from .errors import IndexNotConfigured, QueryRejected, QueryTimeout, StoreError
from .index import SearchHit, SecondaryIndex


logger = logging.getLogger(__name__)

# SQLite VM instructions between deadline checks.
_PROGRESS_STEPS = 1000


@dataclass(frozen=True, slots=True)
class QueryResult:
    columns: list[str]
    rows: list[list[Any]]


def dataset_url(dataset: str) -> URL:
    if "://" in dataset:
        try:
            return make_url(dataset)
        except ArgumentError as e:
            raise StoreError(f"Invalid dataset URL {dataset!r}: {e}") from e
    path = os.path.abspath(os.path.expanduser(dataset))
    # Percent-encode so `?`, `#` and `%` in the path survive SQLite's URI parsing.
    return URL.create("sqlite", database=f"file:{quote(path)}", query={"mode": "ro", "uri": "true"})


class SqlStoreConnection:
    """Query capability over one dataset; owned by whoever opened it."""

    def __init__(self, engine: Engine, *, timeout: int = 0, index: SecondaryIndex | None = None) -> None:
        self._engine = engine
        self._timeout = int(timeout)
        self._index = index
        self._closed = False
        self._lock = threading.Lock()

    @property
    def dialect(self) -> str:
        return self._engine.dialect.name

    @property
    def timeout(self) -> int:
        return self._timeout

    @property
    def closed(self) -> bool:
        return self._closed

    def evaluate(self, query: str) -> QueryResult:
        """Run a read-only query and return all rows.

        Raises:
            QueryRejected: empty, invalid, or non row-returning statements.
            QueryTimeout: evaluation exceeded the configured timeout.
            StoreError: the connection is closed or the database failed.
        """

        if self._closed:
            raise StoreError("Store connection is closed")
        if not query or not query.strip():
            raise QueryRejected("Query must be a non-empty string")

        deadline: float | None = None
        with self._engine.connect() as conn:
            raw = conn.connection.dbapi_connection
            if self._timeout > 0 and self.dialect == "sqlite" and raw is not None:
                deadline = time.monotonic() + self._timeout
                raw.set_progress_handler(lambda: 1 if time.monotonic() > deadline else 0, _PROGRESS_STEPS)
            try:
                result = conn.exec_driver_sql(query)
                if not result.returns_rows:
                    raise QueryRejected("Only statements returning rows are accepted")
                columns = list(result.keys())
                rows = [list(r) for r in result.fetchall()]
            except DBAPIError as e:
                if deadline is not None and time.monotonic() > deadline:
                    raise QueryTimeout(timeout_s=self._timeout) from e
                raise QueryRejected(str(e.orig) if e.orig is not None else str(e)) from e
            finally:
                if deadline is not None and raw is not None:
                    raw.set_progress_handler(None, 0)
                conn.rollback()

        return QueryResult(columns=columns, rows=rows)

    def search(self, term: str, *, limit: int = 10) -> list[SearchHit]:
        if self._closed:
            raise StoreError("Store connection is closed")
        if self._index is None:
            raise IndexNotConfigured()
        return self._index.search(term, limit=limit)

    def close_sync(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        try:
            if self._index is not None:
                self._index.close()
        finally:
            self._engine.dispose()
        logger.info("store_closed", extra={"dialect": self.dialect})

    async def close(self) -> None:
        await asyncio.to_thread(self.close_sync)


class SqlQueryStore:
    """Opens SqlStoreConnection instances; see module docstring for dataset forms."""

    def __init__(self, **engine_kwargs: Any) -> None:
        self._engine_kwargs = engine_kwargs

    def open_sync(self, dataset: str, secondary_index: str | None, timeout: int) -> SqlStoreConnection:
        url = dataset_url(dataset)
        kwargs = dict(self._engine_kwargs)
        if url.get_backend_name() == "sqlite":
            # Queries are served from the listener's worker threads.
            kwargs.setdefault("connect_args", {"check_same_thread": False})

        try:
            engine = create_engine(url, **kwargs)
        except (ArgumentError, ImportError) as e:
            raise StoreError(f"Cannot create engine for dataset {dataset!r}: {e}") from e

        try:
            with engine.connect() as conn:
                conn.rollback()
        except SQLAlchemyError as e:
            engine.dispose()
            raise StoreError(f"Cannot open dataset {dataset!r}: {e}") from e

        if timeout > 0 and engine.dialect.name != "sqlite":
            logger.warning(
                "store_timeout_not_enforced",
                extra={"dialect": engine.dialect.name, "timeout_s": timeout},
            )

        index: SecondaryIndex | None = None
        if secondary_index:
            try:
                index = SecondaryIndex(secondary_index, timeout_s=float(timeout) if timeout > 0 else None)
            except StoreError:
                engine.dispose()
                raise

        logger.info(
            "store_opened",
            extra={
                "dataset": dataset,
                "dialect": engine.dialect.name,
                "timeout_s": timeout,
                "secondary_index": index.url if index is not None else None,
            },
        )
        return SqlStoreConnection(engine, timeout=timeout, index=index)

    async def open(self, dataset: str, secondary_index: str | None, timeout: int) -> SqlStoreConnection:
        return await asyncio.to_thread(self.open_sync, dataset, secondary_index, timeout)
