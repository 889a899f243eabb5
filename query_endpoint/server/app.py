"""Starlette application answering queries against a store connection.

Routes:
    GET  /?query=...         evaluate a query
    POST /                   form field `query=` or the raw request body
    GET  /search?q=&limit=   secondary index lookup
    GET  /health             liveness

The application only borrows the connection; it never closes it.
"""

from __future__ import annotations

import base64
import datetime as dt
import decimal
import logging
import math
import time
import uuid
from typing import Any, Protocol
from urllib.parse import parse_qs

from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from query_endpoint.store.errors import (
    IndexNotConfigured,
    QueryRejected,
    QueryTimeout,
    SecondaryIndexError,
    StoreError,
)
from query_endpoint.store.index import SearchHit
from query_endpoint.store.sql import QueryResult


logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 10
MAX_SEARCH_LIMIT = 1000

_RAW_QUERY_TYPES = {"application/sql", "text/plain"}

_STATUS_BY_ERROR: dict[type[StoreError], int] = {
    QueryRejected: 400,
    IndexNotConfigured: 404,
    SecondaryIndexError: 502,
    QueryTimeout: 503,
}


class QueryConnection(Protocol):
    def evaluate(self, query: str) -> QueryResult: ...

    def search(self, term: str, *, limit: int = DEFAULT_SEARCH_LIMIT) -> list[SearchHit]: ...


def _jsonable(value: Any) -> Any:
    if isinstance(value, float) and not math.isfinite(value):
        # Strict JSON has no literal for these.
        if math.isnan(value):
            return "NaN"
        return "Infinity" if value > 0 else "-Infinity"
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, (dt.date, dt.time)):
        return value.isoformat()
    if isinstance(value, decimal.Decimal):
        return str(value)
    if isinstance(value, uuid.UUID):
        return str(value)
    return str(value)


def _error(status: int, error_type: str, message: str) -> JSONResponse:
    return JSONResponse({"error": {"type": error_type, "message": message}}, status_code=status)


def _store_error(e: StoreError) -> JSONResponse:
    status = 500
    for cls, code in _STATUS_BY_ERROR.items():
        if isinstance(e, cls):
            status = code
            break
    return _error(status, e.error_type, e.message)


class QueryApp:
    """Builds the Starlette app bound to one connection."""

    def __init__(self, connection: QueryConnection, *, verbose: bool = False) -> None:
        self._connection = connection
        self._verbose = verbose
        self._app = Starlette(
            debug=False,
            routes=[
                Route("/", self._query_endpoint, methods=["GET", "POST"]),
                Route("/search", self._search_endpoint, methods=["GET"]),
                Route("/health", self._health_endpoint, methods=["GET"]),
            ],
        )

    @property
    def app(self) -> Starlette:
        return self._app

    async def _health_endpoint(self, request: Request) -> JSONResponse:
        return JSONResponse({"status": "ok"})

    async def _read_query(self, request: Request) -> str | None:
        if request.method == "GET":
            return request.query_params.get("query")

        content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
        body = await request.body()
        text = body.decode("utf-8", errors="replace")
        if content_type == "application/x-www-form-urlencoded":
            values = parse_qs(text).get("query")
            return values[0] if values else None
        if content_type in _RAW_QUERY_TYPES or not content_type:
            return text
        return request.query_params.get("query")

    async def _query_endpoint(self, request: Request) -> JSONResponse:
        query = await self._read_query(request)
        if query is None or not query.strip():
            return _error(400, "missing_query", "Missing 'query' parameter")

        t0 = time.perf_counter()
        try:
            result = await run_in_threadpool(self._connection.evaluate, query)
        except StoreError as e:
            logger.info(
                "query_failed",
                extra={"error_type": e.error_type, "error": e.message, "query": query if self._verbose else None},
            )
            return _store_error(e)

        elapsed_ms = round((time.perf_counter() - t0) * 1000, 2)
        if self._verbose:
            logger.info("query_done", extra={"query": query, "rows": len(result.rows), "latency_ms": elapsed_ms})

        return JSONResponse(
            {
                "columns": result.columns,
                "rows": [[_jsonable(v) for v in row] for row in result.rows],
            }
        )

    async def _search_endpoint(self, request: Request) -> JSONResponse:
        term = request.query_params.get("q")
        if term is None or not term.strip():
            return _error(400, "missing_query", "Missing 'q' parameter")

        limit_raw = request.query_params.get("limit")
        try:
            limit = int(limit_raw) if limit_raw is not None else DEFAULT_SEARCH_LIMIT
        except ValueError:
            return _error(400, "invalid_limit", f"Invalid limit: {limit_raw}")
        if limit < 1 or limit > MAX_SEARCH_LIMIT:
            return _error(400, "invalid_limit", f"limit must be between 1 and {MAX_SEARCH_LIMIT}")

        try:
            hits = await run_in_threadpool(self._connection.search, term, limit=limit)
        except StoreError as e:
            return _store_error(e)

        if self._verbose:
            logger.info("search_done", extra={"term": term, "hits": len(hits)})
        return JSONResponse({"hits": [{"id": h.id, "score": h.score, "source": h.source} for h in hits]})


def create_app(connection: QueryConnection, *, verbose: bool = False) -> Starlette:
    return QueryApp(connection, verbose=verbose).app
