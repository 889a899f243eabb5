from __future__ import annotations

import datetime as dt
import decimal
import sqlite3
from pathlib import Path

import pytest
from starlette.testclient import TestClient

from query_endpoint.server import create_app
from query_endpoint.store import (
    IndexNotConfigured,
    QueryRejected,
    QueryResult,
    QueryTimeout,
    SearchHit,
    SecondaryIndexError,
    SqlQueryStore,
)


class RecordingConnection:
    def __init__(self) -> None:
        self.queries: list[str] = []
        self.searches: list[tuple[str, int]] = []
        self.closed = False
        self.fail_with: Exception | None = None
        self.result: QueryResult | None = None

    def evaluate(self, query: str) -> QueryResult:
        self.queries.append(query)
        if self.fail_with is not None:
            raise self.fail_with
        if self.result is not None:
            return self.result
        return QueryResult(
            columns=["id", "title", "cover", "published", "price"],
            rows=[[1, "Dune", b"\x00\x01", dt.date(1965, 8, 1), decimal.Decimal("9.99")]],
        )

    def search(self, term: str, *, limit: int = 10) -> list[SearchHit]:
        self.searches.append((term, limit))
        if self.fail_with is not None:
            raise self.fail_with
        return [SearchHit(id="1", score=2.0, source={"title": "Dune"})]

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def conn() -> RecordingConnection:
    return RecordingConnection()


@pytest.fixture()
def client(conn: RecordingConnection) -> TestClient:
    return TestClient(create_app(conn, verbose=True))


def test_get_query(client: TestClient, conn: RecordingConnection) -> None:
    resp = client.get("/", params={"query": "SELECT * FROM books"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["columns"] == ["id", "title", "cover", "published", "price"]
    assert body["rows"] == [[1, "Dune", "AAE=", "1965-08-01", "9.99"]]
    assert conn.queries == ["SELECT * FROM books"]


def test_post_form_query(client: TestClient, conn: RecordingConnection) -> None:
    resp = client.post("/", data={"query": "SELECT 1"})

    assert resp.status_code == 200
    assert conn.queries == ["SELECT 1"]


@pytest.mark.parametrize("content_type", ["application/sql", "text/plain; charset=utf-8"])
def test_post_raw_query(client: TestClient, conn: RecordingConnection, content_type: str) -> None:
    resp = client.post("/", content="SELECT title FROM books", headers={"content-type": content_type})

    assert resp.status_code == 200
    assert conn.queries == ["SELECT title FROM books"]


def test_missing_query_is_400(client: TestClient, conn: RecordingConnection) -> None:
    resp = client.get("/")

    assert resp.status_code == 400
    assert resp.json()["error"]["type"] == "missing_query"
    assert conn.queries == []


@pytest.mark.parametrize(
    ("error", "status", "error_type"),
    [
        (QueryRejected("near SELEKT: syntax error"), 400, "invalid_query"),
        (QueryTimeout(timeout_s=3), 503, "timeout"),
    ],
)
def test_store_errors_map_to_status(
    client: TestClient,
    conn: RecordingConnection,
    error: Exception,
    status: int,
    error_type: str,
) -> None:
    conn.fail_with = error
    resp = client.get("/", params={"query": "SELEKT"})

    assert resp.status_code == status
    assert resp.json()["error"]["type"] == error_type


def test_search(client: TestClient, conn: RecordingConnection) -> None:
    resp = client.get("/search", params={"q": "dune", "limit": "3"})

    assert resp.status_code == 200
    assert resp.json() == {"hits": [{"id": "1", "score": 2.0, "source": {"title": "Dune"}}]}
    assert conn.searches == [("dune", 3)]


@pytest.mark.parametrize("params", [{}, {"q": "dune", "limit": "many"}, {"q": "dune", "limit": "0"}])
def test_search_bad_params(client: TestClient, params: dict[str, str]) -> None:
    assert client.get("/search", params=params).status_code == 400


@pytest.mark.parametrize(
    ("error", "status"),
    [(IndexNotConfigured(), 404), (SecondaryIndexError("index down"), 502)],
)
def test_search_errors(client: TestClient, conn: RecordingConnection, error: Exception, status: int) -> None:
    conn.fail_with = error
    assert client.get("/search", params={"q": "dune"}).status_code == status


def test_health_and_connection_left_open(client: TestClient, conn: RecordingConnection) -> None:
    with client:
        assert client.get("/health").json() == {"status": "ok"}

    assert conn.closed is False


def test_non_finite_floats_are_rendered_as_strings(tmp_path: Path) -> None:
    path = tmp_path / "nums.db"
    sqlite3.connect(path).close()
    store_conn = SqlQueryStore().open_sync(str(path), None, 0)
    try:
        client = TestClient(create_app(store_conn))
        resp = client.get("/", params={"query": "SELECT 1e999 AS pos, -1e999 AS neg, 1.5 AS plain"})
    finally:
        store_conn.close_sync()

    assert resp.status_code == 200
    assert resp.json() == {"columns": ["pos", "neg", "plain"], "rows": [["Infinity", "-Infinity", 1.5]]}


def test_nan_is_rendered_as_string(conn: RecordingConnection, client: TestClient) -> None:
    conn.result = QueryResult(columns=["x"], rows=[[float("nan")]])

    resp = client.get("/", params={"query": "SELECT x"})

    assert resp.status_code == 200
    assert resp.json()["rows"] == [["NaN"]]
