from __future__ import annotations

import asyncio
import json
import signal
import urllib.request

from query_endpoint.server import UvicornQueryListener
from query_endpoint.store import QueryResult, SearchHit


class StaticConnection:
    def evaluate(self, query: str) -> QueryResult:
        return QueryResult(columns=["q"], rows=[[query]])

    def search(self, term: str, *, limit: int = 10) -> list[SearchHit]:
        return []


def _get(url: str) -> dict:
    with urllib.request.urlopen(url, timeout=5) as resp:
        return json.loads(resp.read())


def test_auto_port_listener_serves_and_leaves_signal_handlers_alone() -> None:
    async def scenario() -> tuple[int, dict, object, object]:
        before = signal.getsignal(signal.SIGINT)
        bound = await UvicornQueryListener().bind(0, StaticConnection())
        try:
            host, port = bound.bound_address()
            body = await asyncio.to_thread(_get, f"http://{host}:{port}/health")
            during = signal.getsignal(signal.SIGINT)
        finally:
            await bound.stop()
            await bound.stop()
        return port, body, before, during

    port, body, before, during = asyncio.run(scenario())

    assert port > 0
    assert body == {"status": "ok"}
    assert during == before
