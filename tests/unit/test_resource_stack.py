from __future__ import annotations

import asyncio

from query_endpoint.runtime import ResourceStack


def test_unwind_releases_in_reverse_order_exactly_once() -> None:
    calls: list[str] = []
    stack = ResourceStack()

    async def release_async() -> None:
        calls.append("b")

    stack.push("a", object(), lambda: calls.append("a"))
    stack.push("b", object(), release_async)
    stack.push("c", object(), lambda: calls.append("c"))

    failures = asyncio.run(stack.unwind())
    again = asyncio.run(stack.unwind())

    assert failures == []
    assert again == []
    assert calls == ["c", "b", "a"]
    assert stack.released == ["c", "b", "a"]
    assert len(stack) == 0


def test_unwind_continues_past_failures_and_reports_them_in_order() -> None:
    calls: list[str] = []
    stack = ResourceStack()

    def boom(name: str):
        def release() -> None:
            calls.append(name)
            raise RuntimeError(f"{name} failed")

        return release

    stack.push("first", 1, lambda: calls.append("first"))
    stack.push("second", 2, boom("second"))
    stack.push("third", 3, boom("third"))

    failures = asyncio.run(stack.unwind())

    assert calls == ["third", "second", "first"]
    assert [f.name for f in failures] == ["third", "second"]
    assert str(failures[0].error) == "third failed"


def test_push_returns_resource_and_tracks_names() -> None:
    stack = ResourceStack()
    res = stack.push("conn", {"id": 1}, lambda: None)

    assert res == {"id": 1}
    assert stack.names == ["conn"]
