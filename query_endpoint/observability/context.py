from __future__ import annotations

import secrets
from contextvars import ContextVar


_run_id: ContextVar[str | None] = ContextVar("run_id", default=None)
_state: ContextVar[str | None] = ContextVar("state", default=None)


def new_run_id() -> str:
    return secrets.token_hex(8)


def bind_run(run_id: str | None = None) -> str:
    rid = run_id or new_run_id()
    _run_id.set(rid)
    _state.set(None)
    return rid


def set_state(state: str) -> None:
    _state.set(state)


def snapshot() -> dict[str, object]:
    """Return the current run context for logging."""

    out: dict[str, object] = {}
    if (v := _run_id.get()) is not None:
        out["run_id"] = v
    if (v := _state.get()) is not None:
        out["state"] = v
    return out
