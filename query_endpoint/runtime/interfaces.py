"""Collaborator protocols the orchestrator drives.

The orchestrator never imports a concrete store, listener or launcher; the CLI
wires the defaults in and tests substitute fakes.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Protocol


class StoreConnection(Protocol):
    async def close(self) -> None: ...


class QueryStore(Protocol):
    async def open(self, dataset: str, secondary_index: str | None, timeout: int) -> StoreConnection: ...


class BoundListener(Protocol):
    def bound_address(self) -> tuple[str, int]:
        """Return the realized (host, port); only valid once bound."""

    async def stop(self) -> None: ...


class QueryListener(Protocol):
    async def bind(self, port: int, connection: StoreConnection) -> BoundListener: ...


class ChildProcess(Protocol):
    @property
    def pid(self) -> int | None: ...

    @property
    def returncode(self) -> int | None: ...

    async def wait(self) -> int: ...

    async def terminate(self, grace_s: float) -> None:
        """Stop the process if still running and release its stream targets."""


class ProcessLauncher(Protocol):
    async def spawn(self, path: Path, env: Mapping[str, str], stdout_target: Path | None) -> ChildProcess: ...
