"""Endpoint lifecycle orchestration.

Init -> StoreOpen -> ListenerUp -> ChildRunning -> Draining -> Done
(or Failed from any state).

Every acquired resource is pushed on a ResourceStack as soon as it exists and
the stack is unwound on every exit path, so teardown order is always the exact
reverse of acquisition order.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, TypeVar

from query_endpoint.config.model import EndpointConfig
from query_endpoint.errors import (
    AcquisitionFailed,
    EndpointError,
    InterruptedWait,
    LifecycleError,
    TeardownFailed,
)
from query_endpoint.observability import bind_run, set_state

from .address import PublishedAddress, build_child_env, publish_address
from .interfaces import ChildProcess, ProcessLauncher, QueryListener, QueryStore
from .resources import ReleaseFailure, ResourceStack


logger = logging.getLogger(__name__)

T = TypeVar("T")


class RunState(str, Enum):
    INIT = "Init"
    STORE_OPEN = "StoreOpen"
    LISTENER_UP = "ListenerUp"
    CHILD_RUNNING = "ChildRunning"
    DRAINING = "Draining"
    DONE = "Done"
    FAILED = "Failed"


@dataclass(slots=True)
class RunOutcome:
    """Terminal result of one run, produced after every resource is released."""

    exit_code: int | None = None
    error: EndpointError | None = None
    teardown: TeardownFailed | None = None
    address: PublishedAddress | None = None
    released: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    def process_exit_code(self) -> int:
        if self.error is not None:
            return self.error.exit_code
        if self.exit_code is None:
            return 1
        if self.exit_code < 0:
            # Killed by signal N: report it the way shells do.
            return 128 - self.exit_code
        return self.exit_code


def _teardown_error(failures: list[ReleaseFailure]) -> TeardownFailed:
    errors = [
        LifecycleError(f.name, f"failed to release {f.name}: {type(f.error).__name__}: {f.error}", cause=f.error)
        for f in failures
    ]
    first = failures[0]
    return TeardownFailed(first.name, errors[0].message, cause=first.error, secondary=errors[1:])


class EndpointOrchestrator:
    """Drives one endpoint run: store, listener, child, then teardown.

    An orchestrator instance runs once. `interrupt()` may be called from a
    signal handler; it aborts the wait for the child and proceeds to teardown.
    """

    def __init__(
        self,
        config: EndpointConfig,
        *,
        store: QueryStore,
        listener: QueryListener,
        launcher: ProcessLauncher,
        base_env: Mapping[str, str] | None = None,
        run_id: str | None = None,
    ) -> None:
        self._config = config
        self._store = store
        self._listener = listener
        self._launcher = launcher
        self._base_env = dict(os.environ if base_env is None else base_env)
        self._run_id = run_id
        self._interrupted = asyncio.Event()
        self._started = False
        self.transitions: list[RunState] = [RunState.INIT]

    @property
    def state(self) -> RunState:
        return self.transitions[-1]

    def interrupt(self) -> None:
        if not self._interrupted.is_set():
            logger.info("interrupt_requested", extra={"at_state": self.state.value})
        self._interrupted.set()

    def _transition(self, state: RunState) -> None:
        self.transitions.append(state)
        set_state(state.value)
        logger.debug("state_changed", extra={"to": state.value})

    async def run(self) -> RunOutcome:
        if self._started:
            raise RuntimeError("EndpointOrchestrator.run() may only be called once")
        self._started = True

        bind_run(self._run_id)
        set_state(self.state.value)

        stack = ResourceStack()
        outcome = RunOutcome()
        aborted = True
        try:
            outcome.exit_code = await self._drive(stack, outcome)
            aborted = False
        except LifecycleError as e:
            outcome.error = e
            aborted = False
        finally:
            if len(stack):
                self._transition(RunState.DRAINING)
            try:
                failures = await stack.unwind()
            except asyncio.CancelledError:
                outcome.released = list(stack.released)
                self._transition(RunState.FAILED)
                raise
            outcome.released = list(stack.released)
            if failures:
                outcome.teardown = _teardown_error(failures)
                if outcome.error is None:
                    outcome.error = outcome.teardown
                else:
                    outcome.error.add_note(str(outcome.teardown))
            failed = aborted or outcome.error is not None
            self._transition(RunState.FAILED if failed else RunState.DONE)
            self._log_outcome(outcome)

        return outcome

    async def _drive(self, stack: ResourceStack, outcome: RunOutcome) -> int:
        cfg = self._config

        connection = await self._acquire(
            "store",
            lambda: self._store.open(cfg.source_dataset, cfg.elastic_index, cfg.timeout),
        )
        stack.push("store", connection, connection.close)
        self._transition(RunState.STORE_OPEN)

        listener = await self._acquire("listener", lambda: self._listener.bind(cfg.port, connection))
        stack.push("listener", listener, listener.stop)
        self._transition(RunState.LISTENER_UP)

        try:
            address = publish_address(listener.bound_address(), cfg.settings)
        except (OSError, ValueError) as e:
            raise AcquisitionFailed("listener", f"cannot determine bound address: {e}", cause=e) from e
        outcome.address = address
        env = build_child_env(self._base_env, address, var=cfg.settings.address_var)
        logger.info(
            "endpoint_published",
            extra={"address": address.url, "env_var": cfg.settings.address_var, "requested_port": cfg.port},
        )

        if self._interrupted.is_set():
            raise InterruptedWait("interrupted before the executable was launched")

        child = await self._acquire("child", lambda: self._launcher.spawn(cfg.executable, env, cfg.output))
        grace = cfg.settings.terminate_grace_s
        stack.push("child", child, lambda: child.terminate(grace))
        self._transition(RunState.CHILD_RUNNING)

        return await self._wait_for_child(child)

    async def _acquire(self, step: str, factory: Callable[[], Awaitable[T]]) -> T:
        try:
            return await factory()
        except LifecycleError:
            raise
        except Exception as e:  # noqa: BLE001
            logger.error("acquisition_failed", extra={"step": step, "error": str(e), "error_type": type(e).__name__})
            raise AcquisitionFailed(step, f"{type(e).__name__}: {e}", cause=e) from e

    async def _wait_for_child(self, child: ChildProcess) -> int:
        wait_task = asyncio.create_task(child.wait())
        interrupt_task = asyncio.create_task(self._interrupted.wait())
        try:
            await asyncio.wait({wait_task, interrupt_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            pending = [t for t in (wait_task, interrupt_task) if not t.done()]
            for t in pending:
                t.cancel()
            if pending:
                await asyncio.wait(pending)

        if self._interrupted.is_set():
            logger.warning("wait_interrupted", extra={"pid": child.pid})
            raise InterruptedWait()

        code = wait_task.result()
        logger.info("child_exited", extra={"pid": child.pid, "exit_code": code})
        return code

    def _log_outcome(self, outcome: RunOutcome) -> None:
        extra = {
            "exit_code": outcome.exit_code,
            "released": outcome.released,
            "process_exit_code": outcome.process_exit_code(),
        }
        if outcome.error is None:
            logger.info("run_finished", extra=extra)
            return
        extra["error"] = str(outcome.error)
        extra["error_type"] = type(outcome.error).__name__
        if outcome.teardown is not None:
            extra["teardown_errors"] = [str(outcome.teardown), *(str(e) for e in outcome.teardown.secondary)]
        logger.error("run_failed", extra=extra)
