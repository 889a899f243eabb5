from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import IO


logger = logging.getLogger(__name__)


class AsyncioChildProcess:
    """A spawned executable plus the output file it writes to, if any."""

    def __init__(self, proc: asyncio.subprocess.Process, *, stdout_file: IO[bytes] | None = None) -> None:
        self._proc = proc
        self._stdout_file = stdout_file

    @property
    def pid(self) -> int | None:
        return self._proc.pid

    @property
    def returncode(self) -> int | None:
        return self._proc.returncode

    async def wait(self) -> int:
        return await self._proc.wait()

    async def terminate(self, grace_s: float) -> None:
        try:
            if self._proc.returncode is None:
                logger.warning("child_terminating", extra={"pid": self._proc.pid, "grace_s": grace_s})
                try:
                    self._proc.terminate()
                except ProcessLookupError:
                    pass
                try:
                    await asyncio.wait_for(self._proc.wait(), timeout=max(0.1, float(grace_s)))
                except asyncio.TimeoutError:
                    logger.warning("child_killing", extra={"pid": self._proc.pid})
                    try:
                        self._proc.kill()
                    except ProcessLookupError:
                        pass
                    await self._proc.wait()
        finally:
            if self._stdout_file is not None:
                self._stdout_file.close()
                self._stdout_file = None


class AsyncioProcessLauncher:
    """Spawns the executable directly (no shell) with the given environment.

    Standard streams are inherited from this process unless `stdout_target`
    is given, in which case stdout is written to that file (truncated first).
    """

    async def spawn(self, path: Path, env: Mapping[str, str], stdout_target: Path | None) -> AsyncioChildProcess:
        stdout_file: IO[bytes] | None = None
        if stdout_target is not None:
            stdout_file = open(stdout_target, "wb")  # noqa: SIM115
        try:
            proc = await asyncio.create_subprocess_exec(
                str(path),
                env=dict(env),
                stdout=stdout_file,
            )
        except BaseException:
            if stdout_file is not None:
                stdout_file.close()
            raise

        logger.info(
            "child_spawned",
            extra={
                "pid": proc.pid,
                "executable": str(path),
                "stdout": str(stdout_target) if stdout_target is not None else "inherit",
            },
        )
        return AsyncioChildProcess(proc, stdout_file=stdout_file)
