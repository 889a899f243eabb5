from __future__ import annotations

import asyncio
import contextlib
import logging
import socket
from collections.abc import Iterator

import uvicorn

from .app import QueryConnection, create_app


logger = logging.getLogger(__name__)

_STARTUP_POLL_S = 0.01


class _EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the host process."""

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


class UvicornBoundListener:
    """A running uvicorn server on a socket this object owns."""

    def __init__(self, server: uvicorn.Server, sock: socket.socket, task: asyncio.Task[None]) -> None:
        self._server = server
        self._sock = sock
        self._task = task
        self._address: tuple[str, int] = sock.getsockname()[:2]
        self._stopped = False

    def bound_address(self) -> tuple[str, int]:
        if not self._server.started:
            raise OSError("listener is not serving")
        return self._address

    async def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        self._server.should_exit = True
        try:
            await self._task
        finally:
            self._sock.close()
        logger.info("listener_stopped", extra={"host": self._address[0], "port": self._address[1]})


class UvicornQueryListener:
    """Binds a TCP socket and serves the query application on it.

    The socket is bound before uvicorn starts so that port 0 resolves to a
    concrete port that `bound_address()` can report.
    """

    def __init__(self, *, host: str = "127.0.0.1", verbose: bool = False, startup_timeout_s: float = 10.0) -> None:
        self._host = host
        self._verbose = verbose
        self._startup_timeout_s = startup_timeout_s

    def _bind_socket(self, port: int) -> socket.socket:
        family = socket.AF_INET6 if ":" in self._host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self._host, port))
            sock.listen(128)
            sock.setblocking(False)
        except OSError:
            sock.close()
            raise
        return sock

    async def bind(self, port: int, connection: QueryConnection) -> UvicornBoundListener:
        sock = self._bind_socket(port)
        config = uvicorn.Config(
            create_app(connection, verbose=self._verbose),
            lifespan="off",
            log_config=None,
            access_log=self._verbose,
            log_level="info" if self._verbose else "warning",
        )
        server = _EmbeddedServer(config)
        task = asyncio.create_task(server.serve(sockets=[sock]))

        try:
            await asyncio.wait_for(self._wait_started(server, task), timeout=self._startup_timeout_s)
        except BaseException:
            server.should_exit = True
            if not task.done():
                task.cancel()
            with contextlib.suppress(BaseException):
                await task
            sock.close()
            raise

        listener = UvicornBoundListener(server, sock, task)
        host, bound_port = listener.bound_address()
        logger.info("listener_started", extra={"host": host, "port": bound_port, "requested_port": port})
        return listener

    @staticmethod
    async def _wait_started(server: uvicorn.Server, task: asyncio.Task[None]) -> None:
        while not server.started:
            if task.done():
                # Surface the startup exception, if any.
                task.result()
                raise OSError("uvicorn exited before it started serving")
            await asyncio.sleep(_STARTUP_POLL_S)
