from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")

Release = Callable[[], Awaitable[None] | None]


@dataclass(slots=True)
class ResourceHandle(Generic[T]):
    """An acquired resource paired with the operation that releases it."""

    name: str
    resource: T
    release: Release


@dataclass(frozen=True, slots=True)
class ReleaseFailure:
    name: str
    error: Exception


@dataclass(slots=True)
class ResourceStack:
    """Last-acquired-first-released stack of resource handles.

    `unwind` pops every handle and releases it exactly once. A failing release
    does not stop the unwind; failures are returned in release order.
    """

    _handles: list[ResourceHandle[Any]] = field(default_factory=list)
    released: list[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self._handles)

    @property
    def names(self) -> list[str]:
        return [h.name for h in self._handles]

    def push(self, name: str, resource: T, release: Release) -> T:
        self._handles.append(ResourceHandle(name=name, resource=resource, release=release))
        logger.debug("resource_acquired", extra={"resource": name, "depth": len(self._handles)})
        return resource

    async def unwind(self) -> list[ReleaseFailure]:
        """Release every handle, newest first.

        A cancellation that lands while a release is awaited is held until the
        remaining handles are released, then re-raised.
        """

        failures: list[ReleaseFailure] = []
        cancelled: asyncio.CancelledError | None = None
        while self._handles:
            handle = self._handles.pop()
            try:
                result = handle.release()
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError as e:
                logger.warning("resource_release_cancelled", extra={"resource": handle.name})
                cancelled = cancelled or e
            except Exception as e:  # noqa: BLE001
                logger.error(
                    "resource_release_failed",
                    extra={"resource": handle.name, "error": str(e), "error_type": type(e).__name__},
                )
                failures.append(ReleaseFailure(name=handle.name, error=e))
            else:
                logger.debug("resource_released", extra={"resource": handle.name})
            finally:
                self.released.append(handle.name)
        if cancelled is not None:
            raise cancelled
        return failures
