from __future__ import annotations


class EndpointError(Exception):
    """Base exception for this project."""

    exit_code: int = 1


class ConfigError(EndpointError):
    """Raised when configuration is invalid or incomplete."""

    exit_code = 2

    def __init__(self, message: str, *, path: str | None = None):
        super().__init__(f"{path}: {message}" if path else message)
        self.message = message
        self.path = path


class InvalidArgument(ConfigError):
    """A flag value could not be parsed (e.g. a non-numeric port)."""


class PreconditionFailed(ConfigError):
    """A filesystem precondition on the executable or output path does not hold."""


class LifecycleError(EndpointError):
    """Failure raised while the endpoint resources are live.

    `step` names the lifecycle step (``store``, ``listener``, ``child``, ``wait``)
    and `cause` keeps the underlying exception, if any.
    """

    kind = "lifecycle_error"

    def __init__(self, step: str, message: str, *, cause: BaseException | None = None):
        super().__init__(f"{step}: {message}")
        self.step = step
        self.message = message
        self.cause = cause


class AcquisitionFailed(LifecycleError):
    kind = "acquisition_failed"
    exit_code = 3


class InterruptedWait(LifecycleError):
    kind = "interrupted_wait"
    exit_code = 130

    def __init__(self, message: str = "interrupted while waiting for the executable") -> None:
        super().__init__("wait", message)


class TeardownFailed(LifecycleError):
    """The first release error of an unwind.

    Releases that failed after it are kept in `secondary`; all of them were
    still attempted.
    """

    kind = "teardown_failed"
    exit_code = 4

    def __init__(
        self,
        step: str,
        message: str,
        *,
        cause: BaseException | None = None,
        secondary: list[LifecycleError] | None = None,
    ) -> None:
        super().__init__(step, message, cause=cause)
        self.secondary = list(secondary or [])
