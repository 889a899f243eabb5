from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True, slots=True)
class EndpointSettings:
    """Ambient settings that are not exposed as command-line flags.

    Loaded from an optional YAML file (`endpoint:` section); every field has a
    default so the tool runs without one.
    """

    listen_host: str = "127.0.0.1"
    advertised_host: str = "localhost"
    address_var: str = "ENDPOINT"
    context_path: str = "/"
    terminate_grace_s: float = 5.0
    log_level: str = "INFO"


@dataclass(frozen=True, slots=True)
class RawOptions:
    """Option values exactly as received from the command line."""

    source_dataset: str | None
    executable_script: str | None
    port: str | None = None
    timeout: str | None = None
    elastic_index: str | None = None
    output: str | None = None
    verbose: bool = False


@dataclass(frozen=True, slots=True)
class EndpointConfig:
    source_dataset: str
    executable: Path
    port: int = 0
    timeout: int = 0
    elastic_index: str | None = None
    output: Path | None = None
    verbose: bool = False
    settings: EndpointSettings = field(default_factory=EndpointSettings)

    @property
    def log_level(self) -> str:
        return "DEBUG" if self.verbose else self.settings.log_level
