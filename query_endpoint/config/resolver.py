"""Validation of raw command-line options into an EndpointConfig.

Nothing here opens, creates or binds anything: the checks only inspect the
filesystem, so resolving the same options twice gives the same answer.
"""

from __future__ import annotations

import os
from pathlib import Path

from query_endpoint.config.model import EndpointConfig, EndpointSettings, RawOptions
from query_endpoint.errors import InvalidArgument, PreconditionFailed


DEFAULT_PORT = 0
DEFAULT_TIMEOUT = 0
MAX_PORT = 65535


def parse_port(value: str | None) -> int:
    if value is None:
        return DEFAULT_PORT
    try:
        port = int(value.strip())
    except ValueError as e:
        raise InvalidArgument(f"Failed to parse port number from the input string: {value}") from e
    if port < 0 or port > MAX_PORT:
        raise InvalidArgument(f"Port number must be between 0 and {MAX_PORT}, got: {value}")
    return port


def parse_timeout(value: str | None) -> int:
    """Per-query timeout in seconds; zero or negative means unlimited."""
    if value is None:
        return DEFAULT_TIMEOUT
    try:
        return int(value.strip())
    except ValueError as e:
        raise InvalidArgument(f"Failed to parse timeout number from the input string: {value}") from e


def check_executable(script: str | None) -> Path:
    if script is None or not script.strip():
        raise InvalidArgument("Executable script is required")

    path = Path(script)
    if not path.exists():
        raise PreconditionFailed(f"Script {script} does not exist")
    if not path.is_file():
        raise PreconditionFailed(f"Script {script} is not a regular file")
    if not os.access(path, os.R_OK):
        raise PreconditionFailed(f"Cannot read script: {script}")
    if not os.access(path, os.X_OK):
        raise PreconditionFailed(f"Cannot execute script: {script}")

    # Spawn by absolute path so a bare file name is never looked up on PATH.
    return Path(os.path.abspath(path))


def check_output(output: str | None) -> Path | None:
    if output is None:
        return None

    path = Path(os.path.abspath(output))
    parent = path.parent
    if not parent.is_dir():
        raise PreconditionFailed(f"Directory of the output file {parent} does not exist")
    if not os.access(parent, os.W_OK):
        raise PreconditionFailed(f"Cannot write into the output file directory: {parent}")
    return path


def resolve_config(raw: RawOptions, *, settings: EndpointSettings | None = None) -> EndpointConfig:
    """Validate raw options.

    Numeric flags are checked first (InvalidArgument), then filesystem
    preconditions (PreconditionFailed).
    """

    timeout = parse_timeout(raw.timeout)
    port = parse_port(raw.port)

    dataset = (raw.source_dataset or "").strip()
    if not dataset:
        raise InvalidArgument("Source dataset is required")

    executable = check_executable(raw.executable_script)
    output = check_output(raw.output)

    elastic_index = raw.elastic_index.strip() if raw.elastic_index else None

    return EndpointConfig(
        source_dataset=dataset,
        executable=executable,
        port=port,
        timeout=timeout,
        elastic_index=elastic_index or None,
        output=output,
        verbose=bool(raw.verbose),
        settings=settings or EndpointSettings(),
    )
