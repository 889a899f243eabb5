"""Process lifecycle and main entrypoint.

This module is the executable entry for `query-endpoint`. It parses flags,
configures logging, wires the default store/listener/launcher into the
orchestrator, forwards SIGINT/SIGTERM as an interruption, and maps the run
outcome to the process exit status.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Sequence

from query_endpoint import __version__
from query_endpoint.config import EndpointConfig, RawOptions, load_settings, resolve_config
from query_endpoint.errors import ConfigError, EndpointError
from query_endpoint.observability import configure_logging
from query_endpoint.runtime.launcher import AsyncioProcessLauncher
from query_endpoint.runtime.orchestrator import EndpointOrchestrator, RunOutcome
from query_endpoint.server import UvicornQueryListener
from query_endpoint.store import SqlQueryStore


logger = logging.getLogger(__name__)

EXIT_FATAL = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="query-endpoint",
        description=(
            "Launch a simple query endpoint over a dataset, run an executable that "
            "can reach it through the ENDPOINT environment variable, and shut the "
            "endpoint down when the executable exits. If no port is specified, a "
            "free port is selected automatically."
        ),
        epilog="Example: query-endpoint -p 8000 -s data.db -x /tmp/script.sh --verbose -o /tmp/output.json",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    # Numeric flags stay strings here; resolve_config reports bad values.
    parser.add_argument("-p", "--port", metavar="http_server_port", help="HTTP server port number")
    parser.add_argument(
        "-s",
        "--source-dataset",
        metavar="dataset",
        required=True,
        help="Source dataset: SQLite file path or SQLAlchemy database URL",
    )
    parser.add_argument(
        "-x",
        "--executable-script",
        metavar="executable_script",
        required=True,
        help="Executable script to be run while the endpoint is serving",
    )
    parser.add_argument("-i", "--elastic-index", metavar="elastic_index_url", help="Optional ElasticSearch index URL")
    parser.add_argument(
        "-t",
        "--timeout",
        metavar="evaluation_timeout",
        help="Timeout in seconds for each query evaluation (default is unlimited timeout)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log everything, including each query (by default only informative and error messages are printed)",
    )
    parser.add_argument(
        "-o",
        "--output",
        metavar="script_output",
        help="Redirect output of the executed script to a file (default output is the same as this process)",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        action="append",
        metavar="settings_yaml",
        help="YAML settings file (repeatable; later files override earlier ones)",
    )
    return parser


def _raw_options(ns: argparse.Namespace) -> RawOptions:
    return RawOptions(
        source_dataset=ns.source_dataset,
        executable_script=ns.executable_script,
        port=ns.port,
        timeout=ns.timeout,
        elastic_index=ns.elastic_index,
        output=ns.output,
        verbose=bool(ns.verbose),
    )


def _install_signal_handlers(orch: EndpointOrchestrator) -> list[signal.Signals]:
    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, orch.interrupt)
        except (NotImplementedError, RuntimeError):
            # Not available on this platform/thread; Ctrl+C then surfaces as
            # KeyboardInterrupt and cancels the run instead.
            continue
        installed.append(sig)
    return installed


async def run_endpoint(cfg: EndpointConfig) -> RunOutcome:
    """Run one endpoint session with the default collaborators."""

    orch = EndpointOrchestrator(
        cfg,
        store=SqlQueryStore(),
        listener=UvicornQueryListener(host=cfg.settings.listen_host, verbose=cfg.verbose),
        launcher=AsyncioProcessLauncher(),
    )
    installed = _install_signal_handlers(orch)
    try:
        return await orch.run()
    finally:
        loop = asyncio.get_running_loop()
        for sig in installed:
            loop.remove_signal_handler(sig)


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint referenced by pyproject.toml."""

    parser = _build_parser()
    try:
        ns = parser.parse_args(list(argv) if argv is not None else None)
    except SystemExit as e:
        # argparse has already printed help/usage.
        code = e.code
        return int(code) if isinstance(code, int) else EXIT_USAGE

    try:
        settings = load_settings(ns.config)
        cfg = resolve_config(_raw_options(ns), settings=settings)
    except ConfigError as e:
        configure_logging(level="INFO")
        logger.error("config_error", extra={"error": str(e), "error_type": type(e).__name__})
        sys.stderr.write(f"{type(e).__name__}: {e}\n")
        return e.exit_code

    configure_logging(level=cfg.log_level)
    logger.info(
        "endpoint_starting",
        extra={
            "version": __version__,
            "dataset": cfg.source_dataset,
            "executable": str(cfg.executable),
            "port": cfg.port,
            "timeout_s": cfg.timeout,
            "output": str(cfg.output) if cfg.output is not None else None,
        },
    )

    try:
        outcome = asyncio.run(run_endpoint(cfg))
    except KeyboardInterrupt:
        sys.stderr.write("Interrupted\n")
        return EXIT_INTERRUPTED
    except Exception as e:  # noqa: BLE001
        logger.exception("fatal_error")
        sys.stderr.write(f"Fatal error: {e}\n")
        return EXIT_FATAL

    if outcome.error is not None:
        err: EndpointError = outcome.error
        sys.stderr.write(f"{type(err).__name__}: {err}\n")
        if outcome.teardown is not None and outcome.teardown is not err:
            sys.stderr.write(f"TeardownFailed: {outcome.teardown}\n")
    return outcome.process_exit_code()
