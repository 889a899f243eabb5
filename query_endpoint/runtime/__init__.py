"""Endpoint lifecycle: resource stack, address publication, orchestration, CLI."""

from __future__ import annotations

from .address import PublishedAddress, build_child_env, publish_address
from .orchestrator import EndpointOrchestrator, RunOutcome, RunState
from .resources import ReleaseFailure, ResourceHandle, ResourceStack

__all__ = [
    "EndpointOrchestrator",
    "PublishedAddress",
    "ReleaseFailure",
    "ResourceHandle",
    "ResourceStack",
    "RunOutcome",
    "RunState",
    "build_child_env",
    "publish_address",
]
