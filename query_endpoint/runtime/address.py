from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from query_endpoint.config.model import EndpointSettings


@dataclass(frozen=True, slots=True)
class PublishedAddress:
    """Endpoint address handed to the child; fixed once the child is spawned."""

    host: str
    port: int
    path: str = "/"
    scheme: str = "http"

    @property
    def url(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}{self.path}"

    def __str__(self) -> str:
        return self.url


def publish_address(bound: tuple[str, int], settings: EndpointSettings | None = None) -> PublishedAddress:
    """Derive the published address from a live listener's bound address.

    Only the realized port is used; the host is the advertised one, since the
    listener may be bound to a wildcard interface.
    """

    settings = settings or EndpointSettings()
    _host, port = bound
    if port <= 0:
        raise ValueError(f"listener is not bound (port={port})")
    return PublishedAddress(host=settings.advertised_host, port=int(port), path=settings.context_path)


def build_child_env(
    base_env: Mapping[str, str],
    address: PublishedAddress,
    *,
    var: str = "ENDPOINT",
) -> dict[str, str]:
    env = dict(base_env)
    env[var] = address.url
    return env
