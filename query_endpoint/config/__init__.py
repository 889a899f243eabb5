"""Configuration: command-line option validation and the optional settings file.

- Flags are validated by `resolve_config` into a frozen EndpointConfig.
- Ambient settings come from YAML with strict ${ENV_VAR} expansion.
"""

from __future__ import annotations

from query_endpoint.config.loader import load_endpoint_section, load_settings
from query_endpoint.config.model import EndpointConfig, EndpointSettings, RawOptions
from query_endpoint.config.resolver import resolve_config

__all__ = [
    "EndpointConfig",
    "EndpointSettings",
    "RawOptions",
    "load_endpoint_section",
    "load_settings",
    "resolve_config",
]
