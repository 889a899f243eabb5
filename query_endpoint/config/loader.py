"""Settings file loading.

YAML is optional: when no file is given the built-in defaults apply. Values may
reference the environment with `${ENV_VAR}`; expansion is strict, so a missing
or empty variable is a ConfigError rather than a silently empty string.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Mapping, Sequence

import yaml
from dotenv import load_dotenv

from query_endpoint.config.model import EndpointSettings
from query_endpoint.errors import ConfigError


SECTION = "endpoint"

_ENV_PLACEHOLDER_RE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")
_ENV_VAR_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _read_section(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
        data = yaml.safe_load(text) if text.strip() else None
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to read YAML config {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigError(f"Top-level YAML must be a mapping/dict in {path}")

    section = data.get(SECTION)
    if section is None:
        return {}
    if not isinstance(section, Mapping):
        raise ConfigError(f"must be a mapping in {path}", path=SECTION)
    return {str(k): v for k, v in section.items()}


def _expand_env(value: str, *, key: str, unresolved: list[str]) -> str:
    def repl(match: re.Match[str]) -> str:
        name = match.group(1)
        env = os.getenv(name)
        if not env:
            reason = "missing" if env is None else "empty"
            unresolved.append(f"- {name} ({reason}) at {SECTION}.{key}")
            return match.group(0)
        return env

    return _ENV_PLACEHOLDER_RE.sub(repl, value)


def load_endpoint_section(
    paths: Path | Sequence[Path],
    *,
    load_dotenv_file: bool = True,
    dotenv_path: Path | None = None,
) -> dict[str, Any]:
    """Read the `endpoint:` section of one or more YAML files.

    Later files override earlier ones key by key. String values are expanded
    against the environment after an optional `.env` load; variables already
    set in the environment win over `.env` entries.

    Raises:
        ConfigError: If a file is unreadable, is not a mapping, or references
            missing/empty environment variables.
    """

    file_list: list[Path] = [paths] if isinstance(paths, Path) else list(paths)
    if not file_list:
        raise ConfigError("No config files provided")

    if load_dotenv_file:
        load_dotenv(dotenv_path or Path.cwd() / ".env", override=False)

    merged: dict[str, Any] = {}
    for p in file_list:
        merged.update(_read_section(p))

    unresolved: list[str] = []
    section = {
        k: _expand_env(v, key=k, unresolved=unresolved) if isinstance(v, str) else v
        for k, v in merged.items()
    }
    if unresolved:
        files = ", ".join(str(p) for p in file_list)
        raise ConfigError("\n".join([f"Unresolved environment variables in {files}:", *unresolved]))
    return section


def settings_from_section(section: Mapping[str, Any]) -> EndpointSettings:
    """Validate an `endpoint:` section into EndpointSettings."""

    def _str(key: str, default: str) -> str:
        value = section.get(key, default)
        if not isinstance(value, str) or not value.strip():
            raise ConfigError("must be a non-empty string", path=f"{SECTION}.{key}")
        return value.strip()

    address_var = _str("address_var", EndpointSettings.address_var)
    if not _ENV_VAR_NAME_RE.match(address_var):
        raise ConfigError(f"not a valid environment variable name: {address_var!r}", path=f"{SECTION}.address_var")

    context_path = _str("context_path", EndpointSettings.context_path)
    if not context_path.startswith("/"):
        context_path = "/" + context_path

    grace_raw = section.get("terminate_grace_s", EndpointSettings.terminate_grace_s)
    try:
        grace = float(grace_raw)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"must be a number, got {grace_raw!r}", path=f"{SECTION}.terminate_grace_s") from e
    if grace < 0:
        raise ConfigError("must be >= 0", path=f"{SECTION}.terminate_grace_s")

    return EndpointSettings(
        listen_host=_str("listen_host", EndpointSettings.listen_host),
        advertised_host=_str("advertised_host", EndpointSettings.advertised_host),
        address_var=address_var,
        context_path=context_path,
        terminate_grace_s=grace,
        log_level=_str("log_level", EndpointSettings.log_level).upper(),
    )


def load_settings(paths: Path | Sequence[Path] | None, **kwargs: Any) -> EndpointSettings:
    """Load EndpointSettings from settings files, or the defaults when none are given."""

    if paths is None or (not isinstance(paths, Path) and not list(paths)):
        return EndpointSettings()
    return settings_from_section(load_endpoint_section(paths, **kwargs))
