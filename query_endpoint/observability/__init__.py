from __future__ import annotations

from .context import bind_run, set_state, snapshot
from .logging import JsonFormatter, configure_logging

__all__ = ["JsonFormatter", "bind_run", "configure_logging", "set_state", "snapshot"]
