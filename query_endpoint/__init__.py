"""Transient query endpoint runner.

Opens a dataset, serves it over HTTP for the lifetime of a user-supplied
executable, and tears everything down in reverse order when it exits.
"""

from __future__ import annotations

__all__ = [
    "__version__",
]

__version__ = "0.1.0"
