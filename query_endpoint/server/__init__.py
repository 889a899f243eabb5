"""Default query listener: a Starlette app served by an embedded uvicorn."""

from __future__ import annotations

from .app import QueryApp, create_app
from .listener import UvicornBoundListener, UvicornQueryListener

__all__ = ["QueryApp", "UvicornBoundListener", "UvicornQueryListener", "create_app"]
