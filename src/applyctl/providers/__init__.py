"""Provider interfaces for applyctl."""
from __future__ import annotations

from .engine import ApplyEngine, EngineCommand
from .hostname import HostnameError, HostnameProvider

__all__ = [
    "ApplyEngine",
    "EngineCommand",
    "HostnameError",
    "HostnameProvider",
]
