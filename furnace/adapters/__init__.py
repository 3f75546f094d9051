"""Adapters — bindings to web servers and the shell.

Public re-exports for convenient access.
"""

from furnace.adapters.base import WebBackend
from furnace.adapters.mock import FakeProbe, FakeRunner, MockBackend
from furnace.adapters.registry import BackendRegistry, default_registry

__all__ = [
    "BackendRegistry",
    "FakeProbe",
    "FakeRunner",
    "MockBackend",
    "WebBackend",
    "default_registry",
]
