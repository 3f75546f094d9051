"""
Backend registry — lookup of web backends by kind.

The reconciler never instantiates backends itself; it asks the
registry for the one a recipe's ``serve_with`` names.
"""

from __future__ import annotations

import logging
from typing import Any

from furnace.adapters.base import WebBackend
from furnace.adapters.shell.command import CommandRunner
from furnace.adapters.web.apache import ApacheBackend
from furnace.adapters.web.nginx import NginxBackend
from furnace.core.config.paths import FurnacePaths
from furnace.core.errors import NotFoundError
from furnace.core.models.settings import FurnaceSettings

logger = logging.getLogger(__name__)


class BackendRegistry:
    """Registered web backends, keyed by kind."""

    def __init__(self) -> None:
        self._backends: dict[str, WebBackend] = {}

    def register(self, backend: WebBackend) -> None:
        kind = backend.kind
        if kind in self._backends:
            logger.warning("Overwriting existing backend: %s", kind)
        self._backends[kind] = backend
        logger.debug("Registered backend: %s", kind)

    def get(self, kind: str) -> WebBackend:
        """Look up a backend.

        Raises:
            NotFoundError: If no backend of that kind is registered.
        """
        backend = self._backends.get(kind)
        if backend is None:
            raise NotFoundError(
                f"No web backend '{kind}'. Known: {', '.join(self.kinds()) or 'none'}",
                resource=kind,
            )
        return backend

    def kinds(self) -> list[str]:
        return list(self._backends)

    def all(self) -> list[WebBackend]:
        return list(self._backends.values())

    def backend_status(self) -> dict[str, dict[str, Any]]:
        """Installed/running flags of every backend."""
        return {
            kind: {
                "installed": backend.detect_installed(),
                "running": backend.is_running(),
            }
            for kind, backend in self._backends.items()
        }

    def __contains__(self, kind: object) -> bool:
        return kind in self._backends


def default_registry(
    paths: FurnacePaths,
    settings: FurnaceSettings,
    runner: CommandRunner,
) -> BackendRegistry:
    """Registry with the nginx and apache backends."""
    registry = BackendRegistry()
    registry.register(NginxBackend(paths, settings, runner))
    registry.register(ApacheBackend(paths, settings, runner))
    return registry
