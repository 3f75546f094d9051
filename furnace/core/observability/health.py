"""
Health checker — liveness probes and aggregate system health.

Reports the health of web backends, PHP runtimes and the recipe
registry. Used by the CLI ``status`` command.

A runtime counts as running only when its socket accepts a
connection; a leftover socket file from a crashed process does not.
"""

from __future__ import annotations

import logging
import socket
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from furnace.adapters.registry import BackendRegistry
    from furnace.core.persistence.recipe_store import RecipeStore
    from furnace.core.services.runtime_manager import RuntimeManager

logger = logging.getLogger(__name__)


# ── Liveness probes ─────────────────────────────────────────────


class LivenessProbe(ABC):
    """Decides whether a unix socket has a live listener."""

    @abstractmethod
    def is_alive(self, socket_path: Path) -> bool:
        """True when something accepts connections on ``socket_path``."""


class SocketProbe(LivenessProbe):
    """Connect-probe over ``AF_UNIX``."""

    def __init__(self, timeout: float = 0.5):
        self._timeout = timeout

    def is_alive(self, socket_path: Path) -> bool:
        if not socket_path.exists():
            return False
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(self._timeout)
        try:
            sock.connect(str(socket_path))
        except OSError as e:
            logger.debug("Probe of %s failed: %s", socket_path, e)
            return False
        finally:
            sock.close()
        return True


# ── Aggregate health ────────────────────────────────────────────


@dataclass
class ComponentHealth:
    """Health of a single component."""

    name: str
    status: str = "unknown"  # healthy, degraded, unhealthy, unknown
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status,
            "message": self.message,
            "details": self.details,
        }


@dataclass
class SystemHealth:
    """Aggregate health of the entire system."""

    status: str = "healthy"
    timestamp: str = ""
    components: list[ComponentHealth] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.timestamp:
            self.timestamp = datetime.now(UTC).isoformat()

    def add(self, component: ComponentHealth) -> None:
        self.components.append(component)
        self._recalculate()

    def _recalculate(self) -> None:
        statuses = [c.status for c in self.components]
        if any(s == "unhealthy" for s in statuses):
            self.status = "unhealthy"
        elif any(s == "degraded" for s in statuses):
            self.status = "degraded"
        elif all(s == "healthy" for s in statuses):
            self.status = "healthy"
        else:
            self.status = "unknown"

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "timestamp": self.timestamp,
            "components": [c.to_dict() for c in self.components],
        }


def check_backend(registry: BackendRegistry, kind: str, in_use: bool) -> ComponentHealth:
    """Health of one web backend.

    A backend no recipe uses is healthy whatever its state. One that
    serves recipes is degraded while stopped and unhealthy when its
    binary is missing.
    """
    backend = registry.get(kind)
    installed = backend.detect_installed()
    running = backend.is_running()
    details = {"installed": installed, "running": running, "in_use": in_use}

    if not in_use:
        status, message = "healthy", "Not used by any recipe"
    elif not installed:
        status, message = "unhealthy", f"{backend.binary} not found on PATH"
    elif not running:
        status, message = "degraded", "Installed but not running"
    else:
        status, message = "healthy", "Running"

    return ComponentHealth(name=kind, status=status, message=message, details=details)


def check_runtimes(manager: RuntimeManager, versions_in_use: set[str]) -> ComponentHealth:
    """Health of the PHP runtimes recipes depend on."""
    states = {v: manager.state(v).value for v in sorted(set(manager.list_installed()) | versions_in_use)}
    missing = sorted(v for v in versions_in_use if states.get(v) == "not_installed")
    stopped = sorted(v for v in versions_in_use if states.get(v) in ("installed", "configured"))

    if missing:
        status = "unhealthy"
        message = f"Not installed: {', '.join(missing)}"
    elif stopped:
        status = "degraded"
        message = f"Not running: {', '.join(stopped)}"
    elif states:
        status = "healthy"
        message = f"{len(states)} runtime(s)"
    else:
        status = "healthy"
        message = "No runtimes installed"

    return ComponentHealth(name="php", status=status, message=message, details=states)


def check_recipes(store: RecipeStore) -> ComponentHealth:
    recipes = store.list()
    unresolved = [r.name for r in recipes if not r.has_php_version]
    if unresolved:
        return ComponentHealth(
            name="recipes",
            status="degraded",
            message=f"{len(unresolved)} recipe(s) without a PHP version",
            details={"count": len(recipes), "unresolved": unresolved},
        )
    return ComponentHealth(
        name="recipes",
        status="healthy",
        message=f"{len(recipes)} recipe(s)",
        details={"count": len(recipes)},
    )


def check_system_health(
    store: RecipeStore,
    registry: BackendRegistry,
    manager: RuntimeManager,
) -> SystemHealth:
    """Run all health checks and return aggregate status."""
    health = SystemHealth()
    recipes = store.list()

    health.add(check_recipes(store))

    kinds_in_use = {r.serve_with for r in recipes}
    for kind in registry.kinds():
        health.add(check_backend(registry, kind, kind in kinds_in_use))

    versions_in_use = {r.php_version for r in recipes if r.has_php_version}
    health.add(check_runtimes(manager, versions_in_use))

    return health
