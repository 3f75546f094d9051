"""
Mock adapters — test doubles for web backends and liveness probes.

``MockBackend`` is a real ``WebBackend``: it renders and writes config
files (under ``<root>/mock-<kind>``) and stages them like the real
backends do, but keeps process state in memory. Failures are injected
per operation.
"""

from __future__ import annotations

from pathlib import Path

from furnace.adapters.base import WebBackend
from furnace.adapters.shell.command import CommandRunner, FakeRunner
from furnace.core.config.paths import FurnacePaths
from furnace.core.errors import ExternalToolError, FurnaceError
from furnace.core.models.settings import FurnaceSettings
from furnace.core.observability.health import LivenessProbe

__all__ = ["FakeProbe", "FakeRunner", "MockBackend"]


class MockBackend(WebBackend):
    """In-memory web backend for testing."""

    def __init__(
        self,
        paths: FurnacePaths,
        settings: FurnaceSettings | None = None,
        kind: str = "nginx",
        installed: bool = True,
        running: bool = False,
    ):
        super().__init__(paths, settings or FurnaceSettings(), CommandRunner())
        self._kind = kind
        self.installed = installed
        self.running = running
        self.validation_output: str | None = None
        self.start_error: FurnaceError | None = None
        self.calls: list[str] = []

    @property
    def kind(self) -> str:
        return self._kind

    @property
    def binary(self) -> str:
        return f"mock-{self._kind}"

    @property
    def base_dir(self) -> Path:
        return self._paths.root / f"mock-{self._kind}"

    @property
    def logs_dir(self) -> Path:
        return self.base_dir / "logs"

    def conf_path(self, name: str) -> Path:
        return self.base_dir / f"{name}.conf"

    def detect_installed(self) -> bool:
        return self.installed

    def fail_validation(self, output: str = "mock: syntax error") -> None:
        """Make every following ``validate()`` fail with ``output``."""
        self.validation_output = output

    def validate(self) -> None:
        self.calls.append("validate")
        if self.validation_output is not None:
            raise ExternalToolError(
                f"{self.kind} configuration test failed",
                resource=self.kind,
                output=self.validation_output,
                return_code=1,
            )

    def is_running(self) -> bool:
        return self.running

    def start(self) -> None:
        self.calls.append("start")
        if self.start_error is not None:
            raise self.start_error
        self.running = True

    def _reload(self) -> None:
        self.calls.append("reload")

    def stop(self) -> bool:
        self.calls.append("stop")
        was_running = self.running
        self.running = False
        return was_running

    def count(self, call: str) -> int:
        return self.calls.count(call)


class FakeProbe(LivenessProbe):
    """Liveness probe backed by a set of sockets marked alive."""

    def __init__(self) -> None:
        self.alive: set[str] = set()

    def mark_alive(self, socket_path: str | Path) -> None:
        self.alive.add(str(socket_path))

    def mark_dead(self, socket_path: str | Path) -> None:
        self.alive.discard(str(socket_path))

    def is_alive(self, socket_path: Path) -> bool:
        return str(socket_path) in self.alive
