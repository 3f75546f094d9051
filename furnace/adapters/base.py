"""
Web backend base — the contract between the reconciler and web servers.

The reconciler only talks to web servers through this interface,
never directly to ``nginx`` or ``apachectl``.

Config changes are staged: every file written or removed since the
last successful ``apply()`` remembers its previous content. When
validation fails, ``apply()`` puts those files back exactly as they
were, so a broken config never stays on disk and never reaches a
running server.

To add a backend:
    1. Subclass WebBackend
    2. Implement kind, conf_path, validate, is_running, start, stop, _reload
    3. Register it in the BackendRegistry
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path

from furnace.adapters.shell.command import CommandResult, CommandRunner, is_port_conflict
from furnace.core.config.paths import FurnacePaths
from furnace.core.errors import ExternalToolError, IOFailure, ResourceUnavailableError
from furnace.core.models.recipe import Recipe
from furnace.core.models.settings import FurnaceSettings
from furnace.core.persistence.atomic import atomic_write_text, read_text_or_none, restore_text
from furnace.core.services.renderer import render

logger = logging.getLogger(__name__)


class WebBackend(ABC):
    """Abstract base class for web server backends."""

    def __init__(
        self,
        paths: FurnacePaths,
        settings: FurnaceSettings,
        runner: CommandRunner,
    ):
        self._paths = paths
        self._settings = settings
        self._runner = runner
        # path → content before the first change since the last apply
        self._staged: dict[Path, str | None] = {}

    @property
    @abstractmethod
    def kind(self) -> str:
        """Backend identifier, matching ``Recipe.serve_with``."""

    @property
    @abstractmethod
    def binary(self) -> str:
        """Executable whose presence means the backend is installed."""

    @property
    @abstractmethod
    def logs_dir(self) -> Path:
        """Directory for per-recipe access/error logs."""

    @abstractmethod
    def conf_path(self, name: str) -> Path:
        """Where the rendered config of recipe ``name`` lives."""

    @abstractmethod
    def validate(self) -> None:
        """Syntax-check the assembled configuration.

        Raises:
            ExternalToolError: With the tool's diagnostics, verbatim.
        """

    @abstractmethod
    def is_running(self) -> bool:
        """Whether the server process is alive."""

    @abstractmethod
    def start(self) -> None:
        """Start the server. No-op when already running."""

    @abstractmethod
    def stop(self) -> bool:
        """Stop the server. Returns False when it was not running."""

    @abstractmethod
    def _reload(self) -> None:
        """Ask a running server to re-read its configuration."""

    # ── Hooks ───────────────────────────────────────────────────

    def prepare(self) -> None:
        """Create the directories this backend writes into."""
        self.logs_dir.mkdir(parents=True, exist_ok=True)

    def _register(self, name: str, path: Path) -> None:
        """Make a freshly written config visible to the server."""

    def _unregister(self, name: str) -> None:
        """Hide a removed config from the server."""

    # ── Detection ───────────────────────────────────────────────

    def detect_installed(self) -> bool:
        return self._runner.which(self.binary) is not None

    # ── Config files ────────────────────────────────────────────

    @property
    def pending_changes(self) -> list[Path]:
        """Files changed since the last successful apply."""
        return sorted(self._staged)

    def render(self, recipe: Recipe, socket_path: str | Path | None) -> str:
        return render(
            recipe,
            socket_path,
            self.kind,
            self.logs_dir,
            listen_port=self._settings.listen_port,
            fastcgi_params=self._settings.nginx_fastcgi_params,
        )

    def write_conf(self, recipe: Recipe, socket_path: str | Path | None) -> Path:
        """Render the recipe and atomically replace its config file.

        Writing identical content is a no-op.

        Raises:
            IOFailure: If a directory or the file cannot be written.
                The previous file is left untouched.
        """
        path = self.conf_path(recipe.name)
        content = self.render(recipe, socket_path)
        previous = read_text_or_none(path)

        if previous != content:
            try:
                self.prepare()
                atomic_write_text(path, content)
            except OSError as e:
                raise IOFailure(
                    f"Cannot write {self.kind} config for '{recipe.name}' to {path}: {e}",
                    resource=recipe.name,
                ) from e
            self._staged.setdefault(path, previous)
            logger.info("Wrote %s config for '%s': %s", self.kind, recipe.name, path)
        else:
            logger.debug("%s config for '%s' unchanged", self.kind, recipe.name)

        self._register(recipe.name, path)
        return path

    def remove_conf(self, name: str) -> bool:
        """Delete the config of recipe ``name``. Idempotent.

        Removals are not staged: a later rollback never brings the
        file back.

        Returns:
            True if a file was removed.
        """
        path = self.conf_path(name)
        previous = read_text_or_none(path)
        self._unregister(name)
        if previous is None:
            return False
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise IOFailure(
                f"Cannot remove {self.kind} config {path}: {e}", resource=name
            ) from e
        self._staged.pop(path, None)
        logger.info("Removed %s config for '%s'", self.kind, name)
        return True

    def rollback(self) -> list[Path]:
        """Restore every staged file to its pre-change content."""
        restored = []
        for path, previous in self._staged.items():
            try:
                restore_text(path, previous)
            except OSError as e:
                logger.error("Cannot restore %s: %s", path, e)
                continue
            if previous is None:
                self._unregister(path.stem)
            else:
                self._register(path.stem, path)
            restored.append(path)
        self._staged.clear()
        if restored:
            logger.warning(
                "Restored %d %s config file(s) after failed validation",
                len(restored),
                self.kind,
            )
        return restored

    # ── Lifecycle ───────────────────────────────────────────────

    def reload(self) -> None:
        """Validate, then reload. A failing validation refuses the reload."""
        self.validate()
        self._reload()

    def apply(self) -> str:
        """Validate once, then reload if running or start otherwise.

        Returns:
            ``"reloaded"`` or ``"started"``.

        Raises:
            ExternalToolError: Validation failed; staged files were restored.
            ResourceUnavailableError: The listen port is taken.
        """
        try:
            self.validate()
        except ExternalToolError:
            self.rollback()
            raise

        if self.is_running():
            self._reload()
            action = "reloaded"
        else:
            self.start()
            action = "started"
        self._staged.clear()
        logger.info("%s %s", self.kind, action)
        return action

    # ── Helpers ─────────────────────────────────────────────────

    def _check(self, result: CommandResult, step: str) -> CommandResult:
        """Turn a failed tool invocation into the matching error."""
        if result.ok:
            return result
        output = result.diagnostics
        if is_port_conflict(output):
            raise ResourceUnavailableError(
                f"{self.kind} cannot {step}: port {self._settings.listen_port} "
                f"is already in use\n{output}",
                resource=self.kind,
            )
        raise ExternalToolError(
            f"{self.kind} {step} failed (exit {result.return_code})",
            resource=self.kind,
            output=output,
            return_code=result.return_code,
        )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} kind={self.kind!r}>"
