"""
Apache backend — vhosts under ``~/.furnace/apache``, enabled by symlink.

Apache is the system service; Furnace only adds
``furnace-<name>.conf`` symlinks to its sites-enabled directory and
drives it through ``apachectl``.
"""

from __future__ import annotations

import logging
import shlex
from pathlib import Path

from furnace.adapters.base import WebBackend
from furnace.adapters.shell.process import pid_alive, read_pid
from furnace.core.errors import ExternalToolError, IOFailure

logger = logging.getLogger(__name__)

LINK_PREFIX = "furnace-"


class ApacheBackend(WebBackend):
    """Apache httpd driven through ``apachectl``."""

    @property
    def kind(self) -> str:
        return "apache"

    @property
    def ctl(self) -> list[str]:
        return shlex.split(self._settings.apache_ctl)

    @property
    def binary(self) -> str:
        return self.ctl[0]

    @property
    def logs_dir(self) -> Path:
        return self._paths.apache_logs_dir

    @property
    def sites_enabled(self) -> Path:
        return Path(self._settings.apache_sites_enabled)

    def conf_path(self, name: str) -> Path:
        return self._paths.apache_dir / f"{name}.conf"

    def link_path(self, name: str) -> Path:
        return self.sites_enabled / f"{LINK_PREFIX}{name}.conf"

    # ── Registration ────────────────────────────────────────────

    def _register(self, name: str, path: Path) -> None:
        link = self.link_path(name)
        if link.is_symlink() and link.resolve() == path.resolve():
            return
        try:
            if link.is_symlink() or link.exists():
                link.unlink()
            link.symlink_to(path)
        except OSError as e:
            raise IOFailure(
                f"Cannot enable apache site '{name}' in {self.sites_enabled}: {e}",
                resource=name,
            ) from e
        logger.debug("Enabled %s -> %s", link, path)

    def _unregister(self, name: str) -> None:
        link = self.link_path(name)
        if not link.is_symlink():
            return
        try:
            link.unlink()
        except OSError as e:
            raise IOFailure(f"Cannot disable apache site '{name}': {e}", resource=name) from e

    # ── Lifecycle ───────────────────────────────────────────────

    def validate(self) -> None:
        result = self._runner.run([*self.ctl, "configtest"])
        if not result.ok:
            raise ExternalToolError(
                "apache configuration test failed",
                resource=self.kind,
                output=result.diagnostics,
                return_code=result.return_code,
            )

    def is_running(self) -> bool:
        return pid_alive(read_pid(Path(self._settings.apache_pid_file)))

    def start(self) -> None:
        if self.is_running():
            logger.debug("apache already running")
            return
        self._check(self._runner.run([*self.ctl, "start"]), "start")

    def _reload(self) -> None:
        self._check(self._runner.run([*self.ctl, "graceful"]), "reload")

    def stop(self) -> bool:
        if not self.is_running():
            return False
        self._check(self._runner.run([*self.ctl, "stop"]), "stop")
        return True
