"""
Nginx backend — a private nginx instance rooted at ``~/.furnace/nginx``.

Furnace never touches the system nginx configuration. It runs its own
instance with ``-p <prefix> -c <prefix>/nginx.conf``; the main config
includes every ``servers/*.conf`` rendered from recipes.
"""

from __future__ import annotations

import logging
from pathlib import Path

from furnace.adapters.base import WebBackend
from furnace.adapters.shell.process import pid_alive, read_pid, wait_for_exit
from furnace.core.errors import ExternalToolError, IOFailure
from furnace.core.persistence.atomic import atomic_write_text

logger = logging.getLogger(__name__)

_MAIN_CONF = """\
# Managed by Furnace. Site configs live in servers/.
worker_processes 1;
pid {pid_file};
error_log {logs_dir}/error.log;

events {{
    worker_connections 1024;
}}

http {{
    include {mime_types};
    default_type application/octet-stream;
    sendfile on;
    keepalive_timeout 65;
    client_max_body_size 64m;

    include servers/*.conf;
}}
"""


class NginxBackend(WebBackend):
    """nginx with a Furnace-owned prefix."""

    @property
    def kind(self) -> str:
        return "nginx"

    @property
    def binary(self) -> str:
        return "nginx"

    @property
    def logs_dir(self) -> Path:
        return self._paths.nginx_logs_dir

    @property
    def main_conf(self) -> Path:
        return self._paths.nginx_dir / "nginx.conf"

    @property
    def pid_file(self) -> Path:
        return self._paths.nginx_pid_file

    def conf_path(self, name: str) -> Path:
        return self._paths.nginx_servers_dir / f"{name}.conf"

    def prepare(self) -> None:
        self._paths.nginx_servers_dir.mkdir(parents=True, exist_ok=True)
        super().prepare()

    def render_main_conf(self) -> str:
        return _MAIN_CONF.format(
            pid_file=self.pid_file,
            logs_dir=self.logs_dir,
            mime_types=self._settings.nginx_mime_types,
        )

    def ensure_main_conf(self) -> Path:
        """Write ``nginx.conf`` unless one already exists."""
        path = self.main_conf
        if path.exists():
            return path
        try:
            self.prepare()
            atomic_write_text(path, self.render_main_conf())
        except OSError as e:
            raise IOFailure(f"Cannot write {path}: {e}", resource=self.kind) from e
        logger.info("Wrote nginx main config %s", path)
        return path

    def _args(self, *extra: str) -> list[str]:
        return [self.binary, "-p", str(self._paths.nginx_dir), "-c", str(self.main_conf), *extra]

    # ── Lifecycle ───────────────────────────────────────────────

    def validate(self) -> None:
        self.ensure_main_conf()
        result = self._runner.run(self._args("-t"))
        if not result.ok:
            raise ExternalToolError(
                "nginx configuration test failed",
                resource=self.kind,
                output=result.diagnostics,
                return_code=result.return_code,
            )

    def is_running(self) -> bool:
        return pid_alive(read_pid(self.pid_file))

    def start(self) -> None:
        if self.is_running():
            logger.debug("nginx already running")
            return
        self.ensure_main_conf()
        self._check(self._runner.run(self._args()), "start")

    def _reload(self) -> None:
        self._check(self._runner.run(self._args("-s", "reload")), "reload")

    def stop(self) -> bool:
        pid = read_pid(self.pid_file)
        if pid is None or not pid_alive(pid):
            self.pid_file.unlink(missing_ok=True)
            return False
        # -s quit sends SIGQUIT: finish in-flight requests, then exit
        self._check(self._runner.run(self._args("-s", "quit")), "stop")
        if not wait_for_exit(pid, self._settings.stop_grace):
            logger.warning("nginx (pid %d) did not exit within %.1fs", pid, self._settings.stop_grace)
        return True
