"""
Runtime manager — install, configure, start and stop PHP-FPM versions.

Each version lives in ``~/.furnace/php/<version>`` with its own pool
config, socket, pid file and log. The lifecycle per version is:

    not_installed → installed → configured → running

Install sources come from the runtime catalog: a downloadable archive,
a host package-manager command, or a link to an existing prefix.
"""

from __future__ import annotations

import getpass
import logging
import os
import shlex
import shutil
import signal
import tarfile
import urllib.request
import zipfile
from collections.abc import Callable
from importlib import resources
from pathlib import Path

from furnace.adapters.shell.command import CommandRunner, is_port_conflict
from furnace.adapters.shell.process import terminate
from furnace.core.config.loader import load_catalog
from furnace.core.config.paths import FurnacePaths
from furnace.core.errors import (
    BinaryMissingError,
    BinaryNotFoundError,
    DownloadError,
    ExternalToolError,
    ExtractionError,
    IOFailure,
    NotFoundError,
    ResourceUnavailableError,
)
from furnace.core.models.runtime import PhpRuntime, PhpSource, RuntimeCatalog, RuntimeState
from furnace.core.models.settings import FurnaceSettings, detect_platform
from furnace.core.observability.health import LivenessProbe, SocketProbe
from furnace.core.persistence.atomic import atomic_write_text, read_text_or_none

logger = logging.getLogger(__name__)

POOL_TEMPLATE_RESOURCE = "php-fpm.conf.tpl"

# url, destination file
Fetcher = Callable[[str, Path], None]


def urllib_fetch(url: str, destination: Path) -> None:
    """Download ``url`` into ``destination``."""
    req = urllib.request.Request(url, headers={"User-Agent": "furnace/1.0"})
    with urllib.request.urlopen(req) as resp, open(destination, "wb") as fh:
        shutil.copyfileobj(resp, fh)


def pool_template() -> str:
    return (
        resources.files("furnace.data")
        .joinpath(POOL_TEMPLATE_RESOURCE)
        .read_text(encoding="utf-8")
    )


def _current_group() -> str:
    if detect_platform() == "macos":
        return "staff"
    try:
        import grp

        return grp.getgrgid(os.getgid()).gr_name
    except (ImportError, KeyError):
        return getpass.getuser()


def _replace_symlink(link: Path, target: Path) -> None:
    if link.is_symlink() or link.exists():
        link.unlink()
    link.parent.mkdir(parents=True, exist_ok=True)
    link.symlink_to(target)


class RuntimeManager:
    """Lifecycle of PHP-FPM runtimes under ``~/.furnace/php``."""

    def __init__(
        self,
        paths: FurnacePaths,
        settings: FurnaceSettings,
        runner: CommandRunner,
        probe: LivenessProbe | None = None,
        catalog: RuntimeCatalog | None = None,
        fetcher: Fetcher | None = None,
        platform: str | None = None,
    ):
        self._paths = paths
        self._settings = settings
        self._runner = runner
        self._probe = probe or SocketProbe()
        self._catalog = catalog
        self._fetch = fetcher or urllib_fetch
        self.platform = platform or detect_platform()

    @property
    def catalog(self) -> RuntimeCatalog:
        if self._catalog is None:
            self._catalog = load_catalog(self._paths)
        return self._catalog

    def runtime(self, version: str) -> PhpRuntime:
        return PhpRuntime(version=version, install_dir=self._paths.php_version_dir(version))

    # ── Queries ─────────────────────────────────────────────────

    def is_installed(self, version: str) -> bool:
        return self.runtime(version).install_dir.is_dir()

    def list_installed(self) -> list[str]:
        """Installed versions, sorted."""
        base = self._paths.php_dir
        if not base.is_dir():
            return []
        return sorted(
            p.name for p in base.iterdir() if p.is_dir() and not p.name.startswith(".")
        )

    def is_running(self, version: str) -> bool:
        return self._probe.is_alive(self.runtime(version).socket_path)

    def state(self, version: str) -> RuntimeState:
        if not self.is_installed(version):
            return RuntimeState.NOT_INSTALLED
        if self.is_running(version):
            return RuntimeState.RUNNING
        if self.runtime(version).pool_config.is_file():
            return RuntimeState.CONFIGURED
        return RuntimeState.INSTALLED

    def socket_path(self, version: str) -> Path:
        return self.runtime(version).socket_path

    def resolve_fpm_binary(self, version: str) -> Path:
        """Find the php-fpm executable for a version.

        Looks in the runtime directory first, then at the platform's
        usual system locations.

        Raises:
            BinaryNotFoundError: If no candidate exists.
        """
        candidates = [self.runtime(version).fpm_binary]
        if self.platform == "macos":
            candidates.append(Path(f"/opt/homebrew/opt/php@{version}/sbin/php-fpm"))
            candidates.append(Path(f"/usr/local/opt/php@{version}/sbin/php-fpm"))
        elif self.platform == "linux":
            candidates.append(Path(f"/usr/sbin/php-fpm{version}"))

        for candidate in candidates:
            if candidate.exists():
                return candidate

        for program in (f"php-fpm{version}", "php-fpm"):
            found = self._runner.which(program)
            if found:
                return Path(found)

        raise BinaryNotFoundError(
            f"No php-fpm binary for PHP {version} on {self.platform}",
            resource=version,
        )

    # ── Install ─────────────────────────────────────────────────

    def install(self, version: str) -> PhpRuntime:
        """Install a version from the catalog.

        Raises:
            CatalogEntryNotFound: No source for this version/platform.
            DownloadError, ExtractionError, BinaryMissingError: Archive install failed.
            ExternalToolError: The package-manager command failed.
        """
        source = self.catalog.source_for(version, self.platform)
        runtime = self.runtime(version)
        logger.info("Installing PHP %s via %s", version, source.method)

        if source.method == "download":
            self._install_archive(runtime, source)
        elif source.method == "command":
            self._install_command(runtime, source)
        else:
            self._install_link(runtime, Path(source.link or ""), strict=True)

        logger.info("PHP %s installed at %s", version, runtime.install_dir)
        return runtime

    def _install_archive(self, runtime: PhpRuntime, source: PhpSource) -> None:
        version = runtime.version
        base = self._paths.php_dir
        staging = base / f".{version}.partial"
        archive = base / f".{version}.download"
        try:
            base.mkdir(parents=True, exist_ok=True)
            shutil.rmtree(staging, ignore_errors=True)
        except OSError as e:
            raise IOFailure(f"Cannot prepare {base}: {e}", resource=version) from e

        try:
            try:
                self._fetch(source.url or "", archive)
            except (OSError, ValueError) as e:
                raise DownloadError(
                    f"Cannot download PHP {version} from {source.url}: {e}",
                    resource=version,
                ) from e

            self._extract(archive, source.archive_type or "", staging, version)
            root = self._archive_root(staging)
            self._verify_binaries(root, version)

            if runtime.install_dir.exists():
                shutil.rmtree(runtime.install_dir)
            os.replace(root, runtime.install_dir)
        finally:
            archive.unlink(missing_ok=True)
            shutil.rmtree(staging, ignore_errors=True)

    def _extract(self, archive: Path, archive_type: str, dest: Path, version: str) -> None:
        try:
            dest.mkdir(parents=True, exist_ok=True)
            if archive_type == "zip":
                with zipfile.ZipFile(archive) as zf:
                    zf.extractall(dest)
            elif archive_type == "tar.gz":
                with tarfile.open(archive, "r:gz") as tar:
                    tar.extractall(dest, filter="data")
            else:
                raise ExtractionError(
                    f"Unknown archive type '{archive_type}' for PHP {version}",
                    resource=version,
                )
        except (zipfile.BadZipFile, tarfile.TarError, OSError) as e:
            raise ExtractionError(
                f"Cannot extract PHP {version} archive: {e}", resource=version
            ) from e

    @staticmethod
    def _archive_root(staging: Path) -> Path:
        """Descend into a single top-level directory, as most archives have."""
        entries = list(staging.iterdir())
        if len(entries) == 1 and entries[0].is_dir() and not (staging / "bin").exists():
            return entries[0]
        return staging

    def _verify_binaries(self, root: Path, version: str) -> None:
        if self.platform == "windows":
            expected = [root / "php.exe"]
        else:
            expected = [root / "bin" / "php", root / "sbin" / "php-fpm"]
        missing = [str(p.relative_to(root)) for p in expected if not p.exists()]
        if missing:
            raise BinaryMissingError(
                f"PHP {version} archive is missing: {', '.join(missing)}",
                resource=version,
            )

    def _install_command(self, runtime: PhpRuntime, source: PhpSource) -> None:
        version = runtime.version
        args = shlex.split(source.command or "")
        result = self._runner.run(args)
        if not result.ok:
            raise ExternalToolError(
                f"Install command for PHP {version} failed (exit {result.return_code})",
                resource=version,
                output=result.diagnostics,
                return_code=result.return_code,
            )

        prefix = Path("/usr")
        if args and Path(args[0]).name == "brew":
            brew = self._runner.run(["brew", "--prefix", f"php@{version}"])
            if brew.ok and brew.stdout.strip():
                prefix = Path(brew.stdout.strip())
            else:
                logger.warning("brew --prefix php@%s failed: %s", version, brew.diagnostics)

        self._install_link(runtime, prefix, strict=False)

    def _install_link(self, runtime: PhpRuntime, prefix: Path, strict: bool) -> None:
        """Create ``bin/php`` and ``sbin/php-fpm`` links into ``prefix``.

        With ``strict`` a missing php-fpm under the prefix is an error;
        otherwise the link is skipped and ``start`` falls back to the
        system locations.
        """
        version = runtime.version
        php_candidates = [prefix / "bin" / "php", prefix / "bin" / f"php{version}"]
        fpm_candidates = [prefix / "sbin" / "php-fpm", prefix / "sbin" / f"php-fpm{version}"]
        php = next((p for p in php_candidates if p.exists()), None)
        fpm = next((p for p in fpm_candidates if p.exists()), None)

        if strict and fpm is None:
            raise BinaryMissingError(
                f"No php-fpm under {prefix} for PHP {version}", resource=version
            )

        try:
            runtime.install_dir.mkdir(parents=True, exist_ok=True)
            if php is not None:
                _replace_symlink(runtime.php_binary, php)
            if fpm is not None:
                _replace_symlink(runtime.fpm_binary, fpm)
        except OSError as e:
            raise IOFailure(
                f"Cannot link PHP {version} into {runtime.install_dir}: {e}",
                resource=version,
            ) from e

        if fpm is None:
            logger.warning("PHP %s: no php-fpm found under %s", version, prefix)

    # ── Configure / start / stop ────────────────────────────────

    def render_pool_config(self, version: str) -> str:
        runtime = self.runtime(version)
        return pool_template().format(
            version=version,
            php_dir=runtime.install_dir,
            user=getpass.getuser(),
            group=_current_group(),
            sock_path=runtime.socket_path,
            pid_path=runtime.pid_file,
            log_path=runtime.log_file,
        )

    def configure(self, version: str) -> Path:
        """Write the pool config for an installed version. Idempotent.

        Raises:
            NotFoundError: If the version is not installed.
        """
        if not self.is_installed(version):
            raise NotFoundError(
                f"PHP {version} is not installed. Run: furnace php install {version}",
                resource=version,
            )
        runtime = self.runtime(version)
        content = self.render_pool_config(version)
        if read_text_or_none(runtime.pool_config) != content:
            try:
                atomic_write_text(runtime.pool_config, content)
            except OSError as e:
                raise IOFailure(
                    f"Cannot write pool config for PHP {version}: {e}", resource=version
                ) from e
            logger.info("Configured PHP %s pool: %s", version, runtime.pool_config)
        return runtime.pool_config

    def start(self, version: str) -> bool:
        """Start PHP-FPM for a version.

        Returns:
            False if it was already running.

        Raises:
            NotFoundError: The version is not installed.
            BinaryNotFoundError: No php-fpm binary exists for it.
            ResourceUnavailableError: The socket is held by another process.
            ExternalToolError: php-fpm refused to start.
        """
        if self.is_running(version):
            logger.debug("PHP %s already running", version)
            return False

        conf = self.configure(version)
        runtime = self.runtime(version)
        if runtime.socket_path.exists():
            logger.debug("Removing stale socket %s", runtime.socket_path)
            runtime.socket_path.unlink(missing_ok=True)

        fpm = self.resolve_fpm_binary(version)
        result = self._runner.run([str(fpm), "--fpm-config", str(conf), "--daemonize"])
        if not result.ok:
            output = result.diagnostics
            if is_port_conflict(output):
                raise ResourceUnavailableError(
                    f"PHP {version} cannot bind {runtime.socket_path}\n{output}",
                    resource=version,
                )
            raise ExternalToolError(
                f"php-fpm {version} failed to start (exit {result.return_code})",
                resource=version,
                output=output,
                return_code=result.return_code,
            )
        logger.info("Started PHP %s (%s)", version, runtime.socket_path)
        return True

    def stop(self, version: str) -> bool:
        """Stop PHP-FPM for a version. Idempotent.

        Returns:
            True if a running process was signalled.
        """
        runtime = self.runtime(version)
        stopped = terminate(runtime.pid_file, signal.SIGQUIT, self._settings.stop_grace)
        if runtime.socket_path.exists() and not self.is_running(version):
            runtime.socket_path.unlink(missing_ok=True)
        if stopped:
            logger.info("Stopped PHP %s", version)
        return stopped
