"""
Install use case — bootstrap the ``~/.furnace`` state tree.

Safe to re-run: existing files (catalog, main nginx config) are kept.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from furnace.adapters.web.nginx import NginxBackend
from furnace.core.config.loader import default_catalog_text
from furnace.core.context import FurnaceContext
from furnace.core.errors import IOFailure
from furnace.core.persistence.atomic import atomic_write_text, read_text_or_none

logger = logging.getLogger(__name__)


@dataclass
class InstallResult:
    root: Path
    created: list[str] = field(default_factory=list)
    dnsmasq_conf: Path | None = None
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "root": str(self.root),
            "created": self.created,
            "dnsmasq_conf": str(self.dnsmasq_conf) if self.dnsmasq_conf else None,
            "warnings": self.warnings,
        }


def dnsmasq_conf_text(tld: str) -> str:
    return f"# Managed by Furnace: resolve every .{tld} host locally\naddress=/.{tld}/127.0.0.1\n"


def _write_if_changed(path: Path, content: str, result: InstallResult) -> None:
    if read_text_or_none(path) == content:
        return
    atomic_write_text(path, content)
    result.created.append(str(path))


def run_install(ctx: FurnaceContext) -> InstallResult:
    """Create the state tree and its default files.

    Raises:
        IOFailure: If a directory or file cannot be created.
    """
    paths = ctx.paths
    result = InstallResult(root=paths.root)

    directories = [
        paths.root,
        paths.recipes_dir,
        paths.php_dir,
        paths.nginx_servers_dir,
        paths.nginx_logs_dir,
        paths.apache_logs_dir,
        paths.dnsmasq_dir,
    ]
    try:
        for directory in directories:
            if not directory.is_dir():
                directory.mkdir(parents=True, exist_ok=True)
                result.created.append(str(directory))

        if not paths.catalog_file.exists():
            atomic_write_text(paths.catalog_file, default_catalog_text())
            result.created.append(str(paths.catalog_file))

        tld = ctx.settings.tld
        result.dnsmasq_conf = paths.dnsmasq_dir / f"furnace-{tld}.conf"
        _write_if_changed(result.dnsmasq_conf, dnsmasq_conf_text(tld), result)
    except OSError as e:
        raise IOFailure(f"Cannot initialise {paths.root}: {e}", resource=str(paths.root)) from e

    if "nginx" in ctx.registry:
        nginx = ctx.registry.get("nginx")
        if isinstance(nginx, NginxBackend) and not nginx.main_conf.exists():
            result.created.append(str(nginx.ensure_main_conf()))

    for backend in ctx.registry.all():
        if not backend.detect_installed():
            message = f"{backend.kind}: {backend.binary} not found on PATH"
            logger.warning(message)
            result.warnings.append(message)

    logger.info("Furnace initialised at %s (%d new)", paths.root, len(result.created))
    return result
