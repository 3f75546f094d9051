"""
PHP use cases — install, list and select runtime versions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from furnace.core.config.loader import save_project_php_version
from furnace.core.context import FurnaceContext
from furnace.core.engine.reconciler import ReconcileReport
from furnace.core.errors import IOFailure, NotFoundError
from furnace.core.models.recipe import Recipe, normalize_php_version
from furnace.core.models.runtime import PhpRuntime

logger = logging.getLogger(__name__)


@dataclass
class RuntimeInfo:
    version: str
    state: str
    install_dir: str
    in_catalog: bool = False
    used_by: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "state": self.state,
            "install_dir": self.install_dir,
            "in_catalog": self.in_catalog,
            "used_by": self.used_by,
        }


@dataclass
class UsePhpResult:
    version: str
    recipe: Recipe | None = None
    pinned_in: Path | None = None
    report: ReconcileReport | None = None

    @property
    def ok(self) -> bool:
        return self.report is None or self.report.ok

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "recipe": self.recipe.name if self.recipe else None,
            "pinned_in": str(self.pinned_in) if self.pinned_in else None,
            "report": self.report.to_dict() if self.report else None,
        }


def install_php(ctx: FurnaceContext, version: str) -> PhpRuntime:
    """Install one PHP version from the catalog."""
    return ctx.runtimes.install(normalize_php_version(version))


def list_runtimes(ctx: FurnaceContext, include_available: bool = False) -> list[RuntimeInfo]:
    """Installed runtimes, plus catalog versions when asked."""
    catalog_versions = set(ctx.runtimes.catalog.versions())
    versions = set(ctx.runtimes.list_installed())
    if include_available:
        versions |= catalog_versions

    users: dict[str, list[str]] = {}
    for recipe in ctx.store.list():
        users.setdefault(recipe.php_version, []).append(recipe.name)

    return [
        RuntimeInfo(
            version=v,
            state=ctx.runtimes.state(v).value,
            install_dir=str(ctx.runtimes.runtime(v).install_dir),
            in_catalog=v in catalog_versions,
            used_by=users.get(v, []),
        )
        for v in sorted(versions)
    ]


def use_php(ctx: FurnaceContext, project_dir: Path, version: str) -> UsePhpResult:
    """Switch a project to another PHP version.

    With a recipe for ``project_dir``, the recipe is updated and just
    that recipe is re-served. Without one, the version is pinned in
    the project's ``.furnace.yml`` for the next ``cook``.

    Raises:
        NotFoundError: The version is not installed.
    """
    version = normalize_php_version(version)
    if not ctx.runtimes.is_installed(version):
        raise NotFoundError(
            f"PHP {version} is not installed. Run: furnace php install {version}",
            resource=version,
        )

    project_dir = project_dir.expanduser().resolve()
    recipe = ctx.store.resolve(project_dir)
    if recipe is None:
        try:
            pinned = save_project_php_version(project_dir, version)
        except OSError as e:
            raise IOFailure(f"Cannot pin PHP {version} in {project_dir}: {e}", resource=version) from e
        return UsePhpResult(version=version, pinned_in=pinned)

    updated = recipe.model_copy(update={"php_version": version})
    ctx.store.put(updated)
    logger.info("Recipe '%s' now uses PHP %s", updated.name, version)
    report = ctx.reconciler.serve([updated.name])
    return UsePhpResult(version=version, recipe=updated, report=report)
