"""
Cook use case — register a project directory as a recipe.

Also holds ``dispose``, its inverse. Both change the registry and then
reconcile just the affected recipe.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import ValidationError

from furnace.core.config.loader import load_project_config
from furnace.core.context import FurnaceContext
from furnace.core.engine.reconciler import ReconcileReport
from furnace.core.errors import ConfigError, NotFoundError
from furnace.core.models.recipe import (
    UNKNOWN_PHP_VERSION,
    Recipe,
    default_site,
    normalize_php_version,
)

logger = logging.getLogger(__name__)

_UNSAFE_NAME_CHARS = re.compile(r"[^a-z0-9._-]+")


@dataclass
class ProjectInfo:
    """What a project directory says about itself."""

    directory: Path
    name: str
    composer_php: str | None = None
    laravel: bool = False


@dataclass
class CookResult:
    recipe: Recipe
    created: bool = True
    php_source: str = ""
    laravel: bool = False
    warnings: list[str] = field(default_factory=list)
    report: ReconcileReport | None = None

    @property
    def ok(self) -> bool:
        return self.report is None or self.report.ok

    def to_dict(self) -> dict:
        return {
            "recipe": self.recipe.model_dump(mode="json"),
            "created": self.created,
            "php_source": self.php_source,
            "laravel": self.laravel,
            "warnings": self.warnings,
            "report": self.report.to_dict() if self.report else None,
        }


def safe_name(raw: str) -> str:
    """Turn a directory name into a recipe name: ``My App`` → ``my-app``."""
    return _UNSAFE_NAME_CHARS.sub("-", raw.lower()).strip("-._")


def detect_project(project_dir: Path) -> ProjectInfo:
    """Inspect a project directory.

    Reads ``composer.json`` for the ``require.php`` constraint and
    flags Laravel projects (``artisan`` next to ``composer.json``).
    """
    info = ProjectInfo(directory=project_dir, name=safe_name(project_dir.name))
    composer = project_dir / "composer.json"
    if not composer.is_file():
        return info

    try:
        data = json.loads(composer.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Ignoring unreadable %s: %s", composer, e)
        data = {}

    require = data.get("require") if isinstance(data, dict) else None
    if isinstance(require, dict) and require.get("php"):
        info.composer_php = str(require["php"])

    info.laravel = (project_dir / "artisan").is_file()
    return info


def resolve_php_version(
    ctx: FurnaceContext,
    info: ProjectInfo,
    explicit: str | None = None,
) -> tuple[str, str]:
    """Pick the PHP version for a project.

    Precedence: explicit > project ``.furnace.yml`` > ``~/.furnace.yml``
    > ``composer.json`` > unknown.

    Returns:
        (version, source) where source names where it came from.
    """
    if explicit:
        return normalize_php_version(explicit), "option"

    pinned = load_project_config(info.directory).get("php_version")
    if pinned:
        return normalize_php_version(str(pinned)), ".furnace.yml"

    if ctx.settings.php_version:
        return ctx.settings.php_version, "~/.furnace.yml"

    if info.composer_php:
        return normalize_php_version(info.composer_php), "composer.json"

    return UNKNOWN_PHP_VERSION, ""


def cook(
    ctx: FurnaceContext,
    project_dir: Path,
    name: str | None = None,
    php: str | None = None,
    serve_with: str | None = None,
) -> CookResult:
    """Create or update the recipe for ``project_dir``, then serve it.

    Re-cooking a directory without options leaves its recipe as it is.
    Serving failures are reported in ``CookResult.report``, not raised.

    Raises:
        NotFoundError: The directory does not exist.
        ConflictError: The directory or name belongs to another recipe.
        ConfigError: The resulting recipe is invalid.
    """
    project_dir = project_dir.expanduser().resolve()
    if not project_dir.is_dir():
        raise NotFoundError(f"No such directory: {project_dir}", resource=str(project_dir))

    info = detect_project(project_dir)
    existing = ctx.store.resolve(project_dir)
    warnings: list[str] = []

    if php is None and existing is not None and existing.has_php_version:
        version, source = existing.php_version, "recipe"
    else:
        version, source = resolve_php_version(ctx, info, php)
    if version == UNKNOWN_PHP_VERSION:
        warnings.append("No PHP version found; use --php or `furnace php use`")

    recipe_name = name or (existing.name if existing else info.name)
    backend = serve_with or (existing.serve_with if existing else ctx.settings.serve_with)

    try:
        recipe = Recipe(
            name=recipe_name,
            path=str(project_dir),
            php_version=version,
            serve_with=backend,
            site=existing.site if existing and not name else default_site(recipe_name, ctx.settings.tld),
        )
    except ValidationError as e:
        raise ConfigError(f"Invalid recipe for {project_dir}: {e}", resource=recipe_name) from e

    ctx.store.put(recipe)
    ctx.store.link(recipe)
    logger.info("Cooked '%s' (%s, PHP %s via %s)", recipe.name, recipe.site, version, source or "-")
    report = ctx.reconciler.serve([recipe.name])

    return CookResult(
        recipe=recipe,
        created=existing is None,
        php_source=source,
        laravel=info.laravel,
        warnings=warnings,
        report=report,
    )


def resolve_recipe_name(ctx: FurnaceContext, project_dir: Path, name: str | None) -> str:
    """An explicit name, or the recipe registered for ``project_dir``.

    Raises:
        NotFoundError: No name given and the directory has no recipe.
    """
    if name:
        return name
    recipe = ctx.store.resolve(project_dir.expanduser().resolve())
    if recipe is None:
        raise NotFoundError(
            f"No recipe for {project_dir}; pass --name", resource=str(project_dir)
        )
    return recipe.name


def dispose(ctx: FurnaceContext, project_dir: Path, name: str | None = None) -> ReconcileReport:
    """Remove a recipe, its configs and its back-reference."""
    recipe_name = resolve_recipe_name(ctx, project_dir, name)
    return ctx.reconciler.dispose(recipe_name)
