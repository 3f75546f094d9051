"""
Recipe store — durable registry of recipes, one YAML file per recipe.

Records live in ``~/.furnace/recipes/<name>.yml``. Each project also
gets a back-reference, a symlink ``<project>/.furnace.recipe.yml``
pointing at its record, so commands run inside a project can find
their recipe without a name. The back-reference is a convenience
only: when it disagrees with the records, the records win.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml

from furnace.core.config.paths import BACK_REFERENCE_NAME, FurnacePaths
from furnace.core.errors import ConflictError, IOFailure
from furnace.core.models.recipe import Recipe
from furnace.core.persistence.atomic import atomic_write_text

logger = logging.getLogger(__name__)


def _same_path(a: str, b: str) -> bool:
    return os.path.normpath(a) == os.path.normpath(b)


class RecipeStore:
    """File-backed recipe registry.

    Side effects stay inside the recipes directory, plus the
    back-reference symlink inside each project.
    """

    def __init__(self, paths: FurnacePaths):
        self._paths = paths

    @property
    def directory(self) -> Path:
        return self._paths.recipes_dir

    def record_path(self, name: str) -> Path:
        return self._paths.recipe_file(name)

    # ── Reads ───────────────────────────────────────────────────

    def _load(self, path: Path) -> Recipe | None:
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
            return Recipe.model_validate(data)
        except FileNotFoundError:
            return None
        except Exception as e:
            logger.warning("Skipping unreadable recipe %s: %s", path, e)
            return None

    def get(self, name: str) -> Recipe | None:
        path = self.record_path(name)
        if not path.is_file():
            return None
        return self._load(path)

    def list(self) -> list[Recipe]:
        """All readable recipes, sorted by name."""
        if not self.directory.is_dir():
            return []
        recipes = []
        for path in sorted(self.directory.glob("*.yml")):
            recipe = self._load(path)
            if recipe is not None:
                recipes.append(recipe)
        return recipes

    def get_by_path(self, path: str | Path) -> Recipe | None:
        target = str(path)
        for recipe in self.list():
            if _same_path(recipe.path, target):
                return recipe
        return None

    # ── Writes ──────────────────────────────────────────────────

    def put(self, recipe: Recipe) -> Recipe:
        """Create or update a recipe.

        Re-putting the same (name, path) pair updates in place.

        Raises:
            ConflictError: If the path is registered under another name,
                or the name is taken by another path.
            IOFailure: If the record cannot be written.
        """
        by_path = self.get_by_path(recipe.path)
        if by_path is not None and by_path.name != recipe.name:
            raise ConflictError(
                f"{recipe.path} is already registered as recipe '{by_path.name}'",
                resource=recipe.name,
            )

        by_name = self.get(recipe.name)
        if by_name is not None and not _same_path(by_name.path, recipe.path):
            raise ConflictError(
                f"Recipe name '{recipe.name}' is already used by {by_name.path}",
                resource=recipe.name,
            )

        content = yaml.safe_dump(
            recipe.model_dump(mode="json"),
            sort_keys=False,
            default_flow_style=False,
        )
        path = self.record_path(recipe.name)
        try:
            atomic_write_text(path, content)
        except OSError as e:
            raise IOFailure(
                f"Cannot write recipe '{recipe.name}' to {path}: {e}",
                resource=recipe.name,
            ) from e

        logger.info("Recipe '%s' saved to %s", recipe.name, path)
        return recipe

    def remove(self, name: str) -> Recipe | None:
        """Delete a recipe and its back-reference.

        Removing an absent recipe is not an error.

        Returns:
            The removed recipe, or None if there was nothing to remove.
        """
        path = self.record_path(name)
        recipe = self.get(name)
        if recipe is not None:
            self.unlink(recipe)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise IOFailure(f"Cannot delete recipe '{name}': {e}", resource=name) from e
        if recipe is not None:
            logger.info("Recipe '%s' removed", name)
        return recipe

    # ── Back-references ─────────────────────────────────────────

    def back_reference(self, project_dir: str | Path) -> Path:
        return Path(project_dir) / BACK_REFERENCE_NAME

    def link(self, recipe: Recipe) -> Path:
        """Point ``<project>/.furnace.recipe.yml`` at the recipe record."""
        marker = self.back_reference(recipe.path)
        target = self.record_path(recipe.name)
        try:
            if marker.is_symlink() or marker.exists():
                marker.unlink()
            marker.symlink_to(target)
        except OSError as e:
            raise IOFailure(
                f"Cannot link recipe '{recipe.name}' into {recipe.path}: {e}",
                resource=recipe.name,
            ) from e
        logger.debug("Back-reference %s -> %s", marker, target)
        return marker

    def unlink(self, recipe: Recipe) -> None:
        """Remove the back-reference if it points at this recipe."""
        marker = self.back_reference(recipe.path)
        if not marker.is_symlink():
            return
        if Path(os.readlink(marker)).stem != recipe.name:
            logger.debug("Leaving %s: it points at another recipe", marker)
            return
        try:
            marker.unlink()
        except OSError as e:
            raise IOFailure(
                f"Cannot remove back-reference {marker}: {e}",
                resource=recipe.name,
            ) from e

    def resolve(self, project_dir: str | Path) -> Recipe | None:
        """The recipe for a project directory.

        Follows the back-reference first, but only trusts it when the
        record it names really is registered for this directory.
        """
        directory = Path(project_dir)
        marker = self.back_reference(directory)
        if marker.is_symlink():
            name = Path(os.readlink(marker)).stem
            recipe = self.get(name)
            if recipe is not None and _same_path(recipe.path, str(directory)):
                return recipe
            logger.debug("Stale back-reference in %s — scanning records", directory)
        return self.get_by_path(directory)
