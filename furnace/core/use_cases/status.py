"""
Status use case — recipes, runtimes and backends at a glance.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from furnace.core.context import FurnaceContext
from furnace.core.models.recipe import Recipe
from furnace.core.observability.health import SystemHealth, check_system_health


@dataclass
class RecipeStatus:
    recipe: Recipe
    php_state: str
    backend_running: bool

    def to_dict(self) -> dict:
        return {
            **self.recipe.model_dump(mode="json"),
            "php_state": self.php_state,
            "backend_running": self.backend_running,
        }


@dataclass
class StatusResult:
    """Aggregated Furnace status."""

    health: SystemHealth
    recipes: list[RecipeStatus] = field(default_factory=list)
    backends: dict[str, dict] = field(default_factory=dict)
    runtimes: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "health": self.health.to_dict(),
            "recipes": [r.to_dict() for r in self.recipes],
            "backends": self.backends,
            "runtimes": self.runtimes,
        }


def get_status(ctx: FurnaceContext) -> StatusResult:
    backends = ctx.registry.backend_status()
    result = StatusResult(
        health=check_system_health(ctx.store, ctx.registry, ctx.runtimes),
        backends=backends,
        runtimes={v: ctx.runtimes.state(v).value for v in ctx.runtimes.list_installed()},
    )

    for recipe in ctx.store.list():
        if recipe.has_php_version:
            php_state = ctx.runtimes.state(recipe.php_version).value
        else:
            php_state = "unresolved"
        result.recipes.append(
            RecipeStatus(
                recipe=recipe,
                php_state=php_state,
                backend_running=backends.get(recipe.serve_with, {}).get("running", False),
            )
        )
    return result
