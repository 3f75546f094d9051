"""
Furnace context — every collaborator a command needs, built once.

The CLI builds a context at startup and hands it to use cases. Tests
build one over ``tmp_path`` with fakes for every external process:

    ctx = build_context(
        FurnacePaths(root=tmp_path / ".furnace", home=tmp_path),
        runner=FakeRunner(),
        probe=FakeProbe(),
    )
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from furnace.adapters.registry import BackendRegistry, default_registry
from furnace.adapters.shell.command import CommandRunner
from furnace.core.config.loader import load_settings
from furnace.core.config.paths import FurnacePaths
from furnace.core.engine.reconciler import Reconciler
from furnace.core.models.runtime import RuntimeCatalog
from furnace.core.models.settings import FurnaceSettings
from furnace.core.observability.health import LivenessProbe
from furnace.core.persistence.recipe_store import RecipeStore
from furnace.core.services.runtime_manager import Fetcher, RuntimeManager

logger = logging.getLogger(__name__)


@dataclass
class FurnaceContext:
    paths: FurnacePaths
    settings: FurnaceSettings
    runner: CommandRunner
    store: RecipeStore
    registry: BackendRegistry
    runtimes: RuntimeManager
    reconciler: Reconciler


def build_context(
    paths: FurnacePaths | None = None,
    *,
    settings: FurnaceSettings | None = None,
    runner: CommandRunner | None = None,
    probe: LivenessProbe | None = None,
    catalog: RuntimeCatalog | None = None,
    fetcher: Fetcher | None = None,
    registry: BackendRegistry | None = None,
    platform: str | None = None,
) -> FurnaceContext:
    """Wire up the store, backends, runtime manager and reconciler.

    Raises:
        ConfigError: If the home directory or ``~/.furnace.yml`` is unusable.
    """
    paths = paths or FurnacePaths.resolve()
    settings = settings or load_settings(paths)
    runner = runner or CommandRunner()

    store = RecipeStore(paths)
    registry = registry or default_registry(paths, settings, runner)
    runtimes = RuntimeManager(
        paths,
        settings,
        runner,
        probe=probe,
        catalog=catalog,
        fetcher=fetcher,
        platform=platform,
    )
    logger.debug("Context built for %s", paths.root)
    return FurnaceContext(
        paths=paths,
        settings=settings,
        runner=runner,
        store=store,
        registry=registry,
        runtimes=runtimes,
        reconciler=Reconciler(store, registry, runtimes),
    )
