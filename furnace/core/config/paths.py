"""
Furnace paths — every on-disk location, resolved once.

All components receive a ``FurnacePaths`` in their constructor instead
of looking up the home directory themselves. Tests build one over
``tmp_path``:

    paths = FurnacePaths(root=tmp_path / ".furnace", home=tmp_path)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from furnace.core.errors import ConfigError

logger = logging.getLogger(__name__)

STATE_DIR_NAME = ".furnace"
GLOBAL_CONFIG_NAME = ".furnace.yml"
BACK_REFERENCE_NAME = ".furnace.recipe.yml"
PROJECT_CONFIG_NAME = ".furnace.yml"
CATALOG_NAME = "repository.yml"

# Environment override for the state root
HOME_ENV = "FURNACE_HOME"


@dataclass(frozen=True)
class FurnacePaths:
    """Resolved base paths for one Furnace installation."""

    root: Path
    home: Path

    # ── Recipes ─────────────────────────────────────────────────

    @property
    def recipes_dir(self) -> Path:
        return self.root / "recipes"

    def recipe_file(self, name: str) -> Path:
        return self.recipes_dir / f"{name}.yml"

    # ── Configuration ───────────────────────────────────────────

    @property
    def global_config(self) -> Path:
        """User-wide settings file (``~/.furnace.yml``)."""
        return self.home / GLOBAL_CONFIG_NAME

    @property
    def catalog_file(self) -> Path:
        return self.root / CATALOG_NAME

    # ── Web backends ────────────────────────────────────────────

    @property
    def nginx_dir(self) -> Path:
        return self.root / "nginx"

    @property
    def nginx_servers_dir(self) -> Path:
        return self.nginx_dir / "servers"

    @property
    def nginx_logs_dir(self) -> Path:
        return self.nginx_dir / "logs"

    @property
    def nginx_pid_file(self) -> Path:
        return self.nginx_logs_dir / "nginx.pid"

    @property
    def apache_dir(self) -> Path:
        return self.root / "apache"

    @property
    def apache_logs_dir(self) -> Path:
        return self.apache_dir / "logs"

    # ── PHP runtimes ────────────────────────────────────────────

    @property
    def php_dir(self) -> Path:
        return self.root / "php"

    def php_version_dir(self, version: str) -> Path:
        return self.php_dir / version

    # ── DNS ─────────────────────────────────────────────────────

    @property
    def dnsmasq_dir(self) -> Path:
        return self.root / "dnsmasq.d"

    @classmethod
    def resolve(cls, root: str | Path | None = None) -> FurnacePaths:
        """Resolve paths for the current user.

        Precedence: explicit ``root`` > ``FURNACE_HOME`` > ``~/.furnace``.

        Raises:
            ConfigError: If no home directory can be determined.
        """
        try:
            home = Path.home()
        except RuntimeError as e:
            raise ConfigError(f"Cannot determine home directory: {e}") from e

        if root is None:
            root = os.environ.get(HOME_ENV) or None

        state_root = Path(root).expanduser() if root else home / STATE_DIR_NAME
        if root:
            # A custom root keeps its user config next to it
            home = state_root.parent
        logger.debug("Furnace state root: %s", state_root)
        return cls(root=state_root.resolve(), home=home.resolve())
