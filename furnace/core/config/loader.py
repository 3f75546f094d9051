"""
Configuration loader — reads YAML documents into typed models.

Three documents feed Furnace:
    ~/.furnace.yml              user settings      → FurnaceSettings
    ~/.furnace/repository.yml   runtime catalog    → RuntimeCatalog
    <project>/.furnace.yml      per-project pins   → plain mapping

All reads go through ``_read_yaml_mapping`` so every document fails
the same way: a ``ConfigError`` that names the offending file.
"""

from __future__ import annotations

import logging
from importlib import resources
from pathlib import Path
from typing import Any

import yaml

from furnace.core.config.paths import PROJECT_CONFIG_NAME, FurnacePaths
from furnace.core.errors import ConfigError
from furnace.core.models.runtime import RuntimeCatalog
from furnace.core.models.settings import FurnaceSettings
from furnace.core.persistence.atomic import atomic_write_text

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_RESOURCE = "repository.yml"


def _read_yaml_mapping(path: Path) -> dict[str, Any]:
    """Read a YAML file that must contain a mapping (or nothing)."""
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}", resource=str(path)) from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}", resource=str(path)) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"Expected a YAML mapping in {path}, got {type(data).__name__}",
            resource=str(path),
        )
    return data


def load_settings(paths: FurnacePaths) -> FurnaceSettings:
    """Load user settings, falling back to defaults when absent."""
    path = paths.global_config
    if not path.is_file():
        logger.debug("No settings file at %s — using defaults", path)
        return FurnaceSettings()

    data = _read_yaml_mapping(path)
    try:
        return FurnaceSettings.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid settings in {path}: {e}", resource=str(path)) from e


def default_catalog_text() -> str:
    """The catalog shipped with the package."""
    return (
        resources.files("furnace.data")
        .joinpath(DEFAULT_CATALOG_RESOURCE)
        .read_text(encoding="utf-8")
    )


def parse_catalog(text: str, origin: str = "<catalog>") -> RuntimeCatalog:
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {origin}: {e}", resource=origin) from e
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {origin}", resource=origin)
    # YAML reads bare 8.2 as a float; catalog keys are version strings
    php = data.get("php") or {}
    if isinstance(php, dict):
        data["php"] = {str(k): v for k, v in php.items()}
    try:
        return RuntimeCatalog.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid runtime catalog {origin}: {e}", resource=origin) from e


def load_catalog(paths: FurnacePaths) -> RuntimeCatalog:
    """Load the runtime catalog.

    Uses ``~/.furnace/repository.yml`` when present, the packaged
    default otherwise.
    """
    path = paths.catalog_file
    if path.is_file():
        logger.debug("Loading runtime catalog from %s", path)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Cannot read {path}: {e}", resource=str(path)) from e
        return parse_catalog(text, origin=str(path))

    logger.info("No catalog at %s — using the packaged default", path)
    return parse_catalog(default_catalog_text(), origin="furnace/data/repository.yml")


# ── Project-local pins ──────────────────────────────────────────


def load_project_config(project_dir: Path) -> dict[str, Any]:
    """Read ``<project>/.furnace.yml``; empty when absent."""
    path = project_dir / PROJECT_CONFIG_NAME
    if not path.is_file():
        return {}
    return _read_yaml_mapping(path)


def save_project_php_version(project_dir: Path, version: str) -> Path:
    """Pin a PHP version in ``<project>/.furnace.yml``, keeping other keys."""
    path = project_dir / PROJECT_CONFIG_NAME
    data = load_project_config(project_dir)
    data["php_version"] = version
    atomic_write_text(path, yaml.safe_dump(data, sort_keys=True))
    logger.info("Pinned PHP %s in %s", version, path)
    return path
