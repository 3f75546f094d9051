"""
Shared test fixtures and configuration.

Every fixture works under ``tmp_path``; nothing touches the real
home directory, and every external process goes through a fake.
"""

from pathlib import Path

import pytest

from furnace.adapters.mock import FakeProbe, FakeRunner, MockBackend
from furnace.adapters.registry import BackendRegistry
from furnace.core.config.loader import parse_catalog
from furnace.core.config.paths import FurnacePaths
from furnace.core.context import FurnaceContext, build_context
from furnace.core.models.runtime import RuntimeCatalog
from furnace.core.models.settings import FurnaceSettings

CATALOG_YAML = """\
php:
  "8.2":
    linux:
      command: "apt-get install -y php8.2-fpm"
  "8.3":
    linux:
      command: "apt-get install -y php8.3-fpm"
"""


def install_fake_runtime(paths: FurnacePaths, version: str) -> Path:
    """Lay out ``~/.furnace/php/<version>`` with stub binaries."""
    install_dir = paths.php_version_dir(version)
    for rel in ("bin/php", "sbin/php-fpm"):
        binary = install_dir / rel
        binary.parent.mkdir(parents=True, exist_ok=True)
        binary.write_text("#!/bin/sh\n")
        binary.chmod(0o755)
    return install_dir


def make_project(parent: Path, name: str, composer_php: str | None = None) -> Path:
    """Create a project directory with a ``public/`` document root."""
    project = parent / name
    (project / "public").mkdir(parents=True)
    (project / "public" / "index.php").write_text("<?php echo 'hi';\n")
    if composer_php is not None:
        (project / "composer.json").write_text(
            '{"require": {"php": "%s"}}\n' % composer_php
        )
    return project


@pytest.fixture
def paths(tmp_path: Path) -> FurnacePaths:
    """FurnacePaths rooted in a temp home."""
    home = tmp_path / "home"
    home.mkdir()
    return FurnacePaths(root=home / ".furnace", home=home)


@pytest.fixture
def settings() -> FurnaceSettings:
    return FurnaceSettings(
        listen_port=8080,
        nginx_fastcgi_params="/etc/nginx/fastcgi_params",
        nginx_mime_types="/etc/nginx/mime.types",
        stop_grace=0,
    )


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner(available={"nginx"})


@pytest.fixture
def probe() -> FakeProbe:
    return FakeProbe()


@pytest.fixture
def catalog() -> RuntimeCatalog:
    return parse_catalog(CATALOG_YAML)


@pytest.fixture
def nginx_mock(paths: FurnacePaths, settings: FurnaceSettings) -> MockBackend:
    return MockBackend(paths, settings, kind="nginx")


@pytest.fixture
def apache_mock(paths: FurnacePaths, settings: FurnaceSettings) -> MockBackend:
    return MockBackend(paths, settings, kind="apache")


@pytest.fixture
def ctx(
    paths: FurnacePaths,
    settings: FurnaceSettings,
    runner: FakeRunner,
    probe: FakeProbe,
    catalog: RuntimeCatalog,
    nginx_mock: MockBackend,
    apache_mock: MockBackend,
) -> FurnaceContext:
    """A FurnaceContext with mock backends and fake processes.

    Starting php-fpm through the fake runner marks its socket alive,
    the way a real daemonized pool would.
    """
    registry = BackendRegistry()
    registry.register(nginx_mock)
    registry.register(apache_mock)
    context = build_context(
        paths,
        settings=settings,
        runner=runner,
        probe=probe,
        catalog=catalog,
        registry=registry,
        platform="linux",
    )

    def _fpm_started(args: list[str]) -> None:
        conf = Path(args[args.index("--fpm-config") + 1])
        probe.mark_alive(conf.parent / "php-fpm.sock")

    for version in catalog.versions():
        runner.respond(
            [str(paths.php_version_dir(version) / "sbin" / "php-fpm")],
            side_effect=_fpm_started,
        )
    return context
