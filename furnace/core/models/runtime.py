"""
Runtime models — PHP runtimes and the catalog they are installed from.

The catalog (``repository.yml``) maps a version string to one install
source per platform:

    php:
      "8.2":
        linux:
          command: "sudo apt-get install -y php8.2-fpm"
        macos:
          command: "brew install php@8.2"
        windows:
          url: "https://windows.php.net/downloads/releases/php-8.2.0-nts-Win32-vs16-x64.zip"
          type: zip
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from furnace.core.errors import CatalogEntryNotFound

Platform = Literal["linux", "macos", "windows"]
ArchiveType = Literal["zip", "tar.gz"]


class RuntimeState(str, Enum):
    """Lifecycle of one PHP version."""

    NOT_INSTALLED = "not_installed"
    INSTALLED = "installed"
    CONFIGURED = "configured"
    RUNNING = "running"


class PhpSource(BaseModel):
    """How to obtain one PHP version on one platform.

    Exactly one strategy applies, checked in this order: ``url``
    (download + extract), ``command`` (host package manager), ``link``
    (symlink an existing system installation).
    """

    model_config = ConfigDict(populate_by_name=True)

    url: str | None = None
    archive_type: ArchiveType | None = Field(default=None, alias="type")
    command: str | None = None
    link: str | None = None

    @model_validator(mode="after")
    def _check_strategy(self) -> PhpSource:
        if not (self.url or self.command or self.link):
            raise ValueError("source needs one of 'url', 'command' or 'link'")
        if self.url and not self.archive_type:
            raise ValueError("url-based sources need an archive 'type' (zip or tar.gz)")
        return self

    @property
    def method(self) -> str:
        if self.url:
            return "download"
        if self.command:
            return "command"
        return "link"


class PlatformSources(BaseModel):
    """Per-platform sources for one version."""

    linux: PhpSource | None = None
    macos: PhpSource | None = None
    windows: PhpSource | None = None

    def for_platform(self, platform: str) -> PhpSource | None:
        return getattr(self, platform, None)


class RuntimeCatalog(BaseModel):
    """The whole ``repository.yml`` document."""

    php: dict[str, PlatformSources] = Field(default_factory=dict)

    def versions(self) -> list[str]:
        return sorted(self.php)

    def source_for(self, version: str, platform: str) -> PhpSource:
        """Look up the install source for a version on a platform.

        Raises:
            CatalogEntryNotFound: If the version or platform is absent.
        """
        entry = self.php.get(version)
        source = entry.for_platform(platform) if entry else None
        if source is None:
            raise CatalogEntryNotFound(
                f"PHP {version} has no catalog entry for platform '{platform}'",
                resource=version,
            )
        return source


@dataclass(frozen=True)
class PhpRuntime:
    """Filesystem layout of one installed PHP version."""

    version: str
    install_dir: Path

    @property
    def pool_config(self) -> Path:
        return self.install_dir / "furnace-php-fpm.conf"

    @property
    def socket_path(self) -> Path:
        return self.install_dir / "php-fpm.sock"

    @property
    def pid_file(self) -> Path:
        return self.install_dir / "php-fpm.pid"

    @property
    def log_file(self) -> Path:
        return self.install_dir / "php-fpm.log"

    @property
    def php_binary(self) -> Path:
        return self.install_dir / "bin" / "php"

    @property
    def fpm_binary(self) -> Path:
        return self.install_dir / "sbin" / "php-fpm"
