"""
Settings model — user-wide preferences from ``~/.furnace.yml``.

Every field has a working default, so a missing file behaves exactly
like an empty one.
"""

from __future__ import annotations

import platform

from pydantic import BaseModel, Field, field_validator

from furnace.core.models.recipe import (
    DEFAULT_BACKEND,
    DEFAULT_TLD,
    BackendKind,
    normalize_php_version,
)


def detect_platform() -> str:
    """Catalog platform key for the running OS."""
    system = platform.system()
    if system == "Darwin":
        return "macos"
    if system == "Windows":
        return "windows"
    return "linux"


def _default_nginx_include(name: str) -> str:
    if detect_platform() == "macos":
        return f"/opt/homebrew/etc/nginx/{name}"
    return f"/etc/nginx/{name}"


def _default_apache_sites() -> str:
    if detect_platform() == "macos":
        return "/opt/homebrew/etc/httpd/sites-enabled"
    return "/etc/apache2/sites-enabled"


def _default_apache_pid() -> str:
    if detect_platform() == "macos":
        return "/opt/homebrew/var/run/httpd/httpd.pid"
    return "/var/run/apache2/apache2.pid"


class FurnaceSettings(BaseModel):
    """User-wide Furnace settings."""

    # ── Recipes ─────────────────────────────────────────────────
    php_version: str | None = None       # active default for new recipes
    serve_with: BackendKind = DEFAULT_BACKEND
    tld: str = DEFAULT_TLD

    # ── Web backends ────────────────────────────────────────────
    listen_port: int = Field(default=80, ge=1, le=65535)
    nginx_fastcgi_params: str = Field(
        default_factory=lambda: _default_nginx_include("fastcgi_params")
    )
    nginx_mime_types: str = Field(
        default_factory=lambda: _default_nginx_include("mime.types")
    )
    apache_ctl: str = "apachectl"
    apache_sites_enabled: str = Field(default_factory=_default_apache_sites)
    apache_pid_file: str = Field(default_factory=_default_apache_pid)

    # ── Processes ───────────────────────────────────────────────
    stop_grace: float = Field(default=2.0, ge=0)   # seconds to wait for exit

    @field_validator("php_version", mode="before")
    @classmethod
    def _version_as_text(cls, value: object) -> str | None:
        # YAML reads a bare 8.2 as a float
        if value is None or value == "":
            return None
        return normalize_php_version(str(value))
