"""
Recipe model — the desired state of one managed project.

A recipe binds a project directory to a local site name, a PHP
version and the web backend that serves it. Records are persisted as
YAML by the recipe store and are the only source of truth for what
``serve`` should bring up.
"""

from __future__ import annotations

import re
from pathlib import PurePath
from typing import Literal

from pydantic import BaseModel, field_validator, model_validator

BackendKind = Literal["nginx", "apache"]

BACKEND_KINDS: tuple[str, ...] = ("nginx", "apache")
DEFAULT_BACKEND = "nginx"
DEFAULT_TLD = "test"

# Rendered when no PHP version could be resolved for a project
UNKNOWN_PHP_VERSION = "unknown"

_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
_VERSION_DIGITS_RE = re.compile(r"\d[\d.]*")


def normalize_php_version(raw: str | None) -> str:
    """Reduce a version constraint to ``MAJOR.MINOR``.

    ``^8.2`` → ``8.2``, ``>=8.2.1`` → ``8.2``, ``8`` → ``8``.
    Anything without digits becomes ``unknown``.
    """
    if not raw:
        return UNKNOWN_PHP_VERSION
    match = _VERSION_DIGITS_RE.search(str(raw))
    if not match:
        return UNKNOWN_PHP_VERSION
    parts = [p for p in match.group(0).split(".") if p]
    if len(parts) >= 2:
        return f"{parts[0]}.{parts[1]}"
    return parts[0]


def default_site(name: str, tld: str = DEFAULT_TLD) -> str:
    """The local hostname a recipe is served under."""
    return f"{name}.{tld}"


class Recipe(BaseModel):
    """One managed project.

    ``site`` is derived from ``name`` when left empty, so a record
    written as ``{name: blog, path: /srv/blog}`` loads as
    ``blog.test`` served by nginx with an unresolved PHP version.
    """

    name: str
    path: str
    php_version: str = UNKNOWN_PHP_VERSION
    serve_with: BackendKind = DEFAULT_BACKEND
    site: str = ""

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("recipe name must not be empty")
        if not _NAME_RE.match(value):
            raise ValueError(
                f"recipe name {value!r} is not filesystem-safe "
                "(letters, digits, '.', '_' and '-' only)"
            )
        return value

    @field_validator("path")
    @classmethod
    def _check_path(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("recipe path must not be empty")
        if not PurePath(value).is_absolute():
            raise ValueError(f"recipe path must be absolute, got {value!r}")
        return value.rstrip("/") or "/"

    @field_validator("php_version", mode="before")
    @classmethod
    def _normalize_version(cls, value: object) -> str:
        if value is None:
            return UNKNOWN_PHP_VERSION
        text = str(value).strip()
        if text == UNKNOWN_PHP_VERSION:
            return text
        return normalize_php_version(text)

    @model_validator(mode="after")
    def _derive_site(self) -> Recipe:
        if not self.site:
            self.site = default_site(self.name)
        return self

    @property
    def document_root(self) -> str:
        return f"{self.path}/public"

    @property
    def has_php_version(self) -> bool:
        return self.php_version != UNKNOWN_PHP_VERSION
