"""
Error taxonomy — every failure the core can report.

Core services raise these; the reconciler converts them into failed
receipts so one broken recipe never aborts a whole run. Every message
names the resource it concerns (recipe name, PHP version, backend kind).
"""

from __future__ import annotations


class FurnaceError(Exception):
    """Base class for all Furnace errors."""

    kind = "error"

    def __init__(self, message: str, resource: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.resource = resource


class ConfigError(FurnaceError):
    """Configuration is missing, unreadable or invalid."""

    kind = "config"


class NotFoundError(FurnaceError):
    """A recipe, runtime version or catalog entry does not exist."""

    kind = "not_found"


class CatalogEntryNotFound(NotFoundError):
    """The runtime catalog has no source for a version/platform pair."""


class BinaryNotFoundError(NotFoundError):
    """No PHP-FPM binary exists for the version on this platform."""


class ConflictError(FurnaceError):
    """A second recipe would claim an already registered project."""

    kind = "conflict"


class ExternalToolError(FurnaceError):
    """An external tool exited non-zero.

    ``output`` holds the tool's own diagnostic text, verbatim.
    """

    kind = "external_tool"

    def __init__(
        self,
        message: str,
        resource: str = "",
        output: str = "",
        return_code: int | None = None,
    ) -> None:
        super().__init__(message, resource)
        self.output = output
        self.return_code = return_code

    def __str__(self) -> str:
        if self.output:
            return f"{self.message}\n{self.output}"
        return self.message


class ResourceUnavailableError(FurnaceError):
    """A port or socket the process needs is already taken."""

    kind = "resource_unavailable"


class IOFailure(FurnaceError):
    """A filesystem operation failed."""

    kind = "io"


class RuntimeInstallError(FurnaceError):
    """Installing a PHP runtime failed."""

    kind = "install"


class DownloadError(RuntimeInstallError):
    """The runtime artifact could not be downloaded."""


class ExtractionError(RuntimeInstallError):
    """The downloaded archive could not be unpacked."""


class BinaryMissingError(RuntimeInstallError):
    """Expected binaries are absent after installation."""
