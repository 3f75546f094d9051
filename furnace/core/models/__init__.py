"""
Domain models — Pydantic types for recipes, runtimes and receipts.

All models are re-exported here for convenient access:

    from furnace.core.models import Recipe, RuntimeCatalog, Receipt
"""

from furnace.core.models.receipt import Receipt
from furnace.core.models.recipe import (
    BACKEND_KINDS,
    UNKNOWN_PHP_VERSION,
    Recipe,
    normalize_php_version,
)
from furnace.core.models.runtime import (
    PhpRuntime,
    PhpSource,
    PlatformSources,
    RuntimeCatalog,
    RuntimeState,
)
from furnace.core.models.settings import FurnaceSettings, detect_platform

__all__ = [
    # recipe.py
    "BACKEND_KINDS",
    # settings.py
    "FurnaceSettings",
    # runtime.py
    "PhpRuntime",
    "PhpSource",
    "PlatformSources",
    # receipt.py
    "Receipt",
    "Recipe",
    "RuntimeCatalog",
    "RuntimeState",
    "UNKNOWN_PHP_VERSION",
    "detect_platform",
    "normalize_php_version",
]
