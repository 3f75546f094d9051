"""
Reconciler — bring running processes in line with the recipe registry.

The reconciler is the only component that touches both PHP runtimes
and web backends. Each step against one resource produces a receipt;
errors from a step are captured, never raised, so one broken recipe
or version never stops the others from being served.

Flow of ``serve``:
    recipes → versions in use → runtimes running → configs written → backends applied
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from furnace.adapters.registry import BackendRegistry
from furnace.core.errors import FurnaceError, NotFoundError
from furnace.core.models.receipt import Receipt
from furnace.core.models.recipe import Recipe
from furnace.core.persistence.recipe_store import RecipeStore
from furnace.core.services.runtime_manager import RuntimeManager

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


@dataclass
class ReconcileReport:
    """Receipts of one reconcile operation."""

    operation: str = ""
    operation_id: str = field(default_factory=lambda: f"op-{uuid.uuid4().hex[:8]}")
    started_at: str = field(default_factory=_now_iso)
    ended_at: str = ""
    receipts: list[Receipt] = field(default_factory=list)

    def add(self, receipt: Receipt) -> Receipt:
        self.receipts.append(receipt)
        return receipt

    def extend(self, other: ReconcileReport) -> None:
        self.receipts.extend(other.receipts)

    def finish(self) -> ReconcileReport:
        self.ended_at = _now_iso()
        return self

    @property
    def total(self) -> int:
        return len(self.receipts)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.receipts if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.receipts if r.failed)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.receipts if r.skipped)

    @property
    def ok(self) -> bool:
        return self.failed == 0

    @property
    def status(self) -> str:
        if self.failed == 0:
            return "ok"
        if self.succeeded > 0:
            return "partial"
        return "failed"

    @property
    def errors(self) -> list[Receipt]:
        return [r for r in self.receipts if r.failed]

    def for_resource(self, resource: str) -> list[Receipt]:
        return [r for r in self.receipts if r.resource == resource]

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "operation_id": self.operation_id,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "status": self.status,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "receipts": [r.model_dump(mode="json") for r in self.receipts],
        }


class Reconciler:
    """Drives runtimes and backends toward the registered recipes."""

    def __init__(
        self,
        store: RecipeStore,
        registry: BackendRegistry,
        runtimes: RuntimeManager,
    ):
        self._store = store
        self._registry = registry
        self._runtimes = runtimes

    def _step(
        self,
        report: ReconcileReport,
        component: str,
        resource: str,
        step: str,
        fn: Callable[[], Any],
    ) -> Receipt:
        """Run one step, capturing its outcome as a receipt."""
        start = time.monotonic()
        try:
            result = fn()
        except FurnaceError as e:
            logger.error("%s %s '%s' failed: %s", component, step, resource, e)
            receipt = Receipt.from_error(component, resource, step, e)
        else:
            receipt = Receipt.success(
                component, resource, step, output="" if result is None else str(result)
            )
        receipt.duration_ms = int((time.monotonic() - start) * 1000)
        return report.add(receipt)

    # ── Serve ───────────────────────────────────────────────────

    def _select(self, report: ReconcileReport, names: list[str] | None) -> list[Recipe]:
        recipes = self._store.list()
        if not names:
            return recipes
        by_name = {r.name: r for r in recipes}
        selected = []
        for name in names:
            recipe = by_name.get(name)
            if recipe is None:
                report.add(
                    Receipt.from_error(
                        "recipe",
                        name,
                        "select",
                        NotFoundError(f"No recipe named '{name}'", resource=name),
                    )
                )
            else:
                selected.append(recipe)
        return selected

    def _ensure_runtime(self, version: str) -> str:
        if not self._runtimes.is_installed(version):
            raise NotFoundError(
                f"PHP {version} is not installed. Run: furnace php install {version}",
                resource=version,
            )
        return "started" if self._runtimes.start(version) else "already running"

    def _drop_elsewhere(self, report: ReconcileReport, name: str, keep: str) -> list[str]:
        """Remove ``name``'s config from every backend but ``keep``."""
        changed = []
        for backend in self._registry.all():
            if backend.kind == keep or not backend.conf_path(name).exists():
                continue
            receipt = self._step(
                report,
                backend.kind,
                name,
                "remove_conf",
                lambda b=backend: "removed" if b.remove_conf(name) else "absent",
            )
            if receipt.ok and receipt.output == "removed":
                changed.append(backend.kind)
        return changed

    def serve(self, names: list[str] | None = None) -> ReconcileReport:
        """Bring up every recipe (or the named ones).

        Runtimes come first so no config ever points at a socket that
        was never started; a recipe whose runtime failed is skipped.
        Each backend that received configs is applied exactly once. A
        recipe that moved to another backend loses its old config, and
        the old backend is re-applied if it is running.
        """
        report = ReconcileReport(operation="serve")
        recipes = self._select(report, names)
        logger.info("Serving %d recipe(s)", len(recipes))

        versions = sorted({r.php_version for r in recipes if r.has_php_version})
        ready: set[str] = set()
        for version in versions:
            receipt = self._step(
                report, "php", version, "start", lambda v=version: self._ensure_runtime(v)
            )
            if receipt.ok:
                ready.add(version)

        to_apply: list[str] = []
        dropped: list[str] = []
        for recipe in recipes:
            if recipe.has_php_version and recipe.php_version not in ready:
                report.add(
                    Receipt.skip(
                        "recipe",
                        recipe.name,
                        "write_conf",
                        f"PHP {recipe.php_version} is not available",
                    )
                )
                continue

            kind = recipe.serve_with
            if kind not in self._registry:
                report.add(
                    Receipt.from_error(
                        kind,
                        recipe.name,
                        "write_conf",
                        NotFoundError(f"No web backend '{kind}'", resource=kind),
                    )
                )
                continue

            backend = self._registry.get(kind)
            if not backend.detect_installed():
                logger.warning("%s is not installed; skipping '%s'", kind, recipe.name)
                report.add(
                    Receipt.skip(
                        kind, recipe.name, "write_conf", f"{backend.binary} not found on PATH"
                    )
                )
                continue

            if recipe.has_php_version:
                socket = self._runtimes.socket_path(recipe.php_version)
            else:
                logger.warning("Recipe '%s' has no PHP version; PHP requests will fail", recipe.name)
                socket = None

            receipt = self._step(
                report,
                kind,
                recipe.name,
                "write_conf",
                lambda b=backend, r=recipe, s=socket: b.write_conf(r, s),
            )
            if not receipt.ok:
                continue
            if kind not in to_apply:
                to_apply.append(kind)
            for other in self._drop_elsewhere(report, recipe.name, kind):
                if other not in dropped:
                    dropped.append(other)

        for kind in to_apply:
            self._step(report, kind, kind, "apply", self._registry.get(kind).apply)

        for kind in dropped:
            backend = self._registry.get(kind)
            if kind not in to_apply and backend.is_running():
                self._step(report, kind, kind, "apply", backend.apply)

        return report.finish()

    # ── Stop / restart ──────────────────────────────────────────

    def stop(self) -> ReconcileReport:
        """Stop every backend and every installed runtime."""
        report = ReconcileReport(operation="stop")

        for backend in self._registry.all():
            self._step(
                report,
                backend.kind,
                backend.kind,
                "stop",
                lambda b=backend: "stopped" if b.stop() else "not running",
            )

        for version in self._runtimes.list_installed():
            self._step(
                report,
                "php",
                version,
                "stop",
                lambda v=version: "stopped" if self._runtimes.stop(v) else "not running",
            )

        return report.finish()

    def restart(self, names: list[str] | None = None) -> ReconcileReport:
        report = self.stop()
        report.operation = "restart"
        report.extend(self.serve(names))
        return report.finish()

    # ── Dispose ─────────────────────────────────────────────────

    def dispose(self, name: str) -> ReconcileReport:
        """Remove a recipe's configs everywhere, then its record.

        Backends that are running are re-applied so they stop serving
        the site.
        """
        report = ReconcileReport(operation="dispose")

        changed: list[str] = []
        for backend in self._registry.all():
            receipt = self._step(
                report,
                backend.kind,
                name,
                "remove_conf",
                lambda b=backend: "removed" if b.remove_conf(name) else "absent",
            )
            if receipt.ok and receipt.output == "removed":
                changed.append(backend.kind)

        for kind in changed:
            backend = self._registry.get(kind)
            if backend.is_running():
                self._step(report, kind, kind, "apply", backend.apply)

        self._step(
            report,
            "recipe",
            name,
            "remove",
            lambda: "removed" if self._store.remove(name) else "absent",
        )
        return report.finish()
