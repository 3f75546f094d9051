"""
Receipt model — the outcome of one reconciliation step.

Every step the reconciler takes (start a runtime, write a config,
apply a backend) produces a receipt. Failures are captured here, never
raised, so the reconciler can always attempt every recipe and version.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from furnace.core.errors import ExternalToolError, FurnaceError


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Receipt(BaseModel):
    """Result of one step against one resource.

    ``component`` is what acted (``php``, ``nginx``, ``apache``,
    ``recipe``); ``resource`` is what it acted on (a version string,
    a recipe name, a backend kind).
    """

    component: str
    resource: str
    step: str
    status: Literal["ok", "skipped", "failed"] = "ok"

    at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    output: str = ""
    error: str | None = None
    error_kind: str | None = None
    tool_output: str = ""

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @property
    def skipped(self) -> bool:
        return self.status == "skipped"

    @classmethod
    def success(
        cls,
        component: str,
        resource: str,
        step: str,
        output: str = "",
        **kwargs: Any,
    ) -> Receipt:
        return cls(
            component=component,
            resource=resource,
            step=step,
            status="ok",
            output=output,
            **kwargs,
        )

    @classmethod
    def failure(
        cls,
        component: str,
        resource: str,
        step: str,
        error: str,
        **kwargs: Any,
    ) -> Receipt:
        return cls(
            component=component,
            resource=resource,
            step=step,
            status="failed",
            error=error,
            **kwargs,
        )

    @classmethod
    def from_error(
        cls,
        component: str,
        resource: str,
        step: str,
        exc: FurnaceError,
    ) -> Receipt:
        """Capture a core error, keeping external tool output verbatim."""
        tool_output = exc.output if isinstance(exc, ExternalToolError) else ""
        return cls.failure(
            component=component,
            resource=resource,
            step=step,
            error=exc.message,
            error_kind=exc.kind,
            tool_output=tool_output,
        )

    @classmethod
    def skip(
        cls,
        component: str,
        resource: str,
        step: str,
        reason: str = "",
        **kwargs: Any,
    ) -> Receipt:
        return cls(
            component=component,
            resource=resource,
            step=step,
            status="skipped",
            output=reason,
            **kwargs,
        )
