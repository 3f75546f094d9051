"""
Shared CLI helpers — context lookup, error exits and report printing.
"""

from __future__ import annotations

import json
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import NoReturn

import click

from furnace.core.context import FurnaceContext, build_context
from furnace.core.engine.reconciler import ReconcileReport
from furnace.core.errors import ExternalToolError, FurnaceError

_STATUS_ICON = {"ok": "✅", "skipped": "⏭️ ", "failed": "❌"}
_STATUS_COLOR = {"ok": "green", "skipped": "yellow", "failed": "red"}


def fail(message: str, detail: str = "") -> NoReturn:
    """Print an error on stderr and exit 1."""
    click.secho(f"❌ {message}", fg="red", err=True)
    if detail:
        click.echo(detail, err=True)
    sys.exit(1)


@contextmanager
def furnace_errors() -> Iterator[None]:
    """Turn an uncaught FurnaceError into a clean stderr message."""
    try:
        yield
    except FurnaceError as e:
        fail(e.message, e.output if isinstance(e, ExternalToolError) else "")


def get_context(ctx: click.Context) -> FurnaceContext:
    """The FurnaceContext for this invocation, built on first use."""
    obj = ctx.ensure_object(dict)
    if obj.get("context") is None:
        from furnace.core.config.paths import FurnacePaths

        with furnace_errors():
            obj["context"] = build_context(FurnacePaths.resolve(obj.get("home")))
    return obj["context"]


def print_report(report: ReconcileReport, as_json: bool = False, quiet: bool = False) -> None:
    """Print every receipt, then exit 1 if any step failed."""
    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        if not report.ok:
            sys.exit(1)
        return

    for receipt in report.receipts:
        if quiet and receipt.ok:
            continue
        icon = _STATUS_ICON.get(receipt.status, "•")
        label = f"{receipt.component} {receipt.step} {receipt.resource}"
        stream_err = receipt.failed
        click.secho(f"{icon} {label}", fg=_STATUS_COLOR.get(receipt.status), err=stream_err, nl=False)
        detail = receipt.error if receipt.failed else receipt.output
        click.echo(f" — {detail}" if detail else "", err=stream_err)
        if receipt.tool_output:
            for line in receipt.tool_output.splitlines():
                click.echo(f"     {line}", err=True)

    if not report.receipts and not quiet:
        click.echo("Nothing to do.")

    if not report.ok:
        click.secho(
            f"\n{report.failed} of {report.total} step(s) failed",
            fg="red",
            bold=True,
            err=True,
        )
        sys.exit(1)
