"""
Furnace — CLI entrypoint.

Usage:
    furnace --help
    furnace cook --php 8.2
    furnace serve
    python -m furnace.main status
"""

from __future__ import annotations

import json
import sys

import click

from furnace import __version__
from furnace.core.observability.logging_config import resolve_level, setup_logging
from furnace.ui.cli.common import furnace_errors, get_context, print_report

_HEALTH_ICON = {"healthy": "✅", "degraded": "⚠️ ", "unhealthy": "❌", "unknown": "❔"}
_HEALTH_COLOR = {"healthy": "green", "degraded": "yellow", "unhealthy": "red"}


@click.group()
@click.version_option(version=__version__, prog_name="furnace")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--home",
    type=click.Path(file_okay=False),
    default=None,
    envvar="FURNACE_HOME",
    help="State directory (default: ~/.furnace).",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, quiet: bool, debug: bool, home: str | None) -> None:
    """Furnace — local PHP sites on nginx or apache."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj.setdefault("home", home)

    setup_logging(
        level=resolve_level(debug=debug, verbose=verbose, quiet=quiet),
        quiet_third_party=not debug,
    )


# ── Lifecycle ───────────────────────────────────────────────────


@cli.command()
@click.argument("names", nargs=-1)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def serve(ctx: click.Context, names: tuple[str, ...], as_json: bool) -> None:
    """Start PHP runtimes and web backends for every recipe (or NAMES)."""
    report = get_context(ctx).reconciler.serve(list(names) or None)
    print_report(report, as_json, quiet=ctx.obj["quiet"])


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def stop(ctx: click.Context, as_json: bool) -> None:
    """Stop every web backend and PHP runtime."""
    report = get_context(ctx).reconciler.stop()
    print_report(report, as_json, quiet=ctx.obj["quiet"])


@cli.command()
@click.argument("names", nargs=-1)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def restart(ctx: click.Context, names: tuple[str, ...], as_json: bool) -> None:
    """Stop everything, then serve again."""
    report = get_context(ctx).reconciler.restart(list(names) or None)
    print_report(report, as_json, quiet=ctx.obj["quiet"])


# ── Setup & status ──────────────────────────────────────────────


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def install(ctx: click.Context, as_json: bool) -> None:
    """Create ~/.furnace, the default catalog and the .test DNS drop-in."""
    from furnace.core.use_cases.install import run_install

    with furnace_errors():
        result = run_install(get_context(ctx))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    click.secho(f"🔥 Furnace ready at {result.root}", fg="green", bold=True)
    if not ctx.obj["quiet"]:
        for path in result.created:
            click.echo(f"   + {path}")
    for warning in result.warnings:
        click.secho(f"   ⚠️  {warning}", fg="yellow", err=True)
    if result.dnsmasq_conf:
        click.echo(f"\n   Point dnsmasq at {result.dnsmasq_conf.parent} to resolve .{get_context(ctx).settings.tld} hosts.")


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show recipes, runtimes and backends."""
    from furnace.core.use_cases.status import get_status

    with furnace_errors():
        result = get_status(get_context(ctx))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.health.status != "unhealthy" else 1)

    health = result.health
    click.secho(
        f"\n{_HEALTH_ICON.get(health.status, '')} Furnace: {health.status}",
        fg=_HEALTH_COLOR.get(health.status, "white"),
        bold=True,
    )
    for component in health.components:
        icon = _HEALTH_ICON.get(component.status, "•")
        click.echo(f"   {icon} {component.name:<10} {component.message}")

    if result.recipes:
        click.echo()
        click.secho("   Recipes:", fg="white", bold=True)
        for item in result.recipes:
            r = item.recipe
            running = "up" if item.backend_running else "down"
            click.echo(
                f"     • {r.name} → http://{r.site}  PHP {r.php_version} ({item.php_state})"
                f"  {r.serve_with} {running}"
            )
    click.echo()

    if health.status == "unhealthy":
        sys.exit(1)


# ── Sub-groups ──────────────────────────────────────────────────

from furnace.ui.cli.php import php  # noqa: E402
from furnace.ui.cli.recipe import cook, dispose, recipe  # noqa: E402

cli.add_command(cook)
cli.add_command(dispose)
cli.add_command(recipe)
cli.add_command(php)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
