"""
CLI commands for PHP runtimes.

Thin wrappers over ``furnace.core.use_cases.php``.
"""

from __future__ import annotations

import json
from pathlib import Path

import click

from furnace.ui.cli.common import furnace_errors, get_context, print_report

_STATE_COLOR = {
    "running": "green",
    "configured": "cyan",
    "installed": "white",
    "not_installed": "bright_black",
}


@click.group()
def php() -> None:
    """PHP runtimes — install, list, select."""


@php.command("install")
@click.argument("version")
@click.pass_context
def php_install(ctx: click.Context, version: str) -> None:
    """Install PHP VERSION from the runtime catalog."""
    from furnace.core.use_cases.php import install_php

    with furnace_errors():
        runtime = install_php(get_context(ctx), version)
    click.secho(f"✅ PHP {runtime.version} installed", fg="green", bold=True)
    click.echo(f"   {runtime.install_dir}")


@php.command("list")
@click.option("--all", "show_all", is_flag=True, help="Include catalog versions not installed.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def php_list(ctx: click.Context, show_all: bool, as_json: bool) -> None:
    """List installed PHP versions."""
    from furnace.core.use_cases.php import list_runtimes

    with furnace_errors():
        runtimes = list_runtimes(get_context(ctx), include_available=show_all)

    if as_json:
        click.echo(json.dumps([r.to_dict() for r in runtimes], indent=2))
        return

    if not runtimes:
        click.echo("No PHP versions installed. Try `furnace php install 8.3`.")
        return

    for info in runtimes:
        click.secho(f"  {info.version:<6}", bold=True, nl=False)
        click.secho(f" {info.state:<14}", fg=_STATE_COLOR.get(info.state), nl=False)
        click.echo(f" {', '.join(info.used_by)}" if info.used_by else "")


@php.command("use")
@click.argument("version")
@click.argument(
    "project_dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def php_use(ctx: click.Context, version: str, project_dir: Path, as_json: bool) -> None:
    """Switch PROJECT_DIR (default: current directory) to PHP VERSION."""
    from furnace.core.use_cases.php import use_php

    with furnace_errors():
        result = use_php(get_context(ctx), project_dir, version)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if not result.ok:
            ctx.exit(1)
        return

    if result.recipe is None:
        click.secho(f"📌 Pinned PHP {result.version} in {result.pinned_in}", fg="green")
        return

    click.secho(f"🔁 '{result.recipe.name}' now uses PHP {result.version}", fg="green", bold=True)
    if result.report is not None:
        print_report(result.report, quiet=ctx.obj.get("quiet", False))
