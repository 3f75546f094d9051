"""
CLI commands for recipes — cook, dispose and ``recipe list``.

Thin wrappers over ``furnace.core.use_cases.cook``.
"""

from __future__ import annotations

import json
from pathlib import Path

import click

from furnace.core.models.recipe import BACKEND_KINDS
from furnace.ui.cli.common import furnace_errors, get_context, print_report

_PROJECT_DIR = click.Path(file_okay=False, path_type=Path)


@click.group()
def recipe() -> None:
    """Recipes — the projects Furnace serves."""


@recipe.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def recipe_list(ctx: click.Context, as_json: bool) -> None:
    """List registered recipes."""
    recipes = get_context(ctx).store.list()

    if as_json:
        click.echo(json.dumps([r.model_dump(mode="json") for r in recipes], indent=2))
        return

    if not recipes:
        click.echo("No recipes yet. Run `furnace cook` inside a project.")
        return

    width = max(len(r.name) for r in recipes)
    for r in recipes:
        click.secho(f"  {r.name:<{width}}", fg="cyan", bold=True, nl=False)
        click.echo(f"  http://{r.site}  PHP {r.php_version}  [{r.serve_with}]  → {r.path}")


@click.command()
@click.argument("project_dir", type=_PROJECT_DIR, default=".")
@click.option("--name", default=None, help="Recipe name (default: directory name).")
@click.option("--php", "php_version", default=None, help="PHP version, e.g. 8.2.")
@click.option(
    "--serve-with",
    type=click.Choice(BACKEND_KINDS),
    default=None,
    help="Web backend (default: from ~/.furnace.yml, else nginx).",
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def cook(
    ctx: click.Context,
    project_dir: Path,
    name: str | None,
    php_version: str | None,
    serve_with: str | None,
    as_json: bool,
) -> None:
    """Register PROJECT_DIR (default: current directory) as a recipe."""
    from furnace.core.use_cases.cook import cook as run_cook

    with furnace_errors():
        result = run_cook(get_context(ctx), project_dir, name, php_version, serve_with)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if not result.ok:
            ctx.exit(1)
        return

    r = result.recipe
    verb = "Cooked" if result.created else "Updated"
    click.secho(f"🔥 {verb} '{r.name}'", fg="green", bold=True)
    click.echo(f"   Site:    http://{r.site}")
    click.echo(f"   PHP:     {r.php_version}" + (f" (from {result.php_source})" if result.php_source else ""))
    click.echo(f"   Backend: {r.serve_with}")
    if result.laravel:
        click.echo("   Laravel project detected")
    for warning in result.warnings:
        click.secho(f"   ⚠️  {warning}", fg="yellow", err=True)
    if result.report is not None:
        click.echo()
        print_report(result.report, quiet=ctx.obj.get("quiet", False))


@click.command()
@click.argument("project_dir", type=_PROJECT_DIR, default=".")
@click.option("--name", default=None, help="Recipe name (default: recipe of the directory).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def dispose(ctx: click.Context, project_dir: Path, name: str | None, as_json: bool) -> None:
    """Remove a recipe and stop serving it."""
    from furnace.core.use_cases.cook import dispose as run_dispose

    with furnace_errors():
        report = run_dispose(get_context(ctx), project_dir, name)
    print_report(report, as_json, quiet=ctx.obj.get("quiet", False))
