"""CLI entry point for metapack."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from metapack import __version__
from metapack.config import Settings
from metapack.logging import configure_logging
from metapack.packages.catalog import CatalogValidationError, PackageCatalog
from metapack.packages.consistency import (
    ConsistencyConflict,
    ItemIdentityError,
    MissingTimestampError,
)
from metapack.packages.gate import (
    ConfigurationError,
    InstallStatus,
    MissingArtifactError,
)
from metapack.packages.orchestrator import PackageOrchestrator
from metapack.packages.resolver import DirectoryResolver
from metapack.packages.store import JsonInstalledStore, StoreError
from metapack.packages.zip_importer import PackageFormatError, ZipPackageImporter

console = Console()

STATUS_STYLES = {
    InstallStatus.INSTALLED: "[green]✓ Installed[/green]",
    InstallStatus.SKIPPED: "[dim]Up to date[/dim]",
    InstallStatus.FAILED: "[red]✗ Failed[/red]",
}


def _load_catalog(settings: Settings) -> PackageCatalog:
    try:
        catalog = PackageCatalog.load(settings.catalog_path)
    except CatalogValidationError as e:
        console.print(f"[red]Catalog validation failed:[/red] {escape(str(e))}")
        sys.exit(1)
    except FileNotFoundError as e:
        console.print(f"[red]Catalog not found:[/red] {escape(str(e))}")
        sys.exit(1)

    for warning in catalog.validate():
        console.print(f"[yellow]⚠[/yellow] {escape(warning)}")
    return catalog


def _build_orchestrator(settings: Settings) -> PackageOrchestrator:
    store = JsonInstalledStore(settings.store_path)
    resolver = DirectoryResolver(settings.package_search_paths)
    return PackageOrchestrator(store, resolver, ZipPackageImporter.factory(store))


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--catalog",
    "catalog_path",
    type=click.Path(dir_okay=False),
    help="Package catalog (packages.xml or packages.yaml)",
)
@click.option(
    "--data-root",
    type=click.Path(file_okay=False),
    help="Override data root directory",
)
@click.option(
    "--packages-dir",
    type=click.Path(file_okay=False),
    help="Directory holding <name>-<version>.zip artifacts",
)
@click.option("--log-level", default="warning", help="Log level")
@click.pass_context
def cli(
    ctx: click.Context,
    catalog_path: str | None,
    data_root: str | None,
    packages_dir: str | None,
    log_level: str,
):
    """metapack - install versioned metadata packages."""
    configure_logging(level=log_level, force=True)

    settings = Settings()
    if catalog_path:
        settings.catalog_path = Path(catalog_path)
    if data_root:
        settings.data_root = Path(data_root)
    if packages_dir:
        settings.packages_dir = Path(packages_dir)
    ctx.obj = settings


@cli.command("list")
@click.pass_obj
def list_packages(settings: Settings):
    """List the packages in the catalog."""
    catalog = _load_catalog(settings)

    table = Table(title=f"Packages ({settings.catalog_path.name})")
    table.add_column("Name", style="cyan")
    table.add_column("Version", justify="right")
    table.add_column("Group")
    table.add_column("Import Mode", style="yellow")

    for package in catalog:
        table.add_row(
            package.name,
            str(package.version),
            package.group_id,
            package.import_mode.value,
        )

    console.print(table)


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_obj
def status(settings: Settings, as_json: bool):
    """Show which packages are installed and which are pending."""
    catalog = _load_catalog(settings)
    orchestrator = _build_orchestrator(settings)

    rows = []
    for package in catalog:
        row = package.to_dict()
        try:
            row["installed_version"] = orchestrator.store.get_installed_version(
                package.group_id
            )
        except StoreError as e:
            console.print(f"[red]✗ Store unreadable:[/red] {escape(str(e))}")
            sys.exit(1)
        row["artifact_found"] = orchestrator.resolver.exists(package.filename)
        try:
            row["needs_install"] = orchestrator.gate.decide(package).needs_install
            row["error"] = None
        except ConfigurationError as e:
            row["needs_install"] = False
            row["error"] = str(e)
        rows.append(row)

    if as_json:
        click.echo(json.dumps(rows, indent=2, ensure_ascii=False))
        return

    console.print(f"[bold]Store:[/bold] {settings.store_path}\n")

    table = Table(title="Package Status")
    table.add_column("Name", style="cyan")
    table.add_column("Shipped", justify="right")
    table.add_column("Installed", justify="right")
    table.add_column("Status")

    for row in rows:
        if row["error"]:
            state = f"[red]✗ {escape(row['error'])}[/red]"
        elif not row["needs_install"]:
            state = "[green]✓ Up to date[/green]"
        elif not row["artifact_found"]:
            state = "[red]✗ Artifact missing[/red]"
        else:
            state = "[yellow]Pending[/yellow]"

        installed = row["installed_version"]
        table.add_row(
            row["name"],
            str(row["version"]),
            str(installed) if installed is not None else "-",
            state,
        )

    console.print(table)


@cli.command()
@click.option(
    "--only",
    "only",
    multiple=True,
    help="Install only this package (repeatable)",
)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_obj
def install(settings: Settings, only: tuple[str, ...], as_json: bool):
    """Install every package whose shipped version is newer.

    Examples:
        metapack install
        metapack install --only Reference_Concepts
    """
    catalog = _load_catalog(settings)
    if only:
        unknown = sorted(set(only) - set(catalog.names))
        for name in unknown:
            console.print(f"[yellow]⚠ Not in catalog: {escape(name)}[/yellow]")
        catalog = catalog.filter(only)

    orchestrator = _build_orchestrator(settings)
    report = orchestrator.install_report(catalog)

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))
    else:
        for outcome in report.outcomes:
            console.print(
                f"{STATUS_STYLES[outcome.status]} {escape(outcome.message)}"
            )

        console.print(
            f"\n[bold]Summary:[/bold] {len(report.installed)} installed, "
            f"{len(report.skipped)} up to date, {len(report.failed)} failed"
        )

    if report.failed:
        sys.exit(1)


@cli.command()
@click.option(
    "--depth",
    type=int,
    default=None,
    help="Levels of related items to check (default 1, 0 for none)",
)
@click.option("--all-levels", is_flag=True, help="Follow related items to any depth")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_obj
def verify(settings: Settings, depth: int | None, all_levels: bool, as_json: bool):
    """Check that no item appears in two packages with different versions.

    Run this before release: a conflict means the install result would
    depend on package order.
    """
    catalog = _load_catalog(settings)
    orchestrator = _build_orchestrator(settings)

    if all_levels:
        max_depth = None
    elif depth is not None:
        max_depth = depth
    else:
        max_depth = settings.related_depth

    try:
        report = orchestrator.verify_consistency(catalog, max_depth=max_depth)
    except ConsistencyConflict as e:
        console.print(f"[red]✗ Inconsistent packages:[/red] {escape(str(e))}")
        console.print(f"  [dim]First seen: {e.expected.isoformat()}[/dim]")
        console.print(f"  [dim]Conflicting: {e.found.isoformat()}[/dim]")
        sys.exit(1)
    except (
        MissingTimestampError,
        ItemIdentityError,
        MissingArtifactError,
        ConfigurationError,
        PackageFormatError,
    ) as e:
        console.print(f"[red]✗ Cannot verify packages:[/red] {escape(str(e))}")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))
        return

    console.print("[green]✓ No inconsistent items[/green]")
    console.print(f"  Packages inspected: {len(report.packages_inspected)}")
    console.print(f"  Total distinct items: {report.total_items}")
    console.print(f"  Items in multiple packages: {len(report.shared_items)}")


if __name__ == "__main__":
    cli()
