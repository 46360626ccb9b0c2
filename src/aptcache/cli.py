"""`aptcache` console entry point."""

import logging
from pathlib import Path

import typer
from rich.console import Console

from aptcache.cache import Cache, PackageSort
from aptcache.config import Configuration
from aptcache.errors import AptCacheError
from aptcache.models import Package, format_dependencies
from aptcache.progress import AptUpdateProgress
from aptcache.utils import NumSys, unit_str

logger = logging.getLogger(__name__)

# relation fields shown by `show`, in the order apt prints them
_SHOW_RELATIONS = ("PreDepends", "Depends", "Recommends", "Suggests", "Conflicts", "Breaks", "Replaces", "Enhances")

# apt's exit status for any failure
EXIT_FAILURE = 100

cli = typer.Typer(
    help="Query APT package metadata and refresh the package lists.",
    no_args_is_help=True,
)


@cli.callback()
def options(
    ctx: typer.Context,
    root: Path | None = typer.Option(
        None, "--root", "-r", help="Root directory of the system to inspect. (default: $APTCACHE_ROOT_DIR or /)"
    ),
    arch: str | None = typer.Option(None, "--arch", "-a", help="Native architecture. (default: detected)"),
):
    """Select the system whose metadata is read."""
    overrides = {}
    if root is not None:
        overrides["root_dir"] = root.resolve()
    if arch is not None:
        overrides["architecture"] = arch
    ctx.obj = Configuration.from_env(**overrides)


def _open(config: Configuration) -> Cache:
    try:
        return Cache(config)
    except AptCacheError as e:
        logger.error(str(e))
        raise typer.Exit(code=EXIT_FAILURE) from e


@cli.command()
def update(ctx: typer.Context):
    """Download the package lists of every configured source."""
    console = Console()
    cache = _open(ctx.obj)
    try:
        cache.update(AptUpdateProgress(console))
    except AptCacheError as e:
        logger.error(str(e))
        raise typer.Exit(code=EXIT_FAILURE) from e


@cli.command()
def show(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Package name, optionally qualified as name:arch."),
):
    """Show the candidate version of a package."""
    console = Console()
    cache = _open(ctx.obj)
    pkg = cache.get(name)
    if pkg is None:
        console.print(f"N: Unable to locate package {name}", markup=False)
        raise typer.Exit(code=EXIT_FAILURE)

    version = pkg.candidate or pkg.installed
    if version is None:
        providers = sorted({provider.package.name for provider, _ in cache.provides(pkg)})
        console.print(f"Package: {pkg.name}", markup=False)
        console.print(f"State: not a real package (virtual), provided by {', '.join(providers) or 'nothing'}")
        return

    lines = [
        f"Package: {pkg.name}",
        f"Version: {version.version}",
        f"Priority: {version.priority_str or 'optional'}",
        f"Section: {version.section or 'unknown'}",
        f"Source: {version.source_name}",
        f"Architecture: {version.arch}",
        f"Installed-Size: {unit_str(version.installed_size, NumSys.DECIMAL)}",
        f"Download-Size: {unit_str(version.size, NumSys.DECIMAL)}",
    ]
    if provides := version.provides():
        lines.append(f"Provides: {', '.join(f'{n} (= {v})' if v else n for n, v in provides)}")
    depends = version.depends_map()
    for relation in _SHOW_RELATIONS:
        if groups := depends.get(relation):
            field = "Pre-Depends" if relation == "PreDepends" else relation
            lines.append(f"{field}: {format_dependencies(groups)}")
    if pkg.is_installed:
        lines.append(f"APT-Manual-Installed: {'no' if pkg.is_auto_installed else 'yes'}")
    lines.extend(f"APT-Sources: {uri}" for uri in version.uris())
    lines.append(f"Description: {version.summary}")
    # the long description repeats the summary as its first line
    lines.extend(f" {line}" if line else " ." for line in version.description.splitlines()[1:])
    console.print("\n".join(lines), markup=False, highlight=False, soft_wrap=True)


def _status(pkg: Package) -> str:
    flags = []
    if pkg.is_installed:
        flags.append("installed,automatic" if pkg.is_auto_installed else "installed")
    if pkg.is_upgradable():
        flags.append(f"upgradable from: {pkg.installed.version}")
    if pkg.is_auto_removable:
        flags.append("auto-removable")
    return f" [{','.join(flags)}]" if flags else ""


@cli.command("list")
def list_packages(
    ctx: typer.Context,
    installed: bool = typer.Option(False, "--installed", help="Only installed packages."),
    upgradable: bool = typer.Option(False, "--upgradable", help="Only upgradable packages."),
    virtual: bool = typer.Option(False, "--virtual", help="Only virtual packages."),
    auto_removable: bool = typer.Option(False, "--auto-removable", help="Only packages no longer required."),
):
    """List packages."""
    if sum((installed, upgradable, virtual, auto_removable)) > 1:
        raise typer.BadParameter("Only one of --installed, --upgradable, --virtual, --auto-removable may be given")

    sort = PackageSort().names()
    if installed:
        sort = sort.installed()
    elif upgradable:
        sort = sort.upgradable()
    elif virtual:
        sort = sort.only_virtual()
    elif auto_removable:
        sort = sort.auto_removable()

    console = Console()
    cache = _open(ctx.obj)
    for pkg in cache.packages(sort):
        version = pkg.candidate or pkg.installed
        if version is None:
            console.print(f"{pkg.fullname(pretty=True)} (virtual)", markup=False, highlight=False)
            continue
        archives = ",".join(pf.archive for pf in version.package_files() if pf.archive and not pf.is_status_file)
        console.print(
            f"{pkg.name}/{archives or 'now'} {version.version} {version.arch}{_status(pkg)}",
            markup=False,
            highlight=False,
        )


def main() -> None:
    """Main entry point for the aptcache CLI."""
    cli()


if __name__ == "__main__":
    main()
