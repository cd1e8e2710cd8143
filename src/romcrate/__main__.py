"""CLI entry point for romcrate."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn
from rich.table import Table

from romcrate import __version__
from romcrate.archive.zipraw import ArchiveFormatError
from romcrate.assembler import ArchiveAssembler, AssemblyError
from romcrate.config import Settings
from romcrate.dat.models import format_crc, parse_crc
from romcrate.dat.parser import MetadataError, parse_file
from romcrate.db.rom_index import IndexMissingError, RomIndex
from romcrate.indexer import DirectoryError, build_index, resolve_source_dir

console = Console()
err_console = Console(stderr=True)


def _fail(message: str) -> None:
    err_console.print(f"[red]Error: {escape(message)}[/red]")
    sys.exit(1)


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _db_path(ctx: click.Context, db: str | None) -> Path:
    settings: Settings = ctx.obj
    return Path(db) if db else settings.db_path


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "config_path", type=click.Path(), help="YAML config file")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, verbose: bool):
    """romcrate - rebuild game ROM archives by CRC."""
    try:
        settings = Settings.load(config_path)
    except (ValueError, OSError) as e:
        _fail(f"Cannot load config: {e}")
    if verbose:
        settings.log_level = "DEBUG"
    _setup_logging(settings.log_level)
    ctx.obj = settings


@cli.command()
@click.argument("source_dir", type=click.Path())
@click.option("--db", type=click.Path(), help="Index database path")
@click.pass_context
def index(ctx: click.Context, source_dir: str, db: str | None):
    """Rebuild the ROM index from a directory of zip archives.

    Any existing index is deleted first.
    """
    db_path = _db_path(ctx, db)

    try:
        path = resolve_source_dir(source_dir)
        total = sum(1 for _ in path.iterdir())
    except DirectoryError as e:
        _fail(str(e))
    except OSError as e:
        _fail(f"Cannot list {source_dir}: {e}")

    with Progress(
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TextColumn("{task.fields[current]}"),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Indexing", total=total, current="")

        def on_archive(entry: Path) -> None:
            progress.update(task, advance=1, current=entry.name)

        try:
            report = build_index(path, db_path, on_archive=on_archive)
        except DirectoryError as e:
            _fail(str(e))

    console.print(
        f"[green]✓ Indexed {report.roms_indexed} ROMs from "
        f"{report.archives_indexed} archives into {escape(str(db_path))}[/green]"
    )
    if report.skipped:
        console.print(f"[yellow]Skipped {len(report.skipped)} non-archive entries[/yellow]")
    if report.abandoned:
        console.print(
            f"[yellow]Abandoned {len(report.abandoned)} archives with unreadable members[/yellow]"
        )
        for path_, reason in report.abandoned:
            console.print(f"  [dim]{escape(str(path_))}: {escape(reason)}[/dim]")


@cli.command()
@click.argument("dat_file", type=click.Path())
@click.argument("game")
@click.option("--db", type=click.Path(), help="Index database path")
@click.option("--output-dir", "-o", type=click.Path(), help="Directory for the rebuilt zip")
@click.option("--json", "as_json", is_flag=True, help="Output receipt as JSON")
@click.pass_context
def build(
    ctx: click.Context,
    dat_file: str,
    game: str,
    db: str | None,
    output_dir: str | None,
    as_json: bool,
):
    """Rebuild GAME from DAT_FILE using the ROM index.

    Example: romcrate build mame.xml pacman -o ./out
    """
    settings: Settings = ctx.obj
    out = Path(output_dir) if output_dir else settings.output_dir

    try:
        datafile = parse_file(dat_file)
    except (MetadataError, OSError) as e:
        _fail(f"Cannot read DAT {dat_file}: {e}")

    try:
        with RomIndex.open(_db_path(ctx, db)) as rom_index:
            result = ArchiveAssembler(rom_index).assemble(datafile, game, out)
    except IndexMissingError as e:
        _fail(str(e))
    except (AssemblyError, ArchiveFormatError) as e:
        _fail(f"Cannot rebuild {game}: {e}")

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    console.print(f"[green]✓ Rebuilt {escape(result.game)} at {escape(str(result.output_path))}[/green]")
    for name, origin in result.roms:
        console.print(f"  {escape(name)} [dim]← {escape(str(origin))}[/dim]")


@cli.command()
@click.argument("dat_file", type=click.Path())
@click.argument("game", required=False)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def dat(dat_file: str, game: str | None, as_json: bool):
    """Show the games in DAT_FILE, or the ROMs of one GAME."""
    try:
        datafile = parse_file(dat_file)
    except (MetadataError, OSError) as e:
        _fail(f"Cannot read DAT {dat_file}: {e}")

    if game is None:
        if as_json:
            click.echo(json.dumps(datafile.to_dict(), indent=2, ensure_ascii=False))
            return
        table = Table(title=f"{escape(dat_file)} ({len(datafile)} games)")
        table.add_column("Name", style="cyan")
        table.add_column("Description")
        table.add_column("ROMs", justify="right")
        table.add_column("Disks", justify="right")
        for entry in datafile.games:
            table.add_row(
                escape(entry.name),
                escape(entry.description),
                str(len(entry.roms)),
                str(len(entry.disks)),
            )
        console.print(table)
        return

    found = datafile.find_game(game)
    if found is None:
        _fail(f"Game not found in DAT: {game}")

    if as_json:
        click.echo(json.dumps(found.to_dict(), indent=2, ensure_ascii=False))
        return

    table = Table(title=f"{escape(found.name)}: {escape(found.description)}")
    table.add_column("ROM", style="cyan")
    table.add_column("CRC")
    table.add_column("Status")
    table.add_column("Dispose")
    for rom in found.roms:
        status_style = "green" if rom.is_good else "red"
        table.add_row(
            escape(rom.name),
            format_crc(rom.crc),
            f"[{status_style}]{rom.status.value}[/{status_style}]",
            "yes" if rom.dispose else "",
        )
    console.print(table)
    for disk in found.disks:
        console.print(f"[dim]disk {escape(disk.name)} ({escape(disk.region)}, index {disk.index})[/dim]")


@cli.command()
@click.argument("crc")
@click.option("--name", help="Only match this ROM name")
@click.option("--db", type=click.Path(), help="Index database path")
@click.pass_context
def lookup(ctx: click.Context, crc: str, name: str | None, db: str | None):
    """Find where a ROM with the given CRC was indexed."""
    try:
        crc_value = parse_crc(crc)
    except ValueError as e:
        _fail(str(e))

    try:
        with RomIndex.open(_db_path(ctx, db)) as rom_index:
            entries = rom_index.find_by_crc(crc_value)
    except IndexMissingError as e:
        _fail(str(e))

    if name is not None:
        entries = [entry for entry in entries if entry.name == name]

    if not entries:
        console.print(f"[yellow]No ROM with CRC {format_crc(crc_value)} in index[/yellow]")
        sys.exit(1)

    for entry in entries:
        console.print(
            f"[cyan]{escape(entry.name)}[/cyan] {escape(entry.full_name)} "
            f"[dim]in {escape(str(entry.path))}[/dim]"
        )


@cli.command()
@click.option("--db", type=click.Path(), help="Index database path")
@click.pass_context
def stats(ctx: click.Context, db: str | None):
    """Show how many ROMs are indexed."""
    db_path = _db_path(ctx, db)
    try:
        with RomIndex.open(db_path) as rom_index:
            count = rom_index.count()
    except IndexMissingError as e:
        _fail(str(e))

    console.print(f"{count} ROMs indexed in {escape(str(db_path))}")


if __name__ == "__main__":
    cli()
