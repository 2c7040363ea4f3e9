"""Main CLI entry point for ffiscout - C library surface discovery."""

import json
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .binary import BinarySignatureExtractor
from .config import FFIScoutConfig, Precedence, load_config
from .discovery import SignatureDiscovery
from .errors import BinaryExtractionError, ObjectOpenError
from .models import DiscoveryResult, FunctionSignature
from .parsers import IncludeGraphResolver
from .session import DiscoverySession

app = typer.Typer(help="ffiscout - discover constants and function signatures of C libraries")
console = Console()


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def get_config(config_path: Optional[Path], verbose: bool) -> FFIScoutConfig:
    """Load config from --config, ./.ffiscoutrc or ~/.ffiscoutrc."""
    config = load_config(config_path=config_path, directory=Path.cwd())
    if verbose:
        config.verbose = True
    return config


def print_constants(constants, title: str = "Constants") -> None:
    table = Table(title=title)
    table.add_column("Name", style="cyan")
    table.add_column("Value", style="green", justify="right")
    table.add_column("Hex", style="dim", justify="right")
    for name, value in sorted(constants.items()):
        table.add_row(name, str(value), f"0x{value & 0xFFFFFFFFFFFFFFFF:x}")
    console.print(table)


def print_functions(result: DiscoveryResult) -> None:
    table = Table(title="Functions")
    table.add_column("Signature", style="cyan")
    table.add_column("Source", style="magenta")
    for name in sorted(result.signatures):
        entry = result.functions[name]
        table.add_row(entry.signature.render(name), entry.provenance.value)
    console.print(table)


@app.command()
def discover(
    library: str = typer.Argument(..., help="Library name (e.g. sdl3, raylib, m, c)"),
    shared_object: Optional[Path] = typer.Option(None, "--so", help="Shared object to read debug info and symbols from"),
    include: List[Path] = typer.Option([], "--include", "-I", help="Extra include directory (repeatable)"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
    precedence: Optional[Precedence] = typer.Option(None, "--precedence", help="Which source wins on conflicts"),
    preprocess: bool = typer.Option(False, "--preprocess", help="Also run the main header through the C preprocessor"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to a .ffiscoutrc file"),
):
    """Discover constants, macros and function signatures of a C library."""
    setup_logging(verbose)
    config = get_config(config_path, verbose)
    if precedence:
        config.precedence = precedence
    if preprocess:
        config.use_preprocessor = True

    result = SignatureDiscovery(config).discover(
        library,
        shared_object=str(shared_object) if shared_object else None,
        extra_include_paths=[str(path) for path in include],
    )

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
        return

    console.print(Panel(
        f"[bold green]ffiscout[/bold green] - {library}\n\n"
        f"Headers: [cyan]{', '.join(result.header_paths) or 'none found'}[/cyan]\n"
        f"Shared object: [cyan]{shared_object or 'not given'}[/cyan]",
        title="Discovery"
    ))

    summary = Table(title="Summary", show_header=False, box=None)
    summary.add_column(style="cyan")
    summary.add_column(style="green")
    summary.add_row("Constants", str(len(result.constants)))
    summary.add_row("Macros", str(len(result.macros)))
    summary.add_row("Typed functions", str(len(result.signatures)))
    summary.add_row("Symbol-only functions", str(len(result.symbol_only)))
    console.print(summary)

    if result.signatures:
        print_functions(result)
    if result.symbol_only:
        console.print(f"[yellow]Symbols without types:[/yellow] {', '.join(result.symbol_only)}")
    for error in result.errors:
        console.print(f"[red]✗ {error.stage}: {error.message}[/red]")
    if verbose:
        for message in result.diagnostics:
            console.print(f"[dim]{message}[/dim]")


@app.command()
def constants(
    library: str = typer.Argument(..., help="Library name"),
    include: List[Path] = typer.Option([], "--include", "-I", help="Extra include directory (repeatable)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to a .ffiscoutrc file"),
):
    """List the integer constants a library's headers define."""
    setup_logging(verbose)
    config = get_config(config_path, verbose)
    result = SignatureDiscovery(config).discover(library, extra_include_paths=[str(path) for path in include])
    if not result.constants:
        console.print(f"[yellow]No constants found for {library}[/yellow]")
        return
    print_constants(result.constants, title=f"{library} constants")


@app.command()
def symbols(
    shared_object: Path = typer.Argument(..., help="Shared object (.so) to inspect"),
    exported_only: bool = typer.Option(False, "--exported-only", help="Skip undefined (imported) symbols"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
):
    """List function symbols and, where debug info exists, their signatures."""
    setup_logging(verbose)
    config = FFIScoutConfig(verbose=verbose, exported_only=exported_only)
    extractor = BinarySignatureExtractor(config)
    try:
        names = extractor.extract_symbol_names(shared_object)
    except ObjectOpenError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    except BinaryExtractionError as e:
        console.print(f"[red]Error reading symbols: {e}[/red]")
        raise typer.Exit(1)

    try:
        signatures = extractor.extract_debug_signatures(shared_object)
    except BinaryExtractionError as e:
        console.print(f"[yellow]⚠ Debug info unusable: {e}[/yellow]")
        signatures = {}

    table = Table(title=f"{shared_object.name}: {len(names)} function symbols")
    table.add_column("Symbol", style="cyan")
    table.add_column("Signature (debug info)", style="green")
    for name in names:
        signature: Optional[FunctionSignature] = signatures.get(name)
        table.add_row(name, signature.render(name) if signature else "[dim]-[/dim]")
    console.print(table)


@app.command()
def header(
    file: Path = typer.Argument(..., help="Header file to parse"),
    include: List[Path] = typer.Option([], "--include", "-I", help="Include directory for <dir/header.h> includes"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
):
    """Parse a single header (and what it includes) without any library lookup."""
    setup_logging(verbose)
    if not file.is_file():
        console.print(f"[red]Error: File {file} does not exist[/red]")
        raise typer.Exit(1)

    config = FFIScoutConfig(verbose=verbose)
    session = DiscoverySession(config, [str(path) for path in include] + list(config.system_include_dirs))
    IncludeGraphResolver(config).walk(file, session)

    console.print(f"[dim]Parsed {len(session.parsed_files)} file(s)[/dim]")
    if session.constants:
        print_constants(session.constants)
    if session.functions:
        table = Table(title="Functions")
        table.add_column("Signature", style="cyan")
        for name in sorted(session.functions):
            table.add_row(session.functions[name].render(name))
        console.print(table)
    if session.macros:
        for name, body in sorted(session.macros.items()):
            params = ", ".join(session.macro_params.get(name, []))
            console.print(f"[magenta]#define {name}({params})[/magenta] {body}")


if __name__ == "__main__":
    app()
