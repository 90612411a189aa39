"""Typer-based CLI for running MSVC Code Analysis on CMake projects."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, NoReturn, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from . import __version__, config
from .config_manager import load_options
from .errors import MsvcAnalyzeError
from .models import AnalyzeOptions
from .orchestrator import AnalysisSession, resolve_build_dir, run
from .sarif import combine_sarif

app = typer.Typer(
    help="🔍 msvc-analyze — MSVC Code Analysis for CMake projects, merged into one SARIF report.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()
log_console = Console(stderr=True)
logger = logging.getLogger(__name__)


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"msvc-analyze v{__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=log_console, show_path=False, markup=False)],
        force=True,
    )


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
):
    """Derive cl.exe /analyze commands from the CMake file API and merge their SARIF output."""
    _configure_logging(verbose)


def _fail(error: Exception) -> NoReturn:
    console.print(f"[red]❌ {escape(str(error))}[/red]")
    if logger.isEnabledFor(logging.DEBUG):
        logger.exception("msvc-analyze failed")
    raise typer.Exit(code=1)


def _options(
    project_root: Optional[Path],
    config_file: Optional[Path],
    overrides: Dict[str, Any],
) -> AnalyzeOptions:
    root = (project_root or config.default_project_root()).resolve()
    return load_options(root, config_file, overrides)


# Options shared by `analyze` and `commands`
BUILD_DIR = typer.Argument(..., help="CMake build directory, already configured.")
CONFIG = typer.Option(None, "--config", "-c", help=f"TOML options file (default: ./{config.CONFIG_FILE_NAME}).")
PROJECT_ROOT = typer.Option(None, "--project-root", help="Root for relative paths (default: $GITHUB_WORKSPACE or cwd).")
BUILD_CONFIGURATION = typer.Option(None, "--build-configuration", "-b", help="Configuration for multi-config generators.")
IGNORE_SYSTEM_HEADERS = typer.Option(
    None, "--ignore-system-headers/--no-ignore-system-headers", help="Use /external options for SYSTEM includes."
)
LOAD_IMPLICIT_ENV = typer.Option(
    None, "--load-implicit-env/--no-load-implicit-env", help="Load INCLUDE/LIB from the VS command prompt."
)
IGNORED_PATHS = typer.Option(None, "--ignored-paths", help="';' separated paths ignored as targets and includes.")
IGNORED_TARGET_PATHS = typer.Option(None, "--ignored-target-paths", help="';' separated target paths to skip.")
IGNORED_INCLUDE_PATHS = typer.Option(None, "--ignored-include-paths", help="';' separated include paths to ignore.")
RULESET = typer.Option(None, "--ruleset", "-r", help="Ruleset file, local or shipped with Visual Studio.")
ADDITIONAL_ARGS = typer.Option(None, "--additional-args", help="Extra arguments for every cl.exe invocation.")


@app.command("analyze")
def analyze(
    build_dir: str = BUILD_DIR,
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Merged SARIF path (default: <build>/results.sarif)."),
    config_file: Optional[Path] = CONFIG,
    project_root: Optional[Path] = PROJECT_ROOT,
    build_configuration: Optional[str] = BUILD_CONFIGURATION,
    ignore_system_headers: Optional[bool] = IGNORE_SYSTEM_HEADERS,
    load_implicit_env: Optional[bool] = LOAD_IMPLICIT_ENV,
    ignored_paths: Optional[str] = IGNORED_PATHS,
    ignored_target_paths: Optional[str] = IGNORED_TARGET_PATHS,
    ignored_include_paths: Optional[str] = IGNORED_INCLUDE_PATHS,
    ruleset: Optional[str] = RULESET,
    additional_args: Optional[str] = ADDITIONAL_ARGS,
):
    """Analyze every C/C++ source of a CMake build and write one merged SARIF report."""
    try:
        options = _options(
            project_root,
            config_file,
            dict(
                build_configuration=build_configuration,
                ignore_system_headers=ignore_system_headers,
                load_implicit_compiler_env=load_implicit_env,
                ignored_paths=ignored_paths,
                ignored_target_paths=ignored_target_paths,
                ignored_include_paths=ignored_include_paths,
                ruleset=ruleset,
                additional_args=additional_args,
            ),
        )
        result_path, report = run(build_dir, options, output)
    except MsvcAnalyzeError as exc:
        _fail(exc)

    console.print(f"[bold green]✅ Analysis complete[/bold green]: {len(report.findings)} unique result(s)")
    typer.echo(f"SARIF: {result_path}")


@app.command("commands")
def show_commands(
    build_dir: str = BUILD_DIR,
    as_json: bool = typer.Option(False, "--json", help="Print commands as JSON."),
    config_file: Optional[Path] = CONFIG,
    project_root: Optional[Path] = PROJECT_ROOT,
    build_configuration: Optional[str] = BUILD_CONFIGURATION,
    ignore_system_headers: Optional[bool] = IGNORE_SYSTEM_HEADERS,
    load_implicit_env: Optional[bool] = LOAD_IMPLICIT_ENV,
    ignored_paths: Optional[str] = IGNORED_PATHS,
    ignored_target_paths: Optional[str] = IGNORED_TARGET_PATHS,
    ignored_include_paths: Optional[str] = IGNORED_INCLUDE_PATHS,
    ruleset: Optional[str] = RULESET,
    additional_args: Optional[str] = ADDITIONAL_ARGS,
):
    """Print the analyze command for every source without running the compiler."""
    try:
        options = _options(
            project_root,
            config_file,
            dict(
                build_configuration=build_configuration,
                ignore_system_headers=ignore_system_headers,
                load_implicit_compiler_env=load_implicit_env,
                ignored_paths=ignored_paths,
                ignored_target_paths=ignored_target_paths,
                ignored_include_paths=ignored_include_paths,
                ruleset=ruleset,
                additional_args=additional_args,
            ),
        )
        with AnalysisSession(resolve_build_dir(build_dir, options.project_root), options) as session:
            invocations = session.prepare()
            rows: List[Dict[str, Any]] = [
                {"source": i.source, "compiler": i.compiler, "args": i.args} for i in invocations
            ]
    except MsvcAnalyzeError as exc:
        _fail(exc)

    if as_json:
        typer.echo(json.dumps(rows, indent=2))
        return
    for row in rows:
        typer.echo(row["source"])
        typer.echo(f"  {row['compiler']} " + " ".join(row["args"]))


@app.command("merge")
def merge(
    reports: List[Path] = typer.Argument(..., exists=True, dir_okay=False, help="SARIF files to merge."),
    output: Path = typer.Option(..., "--output", "-o", help="Merged SARIF output path."),
):
    """Merge existing SARIF files, dropping duplicate results."""
    if not output.resolve().parent.is_dir():
        _fail(MsvcAnalyzeError(f"Output directory does not exist: {output.parent}"))
    try:
        report = combine_sarif(output, reports)
    except MsvcAnalyzeError as exc:
        _fail(exc)
    console.print(f"Merged {len(reports)} file(s) into {len(report.findings)} unique result(s)")
    typer.echo(f"SARIF: {output}")


if __name__ == "__main__":
    app()
