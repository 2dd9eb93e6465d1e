"""
mergebot.cli.merge
==================

The single mergebot command.

    $ mergebot -source_package wit -bug 831331

Also serves as the $VISUAL that `gbp dch` calls during the release stage:

    $ mergebot -filter_changelog debian/changelog
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import httpx
import typer
from rich.console import Console

from mergebot.core.config.settings        import Settings, check_log_level
from mergebot.core.exceptions             import ConfigError, MergebotError
from mergebot.core.services.merge_pipeline import MergePipeline
from mergebot.core.utils.changelog        import filter_changelog
from mergebot.core.utils.logging          import configure

console = Console(stderr=True)


# ------------------------------------------------------------------ helpers
def _filter_mode(paths: List[str]) -> None:
    if len(paths) != 1:
        console.print("Syntax: mergebot -filter_changelog <path>")
        raise typer.Exit(code=2)
    try:
        filter_changelog(paths[0])
    except OSError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)


def _report_success(temp_dir: Path) -> None:
    console.print("[green]Merge and build successful![/green]")
    console.print("Please introspect the resulting Debian package and git "
                  "repository, then push and upload:")
    console.print(f'cd "{temp_dir}"', markup=False)
    console.print("(cd repo && git push)", markup=False)
    console.print("(cd export && debsign *.changes && dput *.changes)", markup=False)


def _report_failure(pipeline: MergePipeline, exc: Exception) -> None:
    console.print(str(exc), markup=False, highlight=False)
    if pipeline.state is not None:
        console.print(
            f"[red]Failed during {pipeline.state.stage.name.lower()}[/red]; "
            f"everything produced so far is kept in {pipeline.state.temp_dir}"
        )


# ------------------------------------------------------------------ Typer command implementation
def merge_cmd(
    source_package: str = typer.Option(
        "", "-source_package", "--source_package",
        help="Debian source package against which the bug specified in -bug was filed.",
    ),
    bug: str = typer.Option(
        "", "-bug", "--bug",
        help="Debian bug number containing the patch to merge (e.g. 831331 or #831331)",
    ),
    filter_changelog_mode: bool = typer.Option(
        False, "-filter_changelog", "--filter_changelog", hidden=True,
        help="Not for interactive usage: filter the changelog given as PATH in place.",
    ),
    config: Optional[Path] = typer.Option(None, "--config", help="Settings file (YAML)."),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING…"),
    paths: Optional[List[str]] = typer.Argument(None, hidden=True),
):
    """Merge the patch attached to BUG into SOURCE_PACKAGE and build it."""
    if log_level is not None:
        try:
            log_level = check_log_level(log_level)
        except ConfigError as exc:
            console.print(str(exc), markup=False)
            raise typer.Exit(code=2)

    if filter_changelog_mode:
        configure(log_level or "WARNING")
        _filter_mode(paths or [])
        return

    try:
        settings = Settings(config, log_level=log_level)
    except MergebotError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    configure(settings.log_level)

    if not source_package or not bug:
        console.print("Both -source_package and -bug are required.")
        raise typer.Exit(code=2)

    pipeline = MergePipeline(source_package, bug.lstrip("#"), settings=settings)
    try:
        temp_dir = pipeline.run()
    except (MergebotError, OSError, httpx.HTTPError) as exc:
        _report_failure(pipeline, exc)
        raise typer.Exit(code=1)

    _report_success(temp_dir)
