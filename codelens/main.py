"""Main entry point for the codelens application.

Sets up the Typer CLI application, performs dependency injection (Composition Root),
and runs analysis requests through the orchestrator.
"""

import asyncio
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from typing_extensions import Annotated

from codelens.core.services.analysis_service import AnalysisService, create_analysis_service
from codelens.domain.errors import CodelensError, ConfigurationError
from codelens.infrastructure.cli.display import ConsoleDisplay
from codelens.infrastructure.config.settings import OrchestratorSettings, get_config, load_configuration
from codelens.infrastructure.monitoring.logger_setup import setup_logging

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="codelens",
    help="codelens: rate-limited, cached, retrying code analysis against an LLM backend.",
    add_completion=False,
)


def configure_logging(verbose: bool = False) -> None:
    load_configuration()
    level = "DEBUG" if verbose else get_config('logging.level', 'WARNING')
    setup_logging(
        log_level=level,
        log_file=get_config('logging.file'),
    )


def create_dependencies(**overrides: Any) -> Dict[str, Any]:
    """Creates and wires up the CLI dependencies. Acts as the Composition Root."""
    settings = OrchestratorSettings.from_config(**overrides)
    return {
        "ui": ConsoleDisplay(),
        "settings": settings,
        "analysis_service": create_analysis_service(settings),
    }


async def _analyze_files(service: AnalysisService, ui: ConsoleDisplay, files: List[Path],
                         language: Optional[str], rules: List[str]) -> int:
    items = [
        {
            "content": path.read_text(encoding="utf-8"),
            "language": language or path.suffix.lstrip(".") or "text",
            "rules": rules,
        }
        for path in files
    ]
    async with service:
        outcomes = await service.analyze_batch(items)
        failed = 0
        for path, outcome in zip(files, outcomes):
            if isinstance(outcome, BaseException):
                failed += 1
                ui.display_failure(str(path), outcome)
            else:
                ui.display_result(str(path), outcome)
        ui.display_stats(service.stats())
    return failed


@app.command()
def analyze(
    files: Annotated[List[Path], typer.Argument(exists=True, file_okay=True, dir_okay=False,
                                                readable=True, help="Files to analyze.")],
    language: Annotated[Optional[str], typer.Option("--language", "-l",
                                                    help="Language of the files (default: file extension).")] = None,
    rule: Annotated[Optional[List[str]], typer.Option("--rule", "-r",
                                                      help="Rule to focus on; repeatable.")] = None,
    max_concurrency: Annotated[Optional[int], typer.Option(help="Parallel backend calls.")] = None,
    no_cache: Annotated[bool, typer.Option("--no-cache", help="Disable the response cache.")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging.")] = False,
):
    """Analyze one or more files with the configured LLM backend."""
    configure_logging(verbose)
    overrides: Dict[str, Any] = {"max_concurrency": max_concurrency}
    if no_cache:
        overrides["enable_cache"] = False
    try:
        deps = create_dependencies(**overrides)
    except ConfigurationError as e:
        ConsoleDisplay().display_error(str(e))
        raise typer.Exit(code=2)

    ui: ConsoleDisplay = deps["ui"]
    try:
        failed = asyncio.run(_analyze_files(deps["analysis_service"], ui, files, language, rule or []))
    except CodelensError as e:
        logger.error(f"Analysis run failed: {e}", exc_info=True)
        ui.display_error(str(e))
        raise typer.Exit(code=1)
    if failed:
        raise typer.Exit(code=1)


@app.command()
def config():
    """Show the effective orchestrator settings."""
    configure_logging()
    ui = ConsoleDisplay()
    try:
        settings = OrchestratorSettings.from_config()
    except ConfigurationError as e:
        ui.display_error(str(e))
        raise typer.Exit(code=2)
    values = asdict(settings)
    values["api_key"] = "set" if settings.api_key else "missing"
    ui.display_stats(values)


def cli_entry_point():
    """Function to be called by the script entry point in pyproject.toml."""
    app()


if __name__ == "__main__":
    cli_entry_point()
