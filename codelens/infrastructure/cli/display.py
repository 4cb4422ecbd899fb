"""Console rendering of analysis results using rich."""

import logging
from typing import Any, Mapping, Optional

from rich.box import ROUNDED, SIMPLE
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from codelens.domain.models.analysis import AnalysisResult

logger = logging.getLogger(__name__)

SEVERITY_STYLES = {
    "error": "bold red",
    "warning": "yellow",
    "info": "cyan",
}


class ConsoleDisplay:
    """Renders analysis results, failures and statistics on the terminal."""

    def __init__(self, console: Optional[Console] = None):
        self._console = console or Console()

    @property
    def console(self) -> Console:
        return self._console

    def display_info(self, message: str) -> None:
        self._console.print(f"[cyan]{message}[/cyan]")

    def display_error(self, message: str) -> None:
        self._console.print(f"[bold red]Error:[/bold red] {escape(message)}")

    def display_result(self, title: str, result: AnalysisResult) -> None:
        """Prints issues, suggestions and metrics for one analyzed file."""
        issues = Table(box=ROUNDED, show_lines=False, expand=True)
        issues.add_column("Line", justify="right", style="dim", width=6)
        issues.add_column("Severity", width=9)
        issues.add_column("Type", width=12)
        issues.add_column("Message")
        issues.add_column("Rule", style="dim")
        for issue in result["issues"]:
            severity = str(issue.get("severity", "info"))
            issues.add_row(
                str(issue.get("line", "")),
                f"[{SEVERITY_STYLES.get(severity, 'white')}]{severity}[/]",
                str(issue.get("type", "")),
                escape(str(issue.get("message", ""))),
                str(issue.get("rule", "")),
            )

        metrics = Table(box=SIMPLE, show_header=False)
        metrics.add_column("Metric", style="bold")
        metrics.add_column("Value", justify="right")
        for name, value in result["metrics"].items():
            metrics.add_row(name, str(value))

        self._console.print(Panel(issues if result["issues"] else "[green]No issues found[/green]",
                                  title=f"[bold]{title}[/bold]", border_style="blue"))
        for suggestion in result["suggestions"]:
            impact = suggestion.get("impact", "")
            self._console.print(f"  [magenta]•[/magenta] ({impact}) {escape(str(suggestion.get('message', '')))}")
        self._console.print(metrics)

    def display_failure(self, title: str, error: BaseException) -> None:
        self._console.print(Panel(f"[bold red]{type(error).__name__}[/bold red]: {escape(str(error))}",
                                  title=f"[bold]{title}[/bold]", border_style="red"))

    def display_stats(self, stats: Mapping[str, Any]) -> None:
        table = Table(title="Orchestrator statistics", box=ROUNDED)
        table.add_column("Component", style="bold")
        table.add_column("Value")
        for component, value in stats.items():
            table.add_row(component, str(value))
        self._console.print(table)
