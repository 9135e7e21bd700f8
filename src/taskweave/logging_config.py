"""Rich logging configuration and DAG report rendering."""

from typing import List, Optional

from loguru import logger
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.traceback import install as install_rich_traceback

from .dag.models import DagStats
from .dag.validator import DagValidationResult
from .settings.settings import Settings


def setup_rich_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    show_path: bool = True,
    show_time: bool = True,
    rich_tracebacks: bool = True,
    console: Optional[Console] = None,
    use_stderr: bool = False,
    file_level: str = "DEBUG",
    rotation: str = "10 MB",
    retention: str = "7 days",
    compression: str = "zip"
) -> Console:
    """Setup rich logging with loguru.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to log file for detailed logs
        show_path: Show file path in console logs
        show_time: Show timestamp in console logs
        rich_tracebacks: Enable rich tracebacks with syntax highlighting
        console: Optional Rich Console instance (creates new if None)
        use_stderr: Force output to stderr instead of stdout
        file_level: Log level for the file sink
        rotation: File rotation size
        retention: File retention period
        compression: Rotated file compression format

    Returns:
        Console instance used for logging
    """
    if console is None:
        console = Console(stderr=use_stderr)

    if rich_tracebacks:
        install_rich_traceback(
            show_locals=False,
            width=console.width,
            extra_lines=3,
            word_wrap=True,
            console=console
        )

    # Remove default loguru handlers
    logger.remove()

    logger.add(
        RichHandler(
            console=console,
            rich_tracebacks=rich_tracebacks,
            markup=False,
            show_time=show_time,
            show_level=True,
            show_path=show_path
        ),
        format="{message}",
        level=level
    )

    if log_file:
        logger.add(
            log_file,
            rotation=rotation,
            retention=retention,
            compression=compression,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
            level=file_level
        )

    return console


def setup_logging_from_settings(settings: Settings, console: Optional[Console] = None) -> Console:
    """Configure logging from the ``log_*`` settings fields."""
    return setup_rich_logging(
        level=settings.log_level,
        log_file=settings.log_file,
        show_path=settings.log_show_path,
        show_time=settings.log_show_time,
        rich_tracebacks=settings.log_rich_tracebacks,
        console=console,
        file_level=settings.log_file_level,
        rotation=settings.log_file_rotation,
        retention=settings.log_file_retention,
        compression=settings.log_file_compression
    )


def log_with_panel(
    message: str,
    title: str = "",
    console: Optional[Console] = None,
    border_style: str = "blue"
):
    """Log a message in a rich panel for better visibility."""
    if console is None:
        console = Console()

    console.print(Panel(message, title=title, border_style=border_style))


def log_dag_stats(stats: DagStats, title: str = "DAG Health", console: Optional[Console] = None):
    """Log DAG statistics in a formatted table.

    Args:
        stats: Statistics to display
        title: Title for the table
        console: Console instance (creates new if None)
    """
    if console is None:
        console = Console()

    table = Table(title=title, show_header=True, header_style="bold green")
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", style="magenta")

    for key, value in stats.to_dict().items():
        # snake_case -> Title Case
        table.add_row(key.replace("_", " ").title(), str(value))

    console.print(table)


def log_execution_plan(groups: List[List[str]], title: str = "Execution Plan", console: Optional[Console] = None):
    """Log parallel execution waves, one row per wave."""
    if console is None:
        console = Console()

    if not groups:
        console.print("[yellow]Nothing left to schedule[/yellow]")
        return

    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Wave", style="cyan", no_wrap=True)
    table.add_column("Tasks", style="white")
    table.add_column("Size", style="magenta")

    for i, group in enumerate(groups):
        table.add_row(str(i + 1), ", ".join(group), str(len(group)))

    console.print(table)


def log_validation_result(result: DagValidationResult, console: Optional[Console] = None):
    """Log a validation result as a red or green panel listing its issues."""
    lines = []
    for issue in result.errors:
        lines.append(f"[bold red]ERROR[/bold red] {issue.code}: {issue.message}")
    for issue in result.warnings:
        lines.append(f"[yellow]WARN[/yellow]  {issue.code}: {issue.message}")
    if not lines:
        lines.append("No issues found")

    log_with_panel(
        "\n".join(lines),
        title="DAG valid" if result.is_valid else "DAG invalid",
        console=console,
        border_style="green" if result.is_valid else "red"
    )
