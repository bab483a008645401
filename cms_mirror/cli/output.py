"""Terminal output handling using Rich library.

This module provides the OutputHandler class for all CLI terminal output:
colored status lines, spinners, progress bars, tables and the summaries
printed after pull, save and reconciliation.
"""

from contextlib import contextmanager
from typing import Iterator, List, Sequence

from rich.console import Console
from rich.live import Live
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeRemainingColumn,
)
from rich.spinner import Spinner
from rich.table import Table

from cms_mirror.mirror.models import (
    DrainReport,
    ObjectRef,
    PageInfo,
    PullResult,
    ReconcileOutcome,
    ReconcileResult,
)


class OutputHandler:
    """Handles all terminal output using Rich library.

    Attributes:
        verbosity: Verbosity level (0=summary, 1=info, 2=debug)
        console: Rich Console instance for output

    Example:
        >>> handler = OutputHandler(verbosity=1, no_color=False)
        >>> handler.success("Operation completed")
        >>> with handler.spinner("Processing..."):
        ...     pass
    """

    def __init__(self, verbosity: int = 0, no_color: bool = False):
        """Initialize output handler.

        Args:
            verbosity: Verbosity level (0=summary, 1=info, 2=debug)
            no_color: Disable color output if True
        """
        self.verbosity = verbosity
        self.no_color = no_color
        self.console = Console(
            no_color=no_color,
            highlight=False,
        )

    def success(self, message: str) -> None:
        self.console.print(f"[green]✓[/green] {message}")

    def error(self, message: str) -> None:
        self.console.print(f"[red]✗[/red] {message}", style="red")

    def warning(self, message: str) -> None:
        self.console.print(f"[yellow]⚠[/yellow] {message}", style="yellow")

    def info(self, message: str) -> None:
        """Display info message (only if verbosity >= 1)."""
        if self.verbosity >= 1:
            self.console.print(message)

    def debug(self, message: str) -> None:
        """Display debug message (only if verbosity >= 2)."""
        if self.verbosity >= 2:
            self.console.print(f"[dim]{message}[/dim]")

    @contextmanager
    def spinner(self, message: str) -> Iterator[None]:
        """Display spinner for single operations.

        Example:
            >>> with handler.spinner("Renaming..."):
            ...     container.rename(ref, "new-name")
        """
        spinner = Spinner("dots", text=message)
        with Live(spinner, console=self.console, refresh_per_second=10):
            yield

    @contextmanager
    def progress_bar(self) -> Iterator[Progress]:
        """Display progress bar for multi-item operations.

        Example:
            >>> with handler.progress_bar() as progress:
            ...     task = progress.add_task("Exporting", total=10)
            ...     progress.update(task, advance=1)
        """
        progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            TimeRemainingColumn(),
            console=self.console,
        )
        with progress:
            yield progress

    def print_pull_summary(self, results: Sequence[PullResult]) -> None:
        """Display per-container pull counts."""
        self.console.print("\n[bold]Pull Summary:[/bold]")
        total_fetched = 0
        for result in results:
            total_fetched += result.fetched_count
            parts = [
                f"{len(handles)} {kind.value}(s)"
                for kind, handles in result.fetched.items()
                if handles
            ]
            fetched = ", ".join(parts) if parts else "nothing new"
            self.console.print(
                f"  [blue]↓[/blue] {result.container}: {fetched}"
                f" [dim]({result.unchanged_count} unchanged)[/dim]"
            )
            if self.verbosity >= 1:
                for kind, handles in result.fetched.items():
                    for handle in handles:
                        self.console.print(f"      • {kind.value} {handle}")

        if total_fetched == 0:
            self.console.print("\n[green]Already up to date.[/green]")
        else:
            self.console.print(f"\n[green]Pulled {total_fetched} object(s)[/green]")

    def print_save_summary(self, reports: Sequence[DrainReport]) -> None:
        """Display the saved and failed items of one or more drain passes."""
        saved: List[ObjectRef] = [ref for report in reports for ref in report.saved]
        failures = [failure for report in reports for failure in report.failures]

        self.console.print("\n[bold]Save Summary:[/bold]")
        for ref in saved:
            self.console.print(
                f"  [green]↑[/green] {ref.kind.value} {ref.handle} "
                f"[dim](id {ref.id}, revision {ref.revision})[/dim]"
            )
        for failure in failures:
            self.console.print(f"  [red]✗[/red] {failure}")

        if failures:
            self.console.print(
                f"\n[red]Saved {len(saved)} object(s), {len(failures)} failed[/red]"
            )
        elif not saved:
            self.console.print("\n[yellow]Nothing to save[/yellow]")
        else:
            self.console.print(f"\n[green]Saved {len(saved)} object(s)[/green]")

    def print_reconcile_result(self, result: ReconcileResult) -> None:
        ref = result.ref
        if result.outcome is ReconcileOutcome.REVISION_REFRESHED:
            self.success(
                f"{ref.kind.value} {ref.handle} unchanged remotely; "
                f"revision is now {result.remote_revision}"
            )
        elif result.outcome is ReconcileOutcome.OVERWRITTEN:
            self.success(
                f"{ref.kind.value} {ref.handle} overwritten with remote revision "
                f"{result.remote_revision}"
            )
        else:
            self.warning(
                f"{ref.kind.value} {ref.handle} differs from remote revision "
                f"{result.remote_revision}; local files kept"
            )

    def print_pages(self, container: str, pages: Sequence[PageInfo]) -> None:
        if not pages:
            self.console.print(f"[yellow]No pages in {container}[/yellow]")
            return
        table = Table(title=f"Pages in {container}")
        table.add_column("Path")
        table.add_column("Component")
        table.add_column("Id", style="dim")
        table.add_column("Controller", style="dim")
        for page in pages:
            table.add_row(page.path, page.handle, page.id, page.controller_id or "")
        self.console.print(table)

    def print_status(self, container: str, ref: ObjectRef, modified: bool) -> None:
        table = Table(show_header=False, box=None)
        table.add_column(style="bold")
        table.add_column()
        table.add_row("Container", container)
        table.add_row("Kind", ref.kind.value)
        table.add_row("Handle", ref.handle)
        table.add_row("Path", str(ref.local_path))
        if ref.is_synced:
            table.add_row("Id", ref.id)
            table.add_row("Revision", ref.revision or "-")
            table.add_row("Checksum", ref.checksum or "-")
            state = "[yellow]modified locally[/yellow]" if modified else "[green]in sync[/green]"
        else:
            state = "[yellow]local only (never saved)[/yellow]"
        table.add_row("State", state)
        self.console.print(table)
