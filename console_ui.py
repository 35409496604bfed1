#!/usr/bin/env python3
"""
Terminal presentation for Kenosis

Every message, table, progress display and prompt goes through one
ConsoleUI so tests can capture output by handing in their own rich
Console.
"""

from collections.abc import Sequence
from typing import Optional

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.prompt import Confirm, Prompt
from rich.table import Table

from artifact_remover import RemovalReport
from artifact_scanner import Candidate, ScanReport, ScanWarning
from auxiliary import format_bytes, format_path_for_display

_STYLES = {
    "success": "green",
    "error": "red bold",
    "warning": "yellow",
    "info": "cyan",
}


class ConsoleUI:
    """Kenosis output on top of a single rich Console"""

    def __init__(self, force_terminal: Optional[bool] = None, console: Optional[Console] = None):
        self.console = console or Console(force_terminal=force_terminal, highlight=False)

    def _say(self, kind: str, message: str):
        self.console.print(message, style=_STYLES[kind])

    def print_success(self, message: str):
        self._say("success", message)

    def print_error(self, message: str):
        self._say("error", message)

    def print_warning(self, message: str):
        self._say("warning", message)

    def print_info(self, message: str):
        self._say("info", message)

    def show_paths(self, heading: str, paths: Sequence[str]):
        """Print *heading* followed by one bulleted display path per line"""
        self.print_info(heading)
        for p in paths:
            self.console.print(f"  • {escape(format_path_for_display(p))}")

    def print_scan_banner(self, root: str, type_labels: Sequence[str]):
        """Boxed banner naming the scan root and the enabled project types"""
        body = f"[bold]{escape(format_path_for_display(root))}[/bold]\n[dim]{escape(', '.join(type_labels))}[/dim]"
        self.console.print(Panel.fit(body, title="kenosis", title_align="left", box=box.ROUNDED))

    # Progress displays
    def scanning_spinner(self) -> Progress:
        """Transient spinner that vanishes once the walk is done"""
        return Progress(
            SpinnerColumn("dots"),
            TextColumn("{task.description}"),
            TimeElapsedColumn(),
            console=self.console,
            transient=True,
        )

    def deletion_progress(self) -> Progress:
        """Bar over the directories being deleted, counted as done/total"""
        return Progress(
            SpinnerColumn(),
            TextColumn("{task.description}"),
            BarColumn(bar_width=None),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=self.console,
        )

    # Scan result displays
    def show_scan_summary(self, report: ScanReport):
        """Show candidates per project type with their total size"""
        table = Table(title="Artifact Summary", box=box.ROUNDED, show_lines=False)
        table.add_column("Project type", style="cyan", min_width=14)
        table.add_column("Dirs", justify="right", min_width=6)
        table.add_column("Size", justify="right", style="yellow", min_width=10)

        for project_type, (count, size) in report.by_type().items():
            table.add_row(project_type.label, str(count), format_bytes(size))

        self.console.print(table)

    def show_candidates(self, candidates: Sequence[Candidate], title: Optional[str] = None):
        """List candidate directories with size and project type"""
        table = Table(title=title, box=box.SIMPLE, show_header=False, pad_edge=False)
        table.add_column("Path", overflow="fold")
        table.add_column("Size", justify="right", style="yellow", no_wrap=True)
        table.add_column("Type", style="dim", no_wrap=True)

        for c in candidates:
            path = escape(format_path_for_display(c.path))
            table.add_row(path, format_bytes(c.size), escape(f"[{c.project_type.label}]"))

        self.console.print(table)

    def show_warnings(self, warnings: Sequence[ScanWarning], show_limit: int = 10):
        """Show non-fatal scan warnings, truncated after *show_limit*"""
        if not warnings:
            return

        self.print_warning(f"\n{len(warnings)} warning{'s' if len(warnings) != 1 else ''} during scan:")
        for w in warnings[:show_limit]:
            path = escape(format_path_for_display(w.path))
            self.console.print(f"[yellow dim]  • {path}: {escape(w.message)}[/yellow dim]")

        if len(warnings) > show_limit:
            remaining = len(warnings) - show_limit
            self.console.print(f"[yellow dim]  • ... and {remaining} more[/yellow dim]")

    def show_removal_summary(self, report: RemovalReport):
        """Show summary of completed deletions"""
        self.console.print()
        if report.dry_run:
            self.print_info(
                f"Dry run: would delete {len(report.removed)} directories, "
                f"reclaiming {format_bytes(report.reclaimed)}"
            )
        elif report.removed:
            self.print_success(
                f"Done! Cleaned {format_bytes(report.reclaimed)} in {len(report.removed)} directories"
            )

        if report.failed:
            self.print_error(f"Failed to delete {len(report.failed)} directories:")
            for outcome in report.failed:
                path = format_path_for_display(outcome.candidate.path)
                self.console.print(f"[red dim]  • {escape(path)}: {escape(outcome.error_message or '')}[/red dim]")

        if report.skipped:
            self.print_warning(f"Skipped {len(report.skipped)} directories after cancellation")

    # Interactive prompts
    def confirm(self, question: str, default: bool = False) -> bool:
        """Yes/no question. A closed stdin counts as no."""
        try:
            return Confirm.ask(question, default=default, console=self.console)
        except EOFError:
            return False

    def prompt(self, question: str, default: str = "") -> str:
        """Free-text answer, or *default* when stdin is closed"""
        try:
            return Prompt.ask(question, default=default, console=self.console)
        except EOFError:
            return default

    def select_from_list(self, items: list[str], title: str = "Select items") -> list[int]:
        """Numbered fallback picker for terminals without raw key input.

        Accepts comma separated numbers and ranges ("1,3,5-7"), "all" or
        "none". Returns the chosen zero-based indices in ascending order.
        """
        if not items:
            return []

        self.console.print(f"\n[cyan]{title}:[/cyan]")
        width = len(str(len(items)))
        for i, item in enumerate(items, 1):
            self.console.print(f"  {i:>{width}}. {escape(item)}", highlight=False)

        while True:
            answer = self.prompt("Numbers or ranges (e.g. 1,3,5-7), 'all' or 'none'", default="all").strip().lower()
            if answer == "all":
                return list(range(len(items)))
            if answer in ("none", ""):
                return []

            chosen = _parse_selection(answer, len(items))
            if chosen is None:
                self.print_error(f"Enter numbers between 1 and {len(items)}, e.g. 1,3,5-7.")
                continue
            return chosen


def _parse_selection(answer: str, count: int) -> Optional[list[int]]:
    """Turn "1,3,5-7" into sorted zero-based indices, or None if malformed"""
    chosen: set[int] = set()
    for part in filter(None, (p.strip() for p in answer.split(","))):
        low, _, high = part.partition("-")
        try:
            first, last = int(low), int(high or low)
        except ValueError:
            return None
        if not 1 <= first <= last <= count:
            return None
        chosen.update(range(first - 1, last))
    return sorted(chosen)
