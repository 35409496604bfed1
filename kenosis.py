#!/usr/bin/env python3
"""
Kenosis — Ancient Greek κένωσις (emptying)

Reclaims disk space by finding regenerable build artifacts and dependency
caches (Rust target/, node_modules/, Python virtualenvs and caches,
Maven/Gradle build output, .NET bin/obj, .next/.nuxt) and deleting the
ones you pick.

Usage:
    kenosis [path]                     # Scan, pick from a checklist, delete
    kenosis [path] --dry-run           # Show what would be deleted
    kenosis [path] --rust --node       # Only these project types
    kenosis [path] --yes               # Delete everything found, no prompts
    kenosis [path] --min-size 10M      # Only show directories > 10 MiB
    kenosis --keep <path>              # Never touch <path> again
    kenosis --show-keep                # Show persistent keep list
    kenosis --reset-keep               # Clear persistent keep list
"""

import argparse
import signal
import sys
from pathlib import Path
from typing import Optional

from rich.markup import escape

from artifact_remover import ArtifactRemover, RemovalReport
from artifact_rules import DEFAULT_RULES, ArtifactRule, ProjectType, RuleFileError, load_rules
from artifact_scanner import DEFAULT_WORKERS, Candidate, ScanError, ScanReport, scan
from auxiliary import format_bytes, format_path_for_display, parse_size
from console_ui import ConsoleUI
from grouped_selector import GroupedSelector, RawModeError, supports_raw_keys
from kenosis_config import ConfigManager

__version__ = "0.3.0"

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INTERRUPTED = 130

# (flag dest, option strings, help, project type)
TYPE_FLAGS = [
    ("rust", ["--rust"], "Clean Rust target/ directories", ProjectType.RUST),
    ("node", ["--node", "--js", "--npm"], "Clean Node.js node_modules/", ProjectType.NODE),
    ("python", ["--python", "--py"], "Clean Python venvs and caches", ProjectType.PYTHON),
    ("java", ["--java", "--maven"], "Clean Java Maven target/ and build/", ProjectType.MAVEN),
    ("gradle", ["--gradle"], "Clean Gradle build/ and .gradle/ directories", ProjectType.GRADLE),
    ("dotnet", ["--dotnet", "--csharp"], "Clean .NET bin/ and obj/ directories", ProjectType.DOTNET),
    ("next", ["--next"], "Clean Next.js .next/ directories", ProjectType.NEXTJS),
    ("nuxt", ["--nuxt"], "Clean Nuxt.js .nuxt/ directories", ProjectType.NUXTJS),
]

SORT_KEYS = {
    "size": lambda items: sorted(items, key=lambda c: c.size, reverse=True),
    "path": lambda items: sorted(items, key=lambda c: c.path),
    "found": list,
}


class Kenosis:
    """Main application class for the Kenosis artifact cleanup tool."""

    def __init__(self, args: argparse.Namespace, ui: Optional[ConsoleUI] = None, config_manager=None):
        self.args = args
        self.ui = ui or ConsoleUI()
        self._shutdown_requested = False

        self.config_manager = config_manager or ConfigManager()
        self.config = self.config_manager.load()

    # -- signal handling ----------------------------------------------------

    def install_signal_handlers(self):
        signal.signal(signal.SIGINT, self._signal_handler)
        if hasattr(signal, "SIGTERM"):
            signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, signum, frame):
        if self._shutdown_requested:
            sys.exit(EXIT_INTERRUPTED)
        self._shutdown_requested = True
        self.ui.print_warning("\nShutdown requested... press Ctrl+C again to force quit.")

    def _should_stop(self) -> bool:
        return self._shutdown_requested

    # -- keep list commands --------------------------------------------------

    def show_keep(self):
        if not self.config.ignore_paths:
            self.ui.print_info("Keep list is empty.")
            return
        self.ui.show_paths("Kept paths (never scanned or deleted):", self.config.ignore_paths)

    def reset_keep(self):
        self.config.clear_keep()
        self.config_manager.save(self.config)
        self.ui.print_success("Keep list cleared.")

    def add_keep(self, paths: list[str]):
        added = [p for p in paths if self.config.add_keep(Path(p))]
        self.config_manager.save(self.config)
        for p in added:
            self.ui.print_success(f"Keeping {escape(format_path_for_display(Path(p).expanduser().resolve()))}")
        if len(added) < len(paths):
            self.ui.print_info(f"{len(paths) - len(added)} path(s) were already kept.")

    # -- option resolution ---------------------------------------------------

    def enabled_types(self) -> set[ProjectType]:
        """Project types selected by flags, else configured defaults, else all"""
        chosen = {pt for dest, _opts, _help, pt in TYPE_FLAGS if getattr(self.args, dest, False)}
        if chosen:
            return chosen
        if self.config.default_types:
            return {ProjectType.from_name(name) for name in self.config.default_types}
        return set(ProjectType)

    def rules(self) -> list[ArtifactRule]:
        """Built-in rules followed by any user rules"""
        rules = list(DEFAULT_RULES)
        if self.config_manager.rules_file.is_file():
            rules.extend(load_rules(self.config_manager.rules_file))
        return rules

    def workers(self) -> int:
        return getattr(self.args, "workers", None) or self.config.workers or DEFAULT_WORKERS

    # -- scanning ------------------------------------------------------------

    def scan(self, root: str) -> ScanReport:
        min_size = parse_size(self.args.min_size) if getattr(self.args, "min_size", None) else 0
        enabled = self.enabled_types()
        rules = self.rules()
        labels = [pt.label for pt in ProjectType if pt in enabled]

        self.ui.print_scan_banner(str(Path(root).expanduser().resolve()), labels)

        progress = self.ui.scanning_spinner()
        with progress:
            task = progress.add_task("Scanning...", total=None)

            def on_progress(dirs_scanned: int, found: int):
                progress.update(task, description=f"Scanning... {dirs_scanned:,} dirs, {found} found")

            report = scan(
                root,
                enabled,
                rules=rules,
                workers=self.workers(),
                should_stop=self._should_stop,
                ignore_paths=self.config.ignore_paths,
                progress_callback=on_progress,
            )

        if min_size:
            report.candidates = [c for c in report.candidates if c.size >= min_size]
        report.candidates = SORT_KEYS[getattr(self.args, "sort", "size") or "size"](report.candidates)
        return report

    # -- reporting -----------------------------------------------------------

    def report(self, report: ScanReport):
        if report.interrupted:
            self.ui.print_warning("Scan interrupted — results are partial.")

        if not report.candidates:
            self.ui.print_warning("No cleanable directories found.")
            self.ui.show_warnings(report.warnings)
            return

        self.ui.show_scan_summary(report)
        self.ui.print_info(
            f"Found {len(report.candidates)} cleanable directories "
            f"({format_bytes(report.total_size)}) in {report.dirs_scanned:,} scanned dirs, "
            f"{report.duration:.1f}s"
        )
        self.ui.show_warnings(report.warnings)

    # -- selection -------------------------------------------------------------

    def select(self, candidates: list[Candidate]) -> list[Candidate]:
        if getattr(self.args, "yes", False):
            return list(candidates)

        if supports_raw_keys():
            try:
                return GroupedSelector(candidates, console=self.ui.console).run()
            except RawModeError as e:
                self.ui.print_warning(f"Checklist unavailable ({escape(str(e))}), using numbered selection.")

        items = [
            f"{format_path_for_display(c.path)}  {format_bytes(c.size)}  [{c.project_type.label}]"
            for c in candidates
        ]
        indices = self.ui.select_from_list(items, title="Directories to delete")
        return [candidates[i] for i in indices]

    # -- deletion ----------------------------------------------------------------

    def execute(self, to_delete: list[Candidate], dry_run: bool) -> RemovalReport:
        remover = ArtifactRemover(dry_run=dry_run)
        if dry_run:
            self.ui.print_warning("\nDry run — nothing will be deleted:")
            self.ui.show_candidates(to_delete)
            return remover.remove(to_delete)

        progress = self.ui.deletion_progress()
        with progress:
            task = progress.add_task("Deleting...", total=len(to_delete))

            def on_progress(candidate: Candidate, index: int, total: int):
                description = f"Deleting {escape(candidate.path.name)}..."
                progress.update(task, completed=index - 1, description=description)

            remover.progress_callback = on_progress
            result = remover.remove(to_delete, should_stop=self._should_stop)
            progress.update(task, completed=len(to_delete) - len(result.skipped))
        return result

    def _record_run(self, reclaimed: int):
        self.config.record_run(reclaimed)
        try:
            self.config_manager.save(self.config)
        except OSError as e:
            self.ui.print_warning(f"Could not save statistics: {e}")

    # -- main entry point ----------------------------------------------------

    def run(self) -> int:
        if getattr(self.args, "show_keep", False):
            self.show_keep()
            return EXIT_OK
        if getattr(self.args, "reset_keep", False):
            self.reset_keep()
            return EXIT_OK
        if getattr(self.args, "keep", None):
            self.add_keep(self.args.keep)
            return EXIT_OK

        try:
            result = self.scan(self.args.path)
        except (ScanError, RuleFileError, ValueError) as e:
            self.ui.print_error(f"error: {escape(str(e))}")
            return EXIT_ERROR

        self.report(result)
        if not result.candidates:
            return EXIT_INTERRUPTED if result.interrupted else EXIT_OK

        dry_run = getattr(self.args, "dry_run", False)
        if dry_run:
            removal = self.execute(result.candidates, dry_run=True)
            self.ui.show_removal_summary(removal)
            return EXIT_OK

        if self._shutdown_requested:
            return EXIT_INTERRUPTED

        self.ui.console.print()
        to_delete = self.select(result.candidates)
        if not to_delete:
            self.ui.print_warning("Nothing selected.")
            return EXIT_OK

        if not getattr(self.args, "yes", False):
            total = format_bytes(sum(c.size for c in to_delete))
            if not self.ui.confirm(f"Delete {len(to_delete)} directories ({total})?", default=False):
                self.ui.print_info("No changes made.")
                return EXIT_OK

        removal = self.execute(to_delete, dry_run=False)
        self.ui.show_removal_summary(removal)
        self._record_run(removal.reclaimed)

        if removal.failed:
            return EXIT_ERROR
        return EXIT_INTERRUPTED if removal.skipped else EXIT_OK


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError("must be at least 1")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kenosis",
        description="Kenosis — safely clean up build artifacts and dependency caches to reclaim disk space",
    )
    parser.add_argument("path", nargs="?", default=".", help="Directory to scan (defaults to current directory)")
    parser.add_argument("-n", "--dry-run", action="store_true", help="Show what would be deleted without deleting")
    parser.add_argument("-y", "--yes", action="store_true", help="Skip selection and confirmation, delete everything")

    types = parser.add_argument_group("project types", "Restrict the scan (default: all types)")
    for dest, options, help_text, _pt in TYPE_FLAGS:
        types.add_argument(*options, dest=dest, action="store_true", help=help_text)

    parser.add_argument("--min-size", type=str, default=None, help="Minimum directory size to report (e.g. 10M, 1G)")
    parser.add_argument(
        "--sort", choices=sorted(SORT_KEYS), default="size", help="Order of results (default: size, largest first)"
    )
    parser.add_argument("--workers", type=_positive_int, default=None, help="Parallel size computations")
    parser.add_argument("--keep", nargs="+", metavar="PATH", help="Add paths to the persistent keep list")
    parser.add_argument("--show-keep", action="store_true", help="Show persistent keep list")
    parser.add_argument("--reset-keep", action="store_true", help="Clear persistent keep list")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Optional[list[str]] = None):
    parser = build_parser()
    args = parser.parse_args(argv)
    app = Kenosis(args)
    app.install_signal_handlers()
    sys.exit(app.run())


if __name__ == "__main__":
    main()
