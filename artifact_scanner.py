#!/usr/bin/env python3
"""
Artifact Scanner Module for Kenosis

Walks a directory tree depth-first, classifies subdirectories with a
Matcher and reports every build-artifact or dependency-cache directory
together with the disk space it occupies.

Claimed directories are never descended into for classification, so no
reported candidate is nested inside another. Their sizes are measured
on a small thread pool while the walk continues.
"""

import os
import time
from collections import deque
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from artifact_rules import DEFAULT_RULES, ArtifactRule, Matcher, ProjectType

DEFAULT_WORKERS = min(8, (os.cpu_count() or 1) + 2)
PROGRESS_INTERVAL = 200

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class ScanError(Exception):
    """Fatal scan error, raised before any candidate is produced"""

    def __init__(self, path: Path, message: str):
        super().__init__(f"{message}: {path}")
        self.path = path


class RootNotFoundError(ScanError):
    def __init__(self, path: Path):
        super().__init__(path, "Path does not exist")


class RootNotDirectoryError(ScanError):
    def __init__(self, path: Path):
        super().__init__(path, "Not a directory")


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


class WarningKind(Enum):
    PERMISSION_DENIED = "permission_denied"
    BROKEN_LINK = "broken_link"
    IO_ERROR = "io_error"
    SIZE_INCOMPLETE = "size_incomplete"


@dataclass(frozen=True)
class ScanWarning:
    path: Path
    kind: WarningKind
    message: str


@dataclass(frozen=True)
class Candidate:
    """A directory that can be deleted to reclaim space"""

    path: Path
    project_type: ProjectType
    size: int = 0
    item_count: int = 0


@dataclass
class TreeSize:
    """Byte accounting for one directory tree"""

    size: int = 0
    files: int = 0
    errors: list[tuple[str, str]] = field(default_factory=list)
    aborted: bool = False


@dataclass
class ScanReport:
    root: Path
    candidates: list[Candidate] = field(default_factory=list)
    warnings: list[ScanWarning] = field(default_factory=list)
    dirs_scanned: int = 0
    interrupted: bool = False
    duration: float = 0.0

    @property
    def total_size(self) -> int:
        return sum(c.size for c in self.candidates)

    def by_type(self) -> dict[ProjectType, tuple[int, int]]:
        """Return {project type: (candidate count, total size)} in type order"""
        summary: dict[ProjectType, tuple[int, int]] = {}
        for project_type in ProjectType:
            items = [c for c in self.candidates if c.project_type is project_type]
            if items:
                summary[project_type] = (len(items), sum(c.size for c in items))
        return summary


# ---------------------------------------------------------------------------
# Size accounting
# ---------------------------------------------------------------------------


def measure_tree(path: Path, should_stop: Optional[Callable[[], bool]] = None) -> TreeSize:
    """Sum the sizes of all regular files beneath *path*.

    Symbolic links are neither followed nor counted. Entries that vanish or
    cannot be read count as zero bytes and are listed in ``errors``.
    """
    result = TreeSize()
    stack = [os.fspath(path)]

    while stack:
        if should_stop and should_stop():
            result.aborted = True
            break

        current = stack.pop()
        try:
            with os.scandir(current) as entries:
                for entry in entries:
                    try:
                        if entry.is_dir(follow_symlinks=False):
                            stack.append(entry.path)
                        elif entry.is_file(follow_symlinks=False):
                            result.size += entry.stat(follow_symlinks=False).st_size
                            result.files += 1
                    except FileNotFoundError:
                        continue
                    except OSError as e:
                        result.errors.append((entry.path, e.strerror or str(e)))
        except FileNotFoundError:
            continue
        except OSError as e:
            result.errors.append((current, e.strerror or str(e)))

    return result


# ---------------------------------------------------------------------------
# Walker
# ---------------------------------------------------------------------------


@dataclass
class _Pending:
    path: Path
    project_type: ProjectType
    future: "Future[TreeSize]"


class Walker:
    """Depth-first artifact discovery with pruning of claimed subtrees"""

    def __init__(
        self,
        matcher: Matcher,
        workers: int = DEFAULT_WORKERS,
        should_stop: Optional[Callable[[], bool]] = None,
        ignore_paths: Iterable[str] = (),
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ):
        """Initialize walker

        Args:
            matcher: Classifier holding the active rule subset
            workers: Upper bound on concurrent size computations
            should_stop: Callable returning True once the scan should end early
            ignore_paths: Absolute paths that are never classified or entered
            progress_callback: Called with (dirs_scanned, candidates_found)
        """
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.matcher = matcher
        self.workers = workers
        self.should_stop = should_stop
        self.ignore_paths = frozenset(os.path.normpath(p) for p in ignore_paths)
        self.progress_callback = progress_callback

        self.warnings: list[ScanWarning] = []
        self.dirs_scanned = 0
        self.candidates_found = 0
        self.interrupted = False

    def walk(self, root) -> Iterator[Candidate]:
        """Validate *root* and return a lazy iterator over its candidates.

        Raises:
            RootNotFoundError: if root does not exist
            RootNotDirectoryError: if root is not a directory
        """
        root_path = Path(root).expanduser()
        if not root_path.exists():
            raise RootNotFoundError(root_path)
        if not root_path.is_dir():
            raise RootNotDirectoryError(root_path)

        self.warnings = []
        self.dirs_scanned = 0
        self.candidates_found = 0
        self.interrupted = False
        return self._walk(root_path.resolve())

    def _stop_requested(self) -> bool:
        return bool(self.should_stop and self.should_stop())

    def _warn(self, path, kind: WarningKind, message: str):
        self.warnings.append(ScanWarning(Path(path), kind, message))

    def _list_dir(self, path: str) -> Optional[list[os.DirEntry]]:
        try:
            with os.scandir(path) as entries:
                return sorted(entries, key=lambda e: e.name)
        except PermissionError:
            self._warn(path, WarningKind.PERMISSION_DENIED, "Permission denied, skipped")
        except FileNotFoundError:
            self._warn(path, WarningKind.IO_ERROR, "Disappeared during scan")
        except OSError as e:
            self._warn(path, WarningKind.IO_ERROR, e.strerror or str(e))
        return None

    def _walk(self, root: Path) -> Iterator[Candidate]:
        pending: deque[_Pending] = deque()
        pool = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="kenosis-size")
        stack = [os.fspath(root)]

        try:
            while stack:
                if self._stop_requested():
                    self.interrupted = True
                    break

                current = stack.pop()
                entries = self._list_dir(current)
                if entries is None:
                    continue

                self.dirs_scanned += 1
                if self.progress_callback and self.dirs_scanned % PROGRESS_INTERVAL == 0:
                    self.progress_callback(self.dirs_scanned, self.candidates_found)

                listing = frozenset(e.name for e in entries)
                subdirs: list[str] = []

                for entry in entries:
                    try:
                        if entry.is_symlink():
                            if not os.path.exists(entry.path):
                                self._warn(entry.path, WarningKind.BROKEN_LINK, "Broken symbolic link")
                            continue
                        if not entry.is_dir(follow_symlinks=False):
                            continue
                    except OSError as e:
                        self._warn(entry.path, WarningKind.IO_ERROR, e.strerror or str(e))
                        continue

                    if os.path.normpath(entry.path) in self.ignore_paths:
                        continue

                    project_type = self.matcher.classify(entry.name, listing)
                    if project_type is None:
                        subdirs.append(entry.path)
                        continue

                    future = pool.submit(measure_tree, Path(entry.path), self.should_stop)
                    pending.append(_Pending(Path(entry.path), project_type, future))

                # Reversed so that the next pop visits entries in name order
                stack.extend(reversed(subdirs))

                while pending and pending[0].future.done():
                    candidate = self._finish(pending.popleft())
                    if candidate:
                        yield candidate

            while pending:
                item = pending.popleft()
                if self.interrupted:
                    item.future.cancel()
                if item.future.cancelled():
                    continue
                candidate = self._finish(item)
                if candidate:
                    yield candidate
        finally:
            for item in pending:
                item.future.cancel()
            pool.shutdown(wait=True, cancel_futures=True)

    def _finish(self, item: _Pending) -> Optional[Candidate]:
        tally = item.future.result()
        if tally.aborted:
            self.interrupted = True
            return None
        if tally.errors:
            self._warn(
                item.path,
                WarningKind.SIZE_INCOMPLETE,
                f"{len(tally.errors)} entries could not be read; size is a lower bound",
            )
        self.candidates_found += 1
        return Candidate(item.path, item.project_type, tally.size, tally.files)


def scan(
    root,
    enabled: Optional[Iterable[ProjectType]] = None,
    *,
    rules: Iterable[ArtifactRule] = DEFAULT_RULES,
    workers: int = DEFAULT_WORKERS,
    should_stop: Optional[Callable[[], bool]] = None,
    ignore_paths: Iterable[str] = (),
    progress_callback: Optional[Callable[[int, int], None]] = None,
) -> ScanReport:
    """Scan *root* for artifact directories of the *enabled* project types.

    ``enabled=None`` enables every project type.
    """
    walker = Walker(
        Matcher(rules, enabled),
        workers=workers,
        should_stop=should_stop,
        ignore_paths=ignore_paths,
        progress_callback=progress_callback,
    )
    start = time.monotonic()
    candidates = walker.walk(root)
    report = ScanReport(root=Path(root).expanduser().resolve())
    report.candidates.extend(candidates)
    report.warnings = walker.warnings
    report.dirs_scanned = walker.dirs_scanned
    report.interrupted = walker.interrupted
    report.duration = time.monotonic() - start
    return report
