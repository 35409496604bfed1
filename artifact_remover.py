#!/usr/bin/env python3
"""
Artifact Removal Module

Deletes selected candidate directories one by one and reports a
per-path outcome. A failed deletion never stops the remaining ones.
"""

import os
import shutil
import stat
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Optional

from artifact_scanner import Candidate


@dataclass
class RemovalOutcome:
    """Result of removing a single candidate"""

    candidate: Candidate
    success: bool
    error_message: Optional[str] = None
    dry_run: bool = False


@dataclass
class RemovalReport:
    removed: list[RemovalOutcome] = field(default_factory=list)
    failed: list[RemovalOutcome] = field(default_factory=list)
    skipped: list[Candidate] = field(default_factory=list)
    dry_run: bool = False

    @property
    def reclaimed(self) -> int:
        return sum(o.candidate.size for o in self.removed)


class ArtifactRemover:
    """Recursive directory deletion with dry-run support"""

    def __init__(
        self,
        dry_run: bool = False,
        progress_callback: Optional[Callable[[Candidate, int, int], None]] = None,
    ):
        self.dry_run = dry_run
        self.progress_callback = progress_callback

    def remove_one(self, candidate: Candidate) -> RemovalOutcome:
        """Delete a single candidate directory"""
        path = candidate.path
        try:
            st = os.lstat(path)
        except FileNotFoundError:
            return RemovalOutcome(candidate, False, "No longer exists", self.dry_run)
        except OSError as e:
            return RemovalOutcome(candidate, False, e.strerror or str(e), self.dry_run)

        # Refuse anything that was swapped for a link or a file since the scan
        if not stat.S_ISDIR(st.st_mode):
            return RemovalOutcome(candidate, False, "No longer a directory", self.dry_run)

        if self.dry_run:
            return RemovalOutcome(candidate, True, dry_run=True)

        try:
            shutil.rmtree(path)
        except OSError as e:
            return RemovalOutcome(candidate, False, str(e))
        return RemovalOutcome(candidate, True)

    def remove(
        self, candidates: Iterable[Candidate], should_stop: Optional[Callable[[], bool]] = None
    ) -> RemovalReport:
        """Delete every candidate, collecting successes and failures"""
        items = list(candidates)
        report = RemovalReport(dry_run=self.dry_run)

        for i, candidate in enumerate(items):
            if should_stop and should_stop():
                report.skipped.extend(items[i:])
                break

            if self.progress_callback:
                self.progress_callback(candidate, i + 1, len(items))

            outcome = self.remove_one(candidate)
            if outcome.success:
                report.removed.append(outcome)
            else:
                report.failed.append(outcome)

        return report
