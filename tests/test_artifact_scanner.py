import itertools
import os
import threading

import pytest

from artifact_rules import Matcher, ProjectType
from artifact_scanner import (
    Candidate,
    RootNotDirectoryError,
    RootNotFoundError,
    Walker,
    WarningKind,
    measure_tree,
    scan,
)

EXAMPLE = {
    "proj/Cargo.toml": "[package]\n",
    "proj/target/debug/app": 10,
    "proj/node_modules/x/y.js": 5,
}


def by_path(report):
    return {c.path: c for c in report.candidates}


def test_example_tree_default_types(make_tree):
    root = make_tree(EXAMPLE)

    report = scan(root)

    found = by_path(report)
    assert set(found) == {root / "proj" / "target", root / "proj" / "node_modules"}
    assert found[root / "proj" / "target"].project_type is ProjectType.RUST
    assert found[root / "proj" / "target"].size == 10
    assert found[root / "proj" / "node_modules"].project_type is ProjectType.NODE
    assert found[root / "proj" / "node_modules"].size == 5
    assert report.total_size == 15
    assert report.warnings == []
    assert not report.interrupted


def test_example_tree_node_only(make_tree):
    root = make_tree(EXAMPLE)

    report = scan(root, {ProjectType.NODE})

    assert report.candidates == [Candidate(root / "proj" / "node_modules", ProjectType.NODE, 5, 1)]


def test_only_enabled_type_is_reported(make_tree):
    root = make_tree(
        {
            "a/Cargo.toml": "",
            "a/target/out.bin": 100,
            "b/__pycache__/m.pyc": 7,
            "b/.venv/lib/site.py": 9,
            "c/node_modules/left-pad/index.js": 3,
        }
    )

    report = scan(root, {ProjectType.NODE})

    assert [c.path.name for c in report.candidates] == ["node_modules"]


def test_unconfirmed_marker_is_traversed(make_tree):
    root = make_tree(
        {
            "lib/target/README": 1,
            "lib/target/web/node_modules/pkg/index.js": 4,
        }
    )

    report = scan(root)

    assert [c.path for c in report.candidates] == [root / "lib" / "target" / "web" / "node_modules"]


def test_claimed_directories_are_not_descended(make_tree):
    root = make_tree(
        {
            "app/node_modules/a/index.js": 2,
            "app/node_modules/a/node_modules/b/index.js": 3,
            "app/node_modules/a/__pycache__/x.pyc": 4,
        }
    )

    report = scan(root)

    assert len(report.candidates) == 1
    assert report.candidates[0].path == root / "app" / "node_modules"
    assert report.candidates[0].size == 9
    assert report.candidates[0].item_count == 3


def test_no_candidate_is_nested_in_another(make_tree):
    root = make_tree(
        {
            "ws/Cargo.toml": "",
            "ws/target/debug/build/__pycache__/a.pyc": 1,
            "ws/crates/core/Cargo.toml": "",
            "ws/crates/core/target/release/lib": 2,
            "web/node_modules/.cache/.next/x": 3,
            "web/.next/server/page.js": 4,
            "svc/pom.xml": "",
            "svc/target/classes/A.class": 5,
            "svc/build/tmp": 6,
            "py/.venv/lib/python/site-packages/pkg/__pycache__/p.pyc": 7,
        }
    )

    report = scan(root)

    paths = [c.path for c in report.candidates]
    assert len(paths) == 7
    for a, b in itertools.permutations(paths, 2):
        assert a not in b.parents


def test_sizes_count_only_regular_files(make_tree, tmp_path):
    outside = tmp_path / "big.bin"
    outside.write_bytes(b"x" * 1000)
    root = make_tree({"node_modules/a/one.js": 11, "node_modules/b/c/two.js": 22})
    os.symlink(outside, root / "node_modules" / "a" / "link.bin")

    report = scan(root)

    assert report.candidates[0].size == 33
    assert report.candidates[0].item_count == 2


def test_symlink_to_outside_is_never_followed(make_tree, tmp_path):
    outside = tmp_path / "outside"
    (outside / "node_modules" / "pkg").mkdir(parents=True)
    (outside / "node_modules" / "pkg" / "index.js").write_bytes(b"x" * 50)
    root = make_tree({"proj/src/main.js": 1})
    os.symlink(outside, root / "proj" / "escape")
    os.symlink(outside / "node_modules", root / "proj" / "node_modules")

    report = scan(root)

    assert report.candidates == []
    assert report.dirs_scanned == 3


def test_broken_link_is_a_warning(make_tree):
    root = make_tree({"proj/file.txt": 1})
    os.symlink(root / "missing", root / "proj" / "dangling")

    report = scan(root)

    assert report.candidates == []
    assert [(w.path, w.kind) for w in report.warnings] == [(root / "proj" / "dangling", WarningKind.BROKEN_LINK)]


@pytest.mark.skipif(not hasattr(os, "geteuid") or os.geteuid() == 0, reason="needs an unprivileged user")
def test_unreadable_directory_is_skipped_with_warning(make_tree):
    root = make_tree(
        {
            "a/secret/node_modules/x.js": 1,
            "b/node_modules/y.js": 2,
        }
    )
    secret = root / "a" / "secret"
    secret.chmod(0)
    try:
        report = scan(root)
    finally:
        secret.chmod(0o755)

    assert [c.path for c in report.candidates] == [root / "b" / "node_modules"]
    assert [(w.path, w.kind) for w in report.warnings] == [(secret, WarningKind.PERMISSION_DENIED)]


@pytest.mark.skipif(not hasattr(os, "geteuid") or os.geteuid() == 0, reason="needs an unprivileged user")
def test_unreadable_entries_inside_candidate_keep_candidate(make_tree):
    root = make_tree({"node_modules/ok.js": 4, "node_modules/locked/hidden.js": 8})
    locked = root / "node_modules" / "locked"
    locked.chmod(0)
    try:
        report = scan(root)
    finally:
        locked.chmod(0o755)

    assert report.candidates[0].size == 4
    assert [w.kind for w in report.warnings] == [WarningKind.SIZE_INCOMPLETE]


class _VanishedEntry:
    """DirEntry whose file is deleted between listing and stat"""

    def __init__(self, entry):
        self._entry = entry

    def __getattr__(self, name):
        return getattr(self._entry, name)

    def stat(self, *, follow_symlinks=True):
        raise FileNotFoundError(2, "No such file or directory", self._entry.path)


class _Listing:
    def __init__(self, entries, vanished):
        self._entries = entries
        self._vanished = vanished

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self._entries.close()

    def __iter__(self):
        for entry in self._entries:
            yield _VanishedEntry(entry) if entry.name in self._vanished else entry


@pytest.fixture
def flaky_scandir(monkeypatch):
    """Patch os.scandir so chosen files vanish and chosen directories are unreadable"""
    real_scandir = os.scandir
    vanished: set[str] = set()
    denied: set[str] = set()

    def scandir(path):
        if os.fspath(path) in denied:
            raise PermissionError(13, "Permission denied", os.fspath(path))
        return _Listing(real_scandir(path), vanished)

    monkeypatch.setattr(os, "scandir", scandir)
    return vanished, denied


def test_file_vanishing_during_sizing_counts_as_zero(make_tree, flaky_scandir):
    root = make_tree({"node_modules/kept.js": 4, "node_modules/lib/gone.js": 8})
    vanished, _denied = flaky_scandir
    vanished.add("gone.js")

    report = scan(root)

    assert report.candidates == [Candidate(root / "node_modules", ProjectType.NODE, 4, 1)]
    assert report.warnings == []


def test_denied_directory_warns_and_scan_continues(make_tree, flaky_scandir):
    root = make_tree({"a/secret/node_modules/x.js": 1, "b/node_modules/y.js": 2})
    _vanished, denied = flaky_scandir
    denied.add(str(root / "a" / "secret"))

    report = scan(root)

    assert [c.path for c in report.candidates] == [root / "b" / "node_modules"]
    assert [(w.path, w.kind) for w in report.warnings] == [(root / "a" / "secret", WarningKind.PERMISSION_DENIED)]


def test_denied_directory_inside_candidate_marks_size_incomplete(make_tree, flaky_scandir):
    root = make_tree({"node_modules/ok.js": 4, "node_modules/locked/hidden.js": 8})
    _vanished, denied = flaky_scandir
    denied.add(str(root / "node_modules" / "locked"))

    report = scan(root)

    assert report.candidates == [Candidate(root / "node_modules", ProjectType.NODE, 4, 1)]
    assert [(w.path, w.kind) for w in report.warnings] == [(root / "node_modules", WarningKind.SIZE_INCOMPLETE)]


def test_missing_root_fails_before_walking(tmp_path):
    walker = Walker(Matcher())
    with pytest.raises(RootNotFoundError):
        walker.walk(tmp_path / "nope")


def test_file_root_fails_before_walking(tmp_path):
    path = tmp_path / "file.txt"
    path.write_text("hi")
    with pytest.raises(RootNotDirectoryError):
        scan(path)


def test_root_itself_is_never_a_candidate(tmp_path):
    root = tmp_path / "node_modules"
    (root / "pkg").mkdir(parents=True)
    (root / "pkg" / "index.js").write_text("x")

    assert scan(root).candidates == []


def test_candidates_in_discovery_order(make_tree):
    root = make_tree(
        {
            "b/node_modules/x.js": 1,
            "a/deep/node_modules/x.js": 1,
            "a/__pycache__/m.pyc": 1,
            "c/.venv/bin/python": 1,
        }
    )

    report = scan(root, workers=1)

    assert [c.path.relative_to(root).as_posix() for c in report.candidates] == [
        "a/__pycache__",
        "a/deep/node_modules",
        "b/node_modules",
        "c/.venv",
    ]


def test_walk_is_lazy_and_restartable(make_tree):
    root = make_tree(EXAMPLE)
    walker = Walker(Matcher())

    first = list(walker.walk(root))
    second = list(walker.walk(root))

    assert first == second
    assert len(first) == 2


def test_stop_before_first_directory_returns_nothing(make_tree):
    root = make_tree(EXAMPLE)

    report = scan(root, should_stop=lambda: True)

    assert report.candidates == []
    assert report.interrupted


def test_stop_between_directories_keeps_finished_sizes(make_tree, monkeypatch):
    import artifact_scanner

    root = make_tree(
        {
            "a/node_modules/x.js": 3,
            "a/node_modules/lib/y.js": 4,
            "b/node_modules/x.js": 1,
            "c/node_modules/x.js": 1,
        }
    )
    main_thread = threading.main_thread()
    sizing_started = threading.Event()
    real_measure = artifact_scanner.measure_tree

    def tracked_measure(path, should_stop=None):
        sizing_started.set()
        return real_measure(path, should_stop)

    monkeypatch.setattr(artifact_scanner, "measure_tree", tracked_measure)
    checks = []

    def stop_after_two_dirs():
        # Size workers also poll; only count checks between directory visits
        if threading.current_thread() is not main_thread:
            return False
        checks.append(None)
        if len(checks) <= 2:
            return False
        # a/node_modules is being sized (or done) by now, so it cannot be cancelled
        assert sizing_started.wait(5)
        return True

    walker = Walker(Matcher(), workers=1, should_stop=stop_after_two_dirs)
    found = list(walker.walk(root))

    assert walker.interrupted
    assert walker.dirs_scanned == 2
    assert found == [Candidate(root / "a" / "node_modules", ProjectType.NODE, 7, 2)]


def test_ignore_paths_are_neither_reported_nor_entered(make_tree):
    root = make_tree(
        {
            "keep/node_modules/x.js": 1,
            "keep/sub/__pycache__/a.pyc": 1,
            "other/node_modules/x.js": 1,
            "other/tool/node_modules/y.js": 1,
        }
    )

    report = scan(root, ignore_paths=[str(root / "keep"), str(root / "other" / "node_modules")])

    assert [c.path for c in report.candidates] == [root / "other" / "tool" / "node_modules"]


def test_progress_callback_is_called(make_tree, monkeypatch):
    import artifact_scanner

    monkeypatch.setattr(artifact_scanner, "PROGRESS_INTERVAL", 2)
    root = make_tree({"a/x": 1, "b/y": 1, "c/node_modules/z": 1})
    calls = []

    scan(root, progress_callback=lambda dirs, found: calls.append((dirs, found)))

    assert calls
    assert all(dirs % 2 == 0 for dirs, _found in calls)


def test_by_type_summary_follows_type_order(make_tree):
    root = make_tree(
        {
            "a/node_modules/x": 3,
            "b/node_modules/x": 4,
            "c/Cargo.toml": "",
            "c/target/x": 5,
        }
    )

    summary = scan(root).by_type()

    assert list(summary) == [ProjectType.RUST, ProjectType.NODE]
    assert summary[ProjectType.NODE] == (2, 7)
    assert summary[ProjectType.RUST] == (1, 5)


def test_measure_tree_sums_nested_files(tmp_path):
    (tmp_path / "a" / "b").mkdir(parents=True)
    (tmp_path / "a" / "one").write_bytes(b"x" * 3)
    (tmp_path / "a" / "b" / "two").write_bytes(b"x" * 4)

    tally = measure_tree(tmp_path)

    assert (tally.size, tally.files, tally.errors, tally.aborted) == (7, 2, [], False)


def test_measure_tree_on_vanished_directory_is_empty(tmp_path):
    tally = measure_tree(tmp_path / "gone")

    assert (tally.size, tally.files, tally.errors) == (0, 0, [])


def test_workers_must_be_positive():
    with pytest.raises(ValueError):
        Walker(Matcher(), workers=0)
