#!/usr/bin/env python3
"""
Grouped checklist for choosing which candidates to delete

Candidates are grouped by project type. Every item starts selected; a
group header toggles or collapses the whole group.
"""

import os
import sys
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

try:
    import select
    import termios
    import tty

    _HAS_TERMIOS = True
except ImportError:
    _HAS_TERMIOS = False

from rich.console import Console
from rich.text import Text

from artifact_rules import ProjectType
from artifact_scanner import Candidate
from auxiliary import format_bytes, format_path_for_display, truncate_path


class Key(Enum):
    UP = "up"
    DOWN = "down"
    TOGGLE = "toggle"
    COLLAPSE = "collapse"
    CONFIRM = "confirm"
    CANCEL = "cancel"
    OTHER = "other"


_CHAR_KEYS = {
    "k": Key.UP,
    "j": Key.DOWN,
    " ": Key.TOGGLE,
    "\t": Key.COLLAPSE,
    "\r": Key.CONFIRM,
    "\n": Key.CONFIRM,
    "q": Key.CANCEL,
    "\x03": Key.CANCEL,
    "\x1b": Key.CANCEL,
}
_ESCAPE_KEYS = {"[A": Key.UP, "[B": Key.DOWN, "OA": Key.UP, "OB": Key.DOWN}
MAX_PATH_WIDTH = 80


class RawModeError(Exception):
    """The terminal refused single-key input"""


def supports_raw_keys() -> bool:
    """True if single keypresses can be read from stdin"""
    if not (_HAS_TERMIOS and sys.stdin.isatty()):
        return False
    try:
        termios.tcgetattr(sys.stdin.fileno())
    except (termios.error, OSError, ValueError):
        return False
    return True


def read_key(fd: Optional[int] = None) -> Key:
    """Read a single keypress without requiring Enter.

    Bytes come straight from the file descriptor so an arrow key's escape
    sequence is not swallowed by Python's stdin buffer.

    Raises:
        RawModeError: if the terminal cannot be put into raw mode
    """
    if not _HAS_TERMIOS:
        raise RawModeError("single-key input is not supported on this platform")
    try:
        if fd is None:
            fd = sys.stdin.fileno()
        old_settings = termios.tcgetattr(fd)
    except (termios.error, OSError, ValueError) as e:
        raise RawModeError(str(e)) from e

    try:
        # TCSANOW keeps keys typed ahead of this call
        tty.setraw(fd, termios.TCSANOW)
        data = os.read(fd, 1)
        if data == b"\x1b":
            return _read_escape(fd)
    except (termios.error, OSError) as e:
        raise RawModeError(str(e)) from e
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, old_settings)

    if not data:
        return Key.CANCEL
    return _CHAR_KEYS.get(data.decode("utf-8", "replace"), Key.OTHER)


def _read_escape(fd: int) -> Key:
    # A lone ESC has nothing following it within the timeout
    seq = b""
    while len(seq) < 2 and select.select([fd], [], [], 0.05)[0]:
        chunk = os.read(fd, 2 - len(seq))
        if not chunk:
            break
        seq += chunk
    if not seq:
        return Key.CANCEL
    return _ESCAPE_KEYS.get(seq.decode("ascii", "replace"), Key.OTHER)


@dataclass
class GroupedItem:
    candidate: Candidate
    selected: bool = True


@dataclass
class Group:
    project_type: ProjectType
    items: list[GroupedItem] = field(default_factory=list)
    collapsed: bool = False

    @property
    def total_size(self) -> int:
        return sum(i.candidate.size for i in self.items)

    def all_selected(self) -> bool:
        return all(i.selected for i in self.items)

    def none_selected(self) -> bool:
        return not any(i.selected for i in self.items)

    def toggle_all(self):
        new_state = not self.all_selected()
        for item in self.items:
            item.selected = new_state


class GroupedSelector:
    """Interactive multi-select over candidates grouped by project type"""

    def __init__(self, candidates: Sequence[Candidate], console: Optional[Console] = None):
        self.console = console or Console(stderr=True, highlight=False)
        self.cursor = 0

        by_type: dict[ProjectType, list[Candidate]] = {}
        for c in candidates:
            by_type.setdefault(c.project_type, []).append(c)
        self.groups = [
            Group(pt, [GroupedItem(c) for c in by_type[pt]]) for pt in ProjectType if pt in by_type
        ]
        widest = max((len(format_path_for_display(c.path)) for c in candidates), default=0)
        self._path_width = min(widest, MAX_PATH_WIDTH)

    # -- cursor ----------------------------------------------------------------

    def _lines(self) -> list[tuple[int, Optional[int]]]:
        """Visible rows as (group index, item index or None for the header)"""
        rows: list[tuple[int, Optional[int]]] = []
        for gi, group in enumerate(self.groups):
            rows.append((gi, None))
            if not group.collapsed:
                rows.extend((gi, ii) for ii in range(len(group.items)))
        return rows

    def cursor_position(self) -> tuple[int, Optional[int]]:
        return self._lines()[self.cursor]

    def move_up(self):
        if self.cursor > 0:
            self.cursor -= 1

    def move_down(self):
        if self.cursor + 1 < len(self._lines()):
            self.cursor += 1

    def toggle_current(self):
        gi, ii = self.cursor_position()
        if ii is None:
            self.groups[gi].toggle_all()
        else:
            item = self.groups[gi].items[ii]
            item.selected = not item.selected

    def toggle_collapse(self):
        gi, ii = self.cursor_position()
        if ii is None:
            self.groups[gi].collapsed = not self.groups[gi].collapsed

    def selected(self) -> list[Candidate]:
        return [i.candidate for g in self.groups for i in g.items if i.selected]

    def handle(self, key: Key) -> Optional[bool]:
        """Apply a key. Returns True to confirm, False to cancel, None to continue."""
        if key is Key.UP:
            self.move_up()
        elif key is Key.DOWN:
            self.move_down()
        elif key is Key.TOGGLE:
            self.toggle_current()
        elif key is Key.COLLAPSE:
            self.toggle_collapse()
        elif key is Key.CONFIRM:
            return True
        elif key is Key.CANCEL:
            return False
        return None

    # -- rendering -------------------------------------------------------------

    def render(self) -> Text:
        output = Text()
        cursor = self.cursor_position()

        for gi, group in enumerate(self.groups):
            if group.all_selected():
                checkbox = Text("[✓]", style="green")
            elif group.none_selected():
                checkbox = Text("[ ]", style="dim")
            else:
                checkbox = Text("[~]", style="yellow")

            indicator = "▶" if group.collapsed else "▼"
            header = Text.assemble(
                checkbox,
                f" {indicator} {group.project_type.label} ",
                f"({len(group.items)} items, {format_bytes(group.total_size)})",
            )
            header.stylize("reverse" if cursor == (gi, None) else "bold")
            output.append_text(header)
            output.append("\n")

            if group.collapsed:
                continue

            for ii, item in enumerate(group.items):
                mark = Text("  [✓]", style="green") if item.selected else Text("  [ ]", style="dim")
                path = truncate_path(format_path_for_display(item.candidate.path), self._path_width)
                line = Text.assemble(mark, f" {path:<{self._path_width}}  {format_bytes(item.candidate.size):>10}")
                if cursor == (gi, ii):
                    line.stylize("reverse")
                output.append_text(line)
                output.append("\n")

        output.append("\n")
        output.append_text(
            Text.assemble(
                ("↑↓", "cyan"), " navigate  ",
                ("Space", "cyan"), " toggle  ",
                ("Tab", "cyan"), " expand/collapse  ",
                ("Enter", "cyan"), " confirm  ",
                ("q", "cyan"), " cancel",
            )
        )
        return output

    def run(self, key_reader: Callable[[], Key] = read_key) -> list[Candidate]:
        """Run the checklist until confirmed (selection) or cancelled (empty list)"""
        if not self.groups:
            return []

        self.console.show_cursor(False)
        try:
            while True:
                self.console.clear()
                self.console.print(self.render())

                result = self.handle(key_reader())
                if result is True:
                    return self.selected()
                if result is False:
                    return []
        finally:
            self.console.show_cursor(True)
            self.console.clear()
