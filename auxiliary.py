#!/usr/bin/env python3
"""
Auxiliary utility functions for Kenosis

Size formatting and parsing plus path helpers shared by the scanner,
the selector and the command line front end.
"""

import os
import pathlib
from typing import Optional

# Binary units, largest last
_UNITS = [("B", 1), ("KiB", 1024), ("MiB", 1024**2), ("GiB", 1024**3), ("TiB", 1024**4)]
_SIZE_LETTERS = {name[0]: factor for name, factor in _UNITS}


def format_bytes(size_bytes: int) -> str:
    """Format byte size into human-readable string

    Returns:
        Strings like "1.2 GiB", "12.0 KiB" or "789 B"
    """
    for name, factor in reversed(_UNITS[1:]):
        if size_bytes >= factor:
            return f"{size_bytes / factor:.1f} {name}"
    return f"{size_bytes} B"


def parse_size(value: str) -> int:
    """Parse a human-readable size string like '10M' or '1.5GiB' into bytes

    Raises:
        ValueError: if the string is not a size
    """
    text = value.strip().upper()
    for suffix in ("IB", "B"):
        if text.endswith(suffix) and len(text) > len(suffix) and text[-len(suffix) - 1] in _SIZE_LETTERS:
            text = text[: -len(suffix)]
            break
    if text and text[-1] in _SIZE_LETTERS:
        number, mult = text[:-1], _SIZE_LETTERS[text[-1]]
    else:
        number, mult = text, 1
    try:
        size = int(float(number) * mult)
    except ValueError:
        raise ValueError(f"Invalid size: {value!r}") from None
    if size < 0:
        raise ValueError(f"Invalid size: {value!r}")
    return size


def format_path_for_display(path, home_path: Optional[str] = None) -> str:
    """Show *path* with a leading home directory replaced by ~

    Only a whole-component prefix is replaced, so /home/anabel is left
    alone when home is /home/ana.
    """
    home = (home_path or str(pathlib.Path.home())).rstrip("/\\")
    text = str(path)
    if not home:
        return text
    if text == home:
        return "~"
    for sep in ("/", "\\", os.sep):
        if text.startswith(home + sep):
            return "~" + text[len(home) :]
    return text


def truncate_path(path: str, max_length: int = 60) -> str:
    """Shorten *path* to *max_length* by dropping leading characters.

    The tail carries the artifact directory name, so it is the part kept.
    """
    if len(path) <= max_length:
        return path
    return "..." + path[-(max_length - 3) :]
