import io
import pathlib

import pytest
from rich.console import Console


def build_tree(root: pathlib.Path, layout: dict) -> pathlib.Path:
    """Create files and directories under *root*.

    Keys ending in "/" are directories; other keys are files whose value is
    either their size in bytes or their text content.
    """
    for rel, content in layout.items():
        path = root / rel
        if rel.endswith("/"):
            path.mkdir(parents=True, exist_ok=True)
            continue
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, int):
            path.write_bytes(b"x" * content)
        else:
            path.write_text(content or "")
    return root


@pytest.fixture
def make_tree(tmp_path):
    root = tmp_path / "root"
    root.mkdir()

    def _make(layout: dict) -> pathlib.Path:
        return build_tree(root, layout).resolve()

    return _make


@pytest.fixture
def quiet_console():
    return Console(file=io.StringIO(), width=200, highlight=False)
