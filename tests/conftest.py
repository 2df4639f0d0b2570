"""Pytest configuration and fixtures."""

import importlib
import os
import sys
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest


@pytest.fixture(scope="session")
def anyio_backend():
    """Use asyncio as the async backend."""
    return "asyncio"


@pytest.fixture
def touch() -> Callable[..., None]:
    """Move a file's modification time forward, as an editor save would."""

    def move_forward(path: Path, seconds: float = 10.0) -> None:
        stat = path.stat()
        os.utime(path, (stat.st_atime, stat.st_mtime + seconds))

    return move_forward


@pytest.fixture
def rewrite(touch) -> Callable[[Path, str], None]:
    """Replace a file's contents and make sure its modification time changes."""

    def replace(path: Path, text: str) -> None:
        before = path.stat().st_mtime
        path.write_text(text)
        os.utime(path, (before, before))
        touch(path)

    return replace


@pytest.fixture
def source_dir(tmp_path: Path) -> Iterator[Path]:
    """A directory on sys.path whose modules are unloaded after the test."""
    root = (tmp_path / "app").resolve()
    root.mkdir()
    sys.path.insert(0, str(root))
    importlib.invalidate_caches()

    yield root

    sys.path.remove(str(root))
    for name, module in list(sys.modules.items()):
        filename = getattr(module, "__file__", None)
        if filename and Path(filename).resolve().is_relative_to(root):
            del sys.modules[name]
