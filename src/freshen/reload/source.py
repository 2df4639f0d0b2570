"""Find the source file an element comes from."""

import inspect
import sys
from pathlib import Path
from typing import Any

PACKAGE_DIR = Path(__file__).resolve().parent.parent


class UnresolvableSourceError(ValueError):
    """Raised when an element cannot be attributed to a file on disk."""

    def __init__(self, filename: str, reason: str):
        self.filename = filename
        self.reason = reason
        super().__init__(f"Cannot watch definitions from {filename}: {reason}")


def _is_internal(filename: str) -> bool:
    if filename.startswith("<frozen"):
        return True
    try:
        return Path(filename).resolve().is_relative_to(PACKAGE_DIR)
    except OSError:
        return False


def _checked(filename: str) -> Path:
    if filename.startswith("<"):
        raise UnresolvableSourceError(filename, "code was not loaded from a file")
    path = Path(filename).resolve()
    if not path.is_file():
        raise UnresolvableSourceError(filename, "no such file")
    return path


def caller_file() -> Path:
    """Return the file of the nearest caller outside freshen and the import system.

    Raises:
        UnresolvableSourceError: If that caller was not loaded from a file.
    """
    frame = sys._getframe(1)
    while frame is not None:
        filename = frame.f_code.co_filename
        if not _is_internal(filename):
            return _checked(filename)
        frame = frame.f_back
    raise UnresolvableSourceError("<unknown>", "no caller outside freshen")


def source_of(obj: Any) -> Path:
    """Return the file defining ``obj``.

    Functions are attributed to the file their code object comes from,
    looking through ``functools.wraps`` decorators. Anything without code
    (classes, partials, callable instances) is attributed to the caller.
    """
    target = inspect.unwrap(obj) if callable(obj) else obj
    code = getattr(target, "__code__", None)
    if code is None:
        return caller_file()
    return _checked(code.co_filename)
