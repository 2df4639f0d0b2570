"""Re-execution of changed source files.

``sys.modules`` is the record of what has been loaded. Forgetting a file
removes its modules from there; loading it again executes the current
source under the same module names.
"""

import importlib
import importlib.util
import logging
import runpy
import sys
import threading
from pathlib import Path
from types import ModuleType

logger = logging.getLogger(__name__)

# Run name for files that were never imported as modules, so that their
# ``if __name__ == "__main__"`` blocks stay dormant.
SCRIPT_RUN_NAME = "__freshen_reload__"

_state = threading.local()


def reloading() -> Path | None:
    """The file a loader is re-executing on this thread, if any."""
    return getattr(_state, "path", None)


def modules_for(path: Path) -> list[str]:
    """Names of the loaded modules whose source is ``path``, ``__main__`` excluded."""
    names: list[str] = []
    for name, module in list(sys.modules.items()):
        if name == "__main__":
            continue
        filename = getattr(module, "__file__", None)
        if not filename:
            continue
        try:
            if Path(filename).resolve() == path:
                names.append(name)
        except OSError:
            continue
    return names


class ModuleLoader:
    """Forgets and re-executes modules by file path."""

    def __init__(self) -> None:
        self._names: dict[Path, list[str]] = {}

    def forget(self, path: Path) -> None:
        """Remove the modules loaded from ``path`` from ``sys.modules``.

        Names are remembered across calls, so a file whose last reload
        failed (and is therefore absent from ``sys.modules``) is still
        loaded under its module name next time.
        """
        known = self._names.setdefault(path, [])
        for name in modules_for(path):
            sys.modules.pop(name, None)
            if name not in known:
                known.append(name)
        logger.debug(f"Forgot {path} (modules: {', '.join(known) or 'none'})")

    def load(self, path: Path) -> None:
        """Execute the current source of ``path``."""
        importlib.invalidate_caches()

        previous = reloading()
        _state.path = path
        try:
            names = self._names.get(path)
            if not names:
                runpy.run_path(str(path), run_name=SCRIPT_RUN_NAME)
                return

            module = self._execute(names[0], path)
            for alias in names[1:]:
                sys.modules[alias] = module
        finally:
            _state.path = previous

    def _execute(self, name: str, path: Path) -> ModuleType:
        spec = importlib.util.spec_from_file_location(name, path)
        if spec is None:
            raise ImportError(f"Cannot load {path} as module {name}", name=name, path=str(path))
        module = importlib.util.module_from_spec(spec)

        # Compiled from the file itself, a .pyc written within the same
        # second for a file of the same size would be stale.
        code = compile(path.read_bytes(), str(path), "exec", dont_inherit=True)

        sys.modules[name] = module
        try:
            exec(code, module.__dict__)
        except BaseException:
            sys.modules.pop(name, None)
            raise

        parent, _, child = name.rpartition(".")
        if parent in sys.modules:
            setattr(sys.modules[parent], child, module)
        return module
