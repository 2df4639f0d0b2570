"""Reload transaction for changed source files.

Flow, for every changed file of an application:
1. Refresh inline templates held by the file
2. Deactivate every element the file defined
3. Forget the file's loaded module
4. Re-execute the file, which registers fresh elements
5. Record the new modification time
"""

import logging
import threading
from contextlib import nullcontext
from pathlib import Path
from typing import Any, Protocol

from freshen.reload.element import Element
from freshen.reload.watcher import Watcher, WatcherRegistries, WatcherRegistry

logger = logging.getLogger(__name__)


class ReloadHost(Protocol):
    """What an application must support to be reloaded."""

    def deactivate(self, element: Element) -> None:
        """Remove exactly the artifact ``element`` describes. Must be idempotent."""
        ...

    def refresh_inline_templates(self, path: Path) -> None:
        """Re-read the inline templates held by ``path``."""
        ...


class SourceLoader(Protocol):
    """Re-executes source files."""

    def forget(self, path: Path) -> None:
        """Drop ``path`` from the loaded-file bookkeeping."""
        ...

    def load(self, path: Path) -> None:
        """Execute ``path`` again, replaying its side effects."""
        ...


class LockTable:
    """One lock per application, created on first use."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[int, tuple[Any, threading.Lock]] = {}

    def lock_for(self, app: Any) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(id(app))
            if entry is None:
                entry = (app, threading.Lock())
                self._locks[id(app)] = entry
            return entry[1]


class ReloadCoordinator:
    """Detects changed files of an application and reloads them.

    Reloading one file is not safe to interleave with another reload of
    the same application, so ``perform`` holds a per-application lock for
    its whole duration unless ``serialize`` is off.
    """

    def __init__(
        self,
        registries: WatcherRegistries,
        loader: SourceLoader,
        serialize: bool = True,
    ):
        self.registries = registries
        self.loader = loader
        self.serialize = serialize
        self._locks = LockTable()

    def perform(self, app: ReloadHost, serialize: bool | None = None) -> list[Path]:
        """Reload every changed file of ``app``.

        Args:
            app: The application whose files are checked.
            serialize: Override the coordinator default for this call.

        Returns:
            Paths reloaded, in registry order.

        Raises:
            Exception: Whatever re-executing a changed file raised. The
                file keeps its old timestamp and is retried next time.
        """
        if serialize is None:
            serialize = self.serialize
        guard = self._locks.lock_for(app) if serialize else nullcontext()
        with guard:
            registry = self.registries.for_app(app)
            reloaded: list[Path] = []
            for watcher in registry.changed_watchers():
                self._reload(app, registry, watcher)
                reloaded.append(watcher.path)
            return reloaded

    def _reload(self, app: ReloadHost, registry: WatcherRegistry, watcher: Watcher) -> None:
        logger.info(f"Reloading {watcher.path}")

        # Re-execution does not necessarily announce the templates again.
        if watcher.has_inline_templates:
            app.refresh_inline_templates(watcher.path)

        if watcher.templates_only:
            # Nothing to execute, the refresh is the whole reload
            watcher.update()
            return

        for element in list(watcher.elements):
            logger.debug(f"Deactivating {element.kind.value} from {watcher.path}")
            app.deactivate(element)
            registry.release(element)

        self.loader.forget(watcher.path)
        try:
            self.loader.load(watcher.path)
        except Exception as e:
            logger.error(f"Failed to reload {watcher.path}: {type(e).__name__}: {e}")
            raise

        watcher.update()
