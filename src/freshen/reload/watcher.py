"""File watching for in-process reloading.

A ``Watcher`` follows one source file: its last seen modification time,
the elements the file currently defines, and whether its changes are
ignored. A ``WatcherRegistry`` holds the watchers of one application, and
``WatcherRegistries`` maps applications to their registry.
"""

import logging
import os
import threading
from pathlib import Path
from typing import Any

from freshen.reload.element import Element, InlineTemplatesElement

logger = logging.getLogger(__name__)


def canonical_path(path: str | os.PathLike[str]) -> Path:
    """Return the absolute, symlink-normalised form of ``path``."""
    return Path(path).expanduser().resolve()


class Watcher:
    """Watches a single file for modifications.

    Uses the modification time only. A file that disappears is reported
    as removed, never as updated, so editors that save by deleting and
    recreating a file do not trigger a reload of a missing file.
    """

    def __init__(self, path: Path):
        self.path = path
        self.elements: list[Element] = []
        self.mtime: float | None = None
        self.ignored = False
        self.update()

    def __repr__(self) -> str:
        return f"Watcher({str(self.path)!r}, elements={len(self.elements)}, ignored={self.ignored})"

    def _read_mtime(self) -> float | None:
        try:
            return self.path.stat().st_mtime
        except FileNotFoundError:
            return None

    @property
    def removed(self) -> bool:
        """Whether the watched file is missing from disk."""
        return not self.path.exists()

    @property
    def updated(self) -> bool:
        """Whether the file changed since the last ``update()``.

        Returns:
            False if the file is ignored or missing, otherwise whether the
            on-disk modification time differs from the recorded one.
        """
        if self.ignored or self.removed:
            return False
        current = self._read_mtime()
        # Deleted between the existence check and the stat.
        if current is None:
            return False
        return current != self.mtime

    @property
    def has_inline_templates(self) -> bool:
        return any(isinstance(element, InlineTemplatesElement) for element in self.elements)

    @property
    def templates_only(self) -> bool:
        """Whether the file is not Python source and only supplies inline templates."""
        return (
            self.path.suffix != ".py"
            and bool(self.elements)
            and all(isinstance(element, InlineTemplatesElement) for element in self.elements)
        )

    def update(self) -> None:
        """Record the current on-disk modification time."""
        self.mtime = self._read_mtime()

    def ignore(self) -> None:
        """Ignore changes to this file until the process exits."""
        self.ignored = True

    def release(self, element: Element) -> None:
        """Stop tracking ``element``. Unknown elements are a no-op."""
        self.elements = [e for e in self.elements if e is not element]


class WatcherRegistry:
    """The watchers of one application, keyed by canonical file path.

    Watchers are created on first reference and kept in that order for
    the lifetime of the registry, even if their file is later removed.
    Changes to the watchers and their element lists hold one lock.
    """

    def __init__(self) -> None:
        self._watchers: dict[Path, Watcher] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._watchers)

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, (str, os.PathLike)):
            return False
        return canonical_path(path) in self._watchers

    def watcher_for(self, path: str | os.PathLike[str]) -> Watcher:
        """Return the watcher for ``path``, creating and storing it if missing."""
        key = canonical_path(path)
        with self._lock:
            watcher = self._watchers.get(key)
            if watcher is None:
                watcher = Watcher(key)
                self._watchers[key] = watcher
                logger.debug(f"Watching {key}")
            return watcher

    def watch(self, path: str | os.PathLike[str], element: Element) -> Watcher:
        """Record that the file at ``path`` defines ``element``."""
        with self._lock:
            watcher = self.watcher_for(path)
            watcher.elements.append(element)
            return watcher

    def watch_element(
        self,
        path: str | os.PathLike[str],
        element: Element,
        registered_from: str | os.PathLike[str] | None = None,
    ) -> None:
        """Watch ``element`` where it is defined and, if given, where it was registered.

        Elements defined while an extension is being registered live in a
        library file that rarely changes. They are also watched under the
        file that registered the extension, so reloading that file tears
        them down before the registration runs again instead of
        duplicating them.

        Args:
            path: File whose code defines the element.
            element: The element being defined.
            registered_from: Call site of the extension registration, if any.
        """
        with self._lock:
            watcher = self.watch(path, element)
            if registered_from is not None and canonical_path(registered_from) != watcher.path:
                self.watch(registered_from, element)

    def ignore(self, path: str | os.PathLike[str]) -> None:
        self.watcher_for(path).ignore()

    def release(self, element: Element) -> None:
        """Drop ``element`` from every watcher that tracks it."""
        with self._lock:
            for watcher in self._watchers.values():
                watcher.release(element)

    def all_watchers(self) -> list[Watcher]:
        with self._lock:
            return list(self._watchers.values())

    def changed_watchers(self) -> list[Watcher]:
        """Return the watchers whose file changed, evaluated afresh on each call."""
        return [watcher for watcher in self.all_watchers() if watcher.updated]


class WatcherRegistries:
    """Maps applications to their ``WatcherRegistry``.

    Keyed by application identity. Registries are never dropped: they live
    as long as the owner of this mapping.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._registries: dict[int, tuple[Any, WatcherRegistry]] = {}

    def for_app(self, app: Any) -> WatcherRegistry:
        """Return the registry for ``app``, creating and storing it if missing."""
        with self._guard:
            entry = self._registries.get(id(app))
            if entry is None:
                # Holding the app keeps its id from being reused.
                entry = (app, WatcherRegistry())
                self._registries[id(app)] = entry
            return entry[1]

    def apps(self) -> list[Any]:
        with self._guard:
            return [app for app, _ in self._registries.values()]
