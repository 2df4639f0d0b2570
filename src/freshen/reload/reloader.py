"""Reloader: the per-process owner of watch state.

Applications report the elements they define to a ``Reloader``, which
files them under the right watchers and reloads changed files when asked.
"""

import glob
import logging
import os
from pathlib import Path
from typing import Any

from freshen.reload.coordinator import ReloadCoordinator, ReloadHost, SourceLoader
from freshen.reload.element import Element
from freshen.reload.loader import ModuleLoader
from freshen.reload.watcher import Watcher, WatcherRegistries, WatcherRegistry

logger = logging.getLogger(__name__)


def expand_globs(patterns: tuple[str, ...] | list[str]) -> list[Path]:
    """Resolve glob patterns to the files they match right now."""
    paths: list[Path] = []
    for pattern in patterns:
        matches = sorted(glob.glob(os.path.expanduser(pattern), recursive=True))
        if not matches:
            logger.debug(f"No files match {pattern}")
        paths.extend(Path(match) for match in matches if os.path.isfile(match))
    return paths


class Reloader:
    """Tracks which files define which elements and reloads changed files.

    Watch state is kept per application, so several applications can
    share one reloader without sharing watchers.
    """

    def __init__(self, loader: SourceLoader | None = None, serialize: bool = True):
        self.registries = WatcherRegistries()
        self.coordinator = ReloadCoordinator(
            self.registries,
            loader or ModuleLoader(),
            serialize=serialize,
        )

    def registry(self, app: Any) -> WatcherRegistry:
        return self.registries.for_app(app)

    def element_defined(
        self,
        app: Any,
        path: Path,
        element: Element,
        registered_from: Path | None = None,
    ) -> None:
        """Record that ``path`` defined ``element`` for ``app``.

        Args:
            app: Application the element was installed into.
            path: File whose code defined the element.
            element: The installed element.
            registered_from: File that registered the extension being
                installed, if any.
        """
        self.registry(app).watch_element(path, element, registered_from)

    def watch_file(self, app: Any, path: str | os.PathLike[str]) -> Watcher:
        return self.registry(app).watcher_for(path)

    def also_reload(self, app: Any, *patterns: str) -> list[Path]:
        """Watch every file matching ``patterns``.

        Returns:
            The files now watched.
        """
        paths = expand_globs(patterns)
        for path in paths:
            self.watch_file(app, path)
        return paths

    def dont_reload(self, app: Any, *patterns: str) -> list[Path]:
        """Ignore changes to every file matching ``patterns``.

        Returns:
            The files now ignored.
        """
        paths = expand_globs(patterns)
        registry = self.registry(app)
        for path in paths:
            registry.ignore(path)
        return paths

    def perform(self, app: ReloadHost, serialize: bool | None = None) -> list[Path]:
        return self.coordinator.perform(app, serialize=serialize)

    def watchers(self, app: Any) -> list[Watcher]:
        return self.registry(app).all_watchers()


_process_reloader: Reloader | None = None


def process_reloader() -> Reloader:
    """Return the reloader shared by the applications of this process.

    Created on first use and kept until the process exits.
    """
    global _process_reloader
    if _process_reloader is None:
        _process_reloader = Reloader()
    return _process_reloader
