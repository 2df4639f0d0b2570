"""In-process reloading of application source files.

- Watchers track file modification times and the elements each file defines
- The coordinator deactivates a changed file's elements and re-executes it
- The loader forgets and re-runs modules through sys.modules
"""

from freshen.reload.coordinator import ReloadCoordinator, ReloadHost, SourceLoader
from freshen.reload.element import (
    AfterFilterElement,
    BeforeFilterElement,
    Element,
    ElementKind,
    ErrorHandlerElement,
    InlineTemplatesElement,
    MiddlewareElement,
    RouteElement,
)
from freshen.reload.loader import ModuleLoader
from freshen.reload.reloader import Reloader, process_reloader
from freshen.reload.source import UnresolvableSourceError
from freshen.reload.watcher import Watcher, WatcherRegistries, WatcherRegistry

__all__ = [
    "AfterFilterElement",
    "BeforeFilterElement",
    "Element",
    "ElementKind",
    "ErrorHandlerElement",
    "InlineTemplatesElement",
    "MiddlewareElement",
    "ModuleLoader",
    "ReloadCoordinator",
    "ReloadHost",
    "Reloader",
    "RouteElement",
    "SourceLoader",
    "UnresolvableSourceError",
    "Watcher",
    "WatcherRegistries",
    "WatcherRegistry",
    "process_reloader",
]
