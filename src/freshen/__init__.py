"""Freshen - reload FastAPI application code without restarting."""

from freshen.app import Application, Filter
from freshen.config import ReloaderSettings
from freshen.reload import Reloader, UnresolvableSourceError

__version__ = "0.1.0"

__all__ = [
    "Application",
    "Filter",
    "Reloader",
    "ReloaderSettings",
    "UnresolvableSourceError",
    "__version__",
]
