"""Reloadable application built on FastAPI.

``Application`` wraps a ``FastAPI`` instance with a registration API for
routes, filters, middleware, error handlers and inline templates. Every
registration is reported to the attached reloader together with the file
that made it, and every registration can be undone through
``deactivate``. Before each request, changed files are reloaded.
"""

import fnmatch
import inspect
import logging
import weakref
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from string import Template
from typing import Any

from fastapi import FastAPI, Request, Response
from starlette.concurrency import run_in_threadpool
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp, Receive, Scope, Send

from freshen.config import ReloaderSettings
from freshen.reload.element import (
    AfterFilterElement,
    BeforeFilterElement,
    Element,
    ErrorHandlerElement,
    InlineTemplatesElement,
    MiddlewareElement,
    RouteElement,
)
from freshen.reload.loader import reloading
from freshen.reload.reloader import Reloader, process_reloader
from freshen.reload.source import UnresolvableSourceError, caller_file, source_of
from freshen.templates import read_inline_templates

logger = logging.getLogger(__name__)

FILTER_KINDS = ("before", "after")


@dataclass(eq=False)
class Filter:
    """A callable run before or after the requests whose path matches ``pattern``."""

    kind: str
    func: Callable[..., Any]
    pattern: str | None = None

    def matches(self, path: str) -> bool:
        return self.pattern is None or fnmatch.fnmatchcase(path, self.pattern)

    async def run(self, *args: Any) -> Any:
        if inspect.iscoroutinefunction(self.func):
            return await self.func(*args)
        return await run_in_threadpool(self.func, *args)


class FilterMiddleware(BaseHTTPMiddleware):
    """Runs the application's filters around each request.

    The filter lists are read on every request, so filters added or
    removed after startup take effect immediately.
    """

    def __init__(self, app: ASGIApp, filters: dict[str, list[Filter]]):
        super().__init__(app)
        self.filters = filters

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path

        for before in list(self.filters["before"]):
            if before.matches(path):
                result = await before.run(request)
                # A before filter answering the request halts it
                if isinstance(result, Response):
                    return result

        response = await call_next(request)

        for after in list(self.filters["after"]):
            if after.matches(path):
                result = await after.run(request, response)
                if isinstance(result, Response):
                    response = result

        return response


def _defining_file() -> Path | None:
    try:
        return caller_file()
    except UnresolvableSourceError:
        return None


# Reloadable applications by (defining file, title)
_live: "weakref.WeakValueDictionary[tuple[Path, str], Application]" = weakref.WeakValueDictionary()


class Application:
    """A FastAPI application whose source files can be reloaded in place.

    Re-executing the file that created an application does not create a
    second one: constructing an application with the same title from the
    file being reloaded returns the instance already being served, and the
    file's registrations go back into it.
    """

    def __new__(cls, title: str = "freshen", *args: Any, **kwargs: Any) -> "Application":
        path = reloading()
        if path is not None and _defining_file() == path:
            live = _live.get((path, title))
            if isinstance(live, cls):
                logger.debug(f"Reusing {live!r} while reloading {path}")
                return live
        return super().__new__(cls)

    def __init__(
        self,
        title: str = "freshen",
        settings: ReloaderSettings | None = None,
        reloader: Reloader | None = None,
        **options: Any,
    ):
        if getattr(self, "api", None) is not None:
            # Revived by __new__, already set up
            return

        self.settings = settings or ReloaderSettings()
        self.api = FastAPI(title=title, **options)
        self.filters: dict[str, list[Filter]] = {kind: [] for kind in FILTER_KINDS}
        self.templates: dict[str, str] = {}
        self.api.add_middleware(FilterMiddleware, filters=self.filters)

        # Call site of the outermost extension registration in progress
        self._registering_from: Path | None = None

        self.reloader: Reloader | None = None
        if self.settings.enabled:
            self.reloader = reloader or process_reloader()
            self.also_reload(*self.settings.also_reload)
            self.dont_reload(*self.settings.dont_reload)
            defined_in = _defining_file()
            if defined_in is not None:
                _live[(defined_in, title)] = self
            logger.debug(f"Reloading enabled for {self!r}")

    def __repr__(self) -> str:
        return f"Application({self.api.title!r})"

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if self.reloader is not None and scope["type"] in ("http", "websocket"):
            await run_in_threadpool(self.reload)
        await self.api(scope, receive, send)

    def reload(self) -> list[Path]:
        """Reload the files that changed since they were last loaded.

        Returns:
            The reloaded files.
        """
        if self.reloader is None:
            return []
        return self.reloader.perform(self, serialize=self.settings.serialize)

    # Registration

    def route(self, verb: str, path: str, **options: Any) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Decorator installing ``endpoint`` for ``verb`` requests to ``path``.

        Extra options are passed to ``FastAPI.add_api_route``.
        """
        verb = verb.upper()

        def decorator(endpoint: Callable[..., Any]) -> Callable[..., Any]:
            source = self._source(endpoint)
            self.api.add_api_route(path, endpoint, methods=[verb], **options)
            route = self.api.router.routes[-1]
            self._changed()
            self._watch(RouteElement(verb, route), source)
            return endpoint

        return decorator

    def get(self, path: str, **options: Any) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        return self.route("GET", path, **options)

    def post(self, path: str, **options: Any) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        return self.route("POST", path, **options)

    def put(self, path: str, **options: Any) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        return self.route("PUT", path, **options)

    def patch(self, path: str, **options: Any) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        return self.route("PATCH", path, **options)

    def delete(self, path: str, **options: Any) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        return self.route("DELETE", path, **options)

    def use(self, middleware_class: type, *args: Any, **kwargs: Any) -> Middleware:
        """Add a middleware around everything installed so far."""
        source = self._source()
        entry = Middleware(middleware_class, *args, **kwargs)
        self.api.user_middleware.insert(0, entry)
        self._changed()
        self._watch(MiddlewareElement(entry), source)
        return entry

    def add_filter(self, kind: str, func: Callable[..., Any], pattern: str | None = None) -> Filter:
        """Install ``func`` as a ``before`` or ``after`` filter.

        Raises:
            ValueError: If ``kind`` is not a filter kind.
        """
        if kind not in FILTER_KINDS:
            raise ValueError(f"Unknown filter kind: {kind}")
        source = self._source(func)
        installed = Filter(kind, func, pattern)
        self.filters[kind].append(installed)
        if kind == "before":
            element: Element = BeforeFilterElement(installed)
        else:
            element = AfterFilterElement(installed)
        self._watch(element, source)
        return installed

    def before(self, pattern: str | None = None) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            self.add_filter("before", func, pattern)
            return func

        return decorator

    def after(self, pattern: str | None = None) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            self.add_filter("after", func, pattern)
            return func

        return decorator

    def error(self, *codes: int | type[Exception]) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Decorator installing a handler for status codes or exception classes.

        With no codes, the handler catches every ``Exception``.
        """
        handled = codes or (Exception,)

        def decorator(handler: Callable[..., Any]) -> Callable[..., Any]:
            source = self._source(handler)
            for code in handled:
                self.api.add_exception_handler(code, handler)
                self._watch(ErrorHandlerElement(code, handler), source)
            self._changed()
            return handler

        return decorator

    def inline_templates(self, path: str | Path | None = None) -> dict[str, str]:
        """Load the templates after ``__END__`` in ``path`` (default: the calling file)."""
        source = Path(path).resolve() if path is not None else caller_file()
        loaded = read_inline_templates(source)
        self.templates.update(loaded)
        if self.reloader is not None:
            # Also watched where it is called from, so reloading that file replaces it
            called_from = self._registering_from or caller_file()
            self.reloader.element_defined(self, source, InlineTemplatesElement(source), called_from)
        return loaded

    def register(self, *extensions: Any) -> None:
        """Install extensions by calling their ``registered(app)`` hook.

        Elements an extension defines are also watched under the file
        calling this method, so reloading that file does not duplicate them.

        Raises:
            TypeError: If an extension has no ``registered`` hook.
        """
        outermost = self._registering_from is None
        if outermost and self.reloader is not None:
            self._registering_from = caller_file()
        try:
            for extension in extensions:
                registered = getattr(extension, "registered", None)
                if registered is None:
                    raise TypeError(f"{extension!r} has no registered() hook")
                logger.debug(f"Registering extension {extension!r}")
                registered(self)
        finally:
            if outermost:
                self._registering_from = None

    def also_reload(self, *patterns: str) -> list[Path]:
        """Watch files matching ``patterns`` although they define no elements."""
        if self.reloader is None:
            return []
        return self.reloader.also_reload(self, *patterns)

    def dont_reload(self, *patterns: str) -> list[Path]:
        """Ignore changes to files matching ``patterns``."""
        if self.reloader is None:
            return []
        return self.reloader.dont_reload(self, *patterns)

    def render(self, name: str, **context: Any) -> str:
        """Render an inline template with ``$name`` placeholders.

        Raises:
            KeyError: If no template has that name.
        """
        if name not in self.templates:
            raise KeyError(f"No template named {name!r}")
        return Template(self.templates[name]).safe_substitute(context)

    # Reloading

    def refresh_inline_templates(self, path: Path) -> None:
        self.templates.update(read_inline_templates(path))

    def deactivate(self, element: Element) -> None:
        """Remove the artifact ``element`` describes, if it is still installed."""
        if isinstance(element, RouteElement):
            routes = self.api.router.routes
            routes[:] = [route for route in routes if route is not element.route]
            self._changed()
        elif isinstance(element, MiddlewareElement):
            stack = self.api.user_middleware
            stack[:] = [entry for entry in stack if entry is not element.entry]
            self._changed()
        elif isinstance(element, (BeforeFilterElement, AfterFilterElement)):
            filters = self.filters[element.filter.kind]
            filters[:] = [f for f in filters if f is not element.filter]
        elif isinstance(element, ErrorHandlerElement):
            # Leave handlers installed by a later registration alone.
            if self.api.exception_handlers.get(element.code) is element.handler:
                del self.api.exception_handlers[element.code]
                self._changed()
        elif isinstance(element, InlineTemplatesElement):
            pass
        else:
            raise TypeError(f"Cannot deactivate {element!r}")

    def _changed(self) -> None:
        # Rebuilt on the next request
        self.api.middleware_stack = None
        self.api.openapi_schema = None

    def _source(self, defined_by: Any = None) -> Path | None:
        """File to watch a new element under, or None when not reloading."""
        if self.reloader is None:
            return None
        if defined_by is None:
            return caller_file()
        return source_of(defined_by)

    def _watch(self, element: Element, source: Path | None) -> None:
        if self.reloader is None or source is None:
            return
        self.reloader.element_defined(self, source, element, self._registering_from)
