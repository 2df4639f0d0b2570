"""Elements an application source file can contribute.

Each kind of element is its own frozen dataclass carrying what the host
needs to locate and remove the exact artifact it installed. Equality is
identity: registering the same handler twice yields two elements.
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar


class ElementKind(str, Enum):
    """Kinds of reloadable application elements."""

    ROUTE = "route"
    MIDDLEWARE = "middleware"
    BEFORE_FILTER = "before_filter"
    AFTER_FILTER = "after_filter"
    ERROR_HANDLER = "error_handler"
    INLINE_TEMPLATES = "inline_templates"


@dataclass(frozen=True, eq=False)
class Element:
    """Base class for everything a watched file defines."""

    kind: ClassVar[ElementKind]


@dataclass(frozen=True, eq=False)
class RouteElement(Element):
    """A route installed for a single HTTP verb."""

    kind: ClassVar[ElementKind] = ElementKind.ROUTE

    verb: str
    route: Any  # the installed starlette/fastapi route object


@dataclass(frozen=True, eq=False)
class MiddlewareElement(Element):
    """An entry in the application's middleware chain."""

    kind: ClassVar[ElementKind] = ElementKind.MIDDLEWARE

    entry: Any  # starlette.middleware.Middleware (class, args, kwargs)


@dataclass(frozen=True, eq=False)
class BeforeFilterElement(Element):
    kind: ClassVar[ElementKind] = ElementKind.BEFORE_FILTER

    filter: Any


@dataclass(frozen=True, eq=False)
class AfterFilterElement(Element):
    kind: ClassVar[ElementKind] = ElementKind.AFTER_FILTER

    filter: Any


@dataclass(frozen=True, eq=False)
class ErrorHandlerElement(Element):
    """An exception handler keyed by status code or exception class."""

    kind: ClassVar[ElementKind] = ElementKind.ERROR_HANDLER

    code: int | type[Exception]
    handler: Callable[..., Any]


@dataclass(frozen=True, eq=False)
class InlineTemplatesElement(Element):
    """Marks a file as holding inline templates."""

    kind: ClassVar[ElementKind] = ElementKind.INLINE_TEMPLATES

    path: Path
