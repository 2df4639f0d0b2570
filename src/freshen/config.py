"""Reloader configuration."""

import os
from typing import Final

from pydantic import BaseModel, Field

ENV_VAR: Final = "FRESHEN_ENV"
DEFAULT_ENV: Final = "development"


def current_env() -> str:
    """Name of the environment the process runs in."""
    return os.environ.get(ENV_VAR) or DEFAULT_ENV


def is_development() -> bool:
    return current_env() == DEFAULT_ENV


class ReloaderSettings(BaseModel):
    """How an application reloads its source files."""

    # Reload changed files before each request (on in development)
    enabled: bool = Field(default_factory=is_development)

    # Globs of files to watch even though they define no elements
    also_reload: list[str] = Field(default_factory=list)

    # Globs of files whose changes are ignored
    dont_reload: list[str] = Field(default_factory=list)

    # Serialize reloads across request threads
    serialize: bool = True
