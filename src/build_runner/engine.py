"""The build engine interface the commands drive.

Commands only ever talk to a :class:`BuildEngine`; how builds are computed,
how changes are detected and how outputs are rendered is the engine's
business.
"""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from aiohttp import web

    from build_runner.options import SharedOptions

    RequestHandler = Callable[[web.Request], Awaitable[web.StreamResponse]]


class BuildStatus(enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True, slots=True)
class BuildResult:
    """Terminal outcome of one build attempt."""

    status: BuildStatus
    outputs: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.status is BuildStatus.SUCCESS


class WatchHandle(ABC):
    """A running continuous-build session."""

    @property
    @abstractmethod
    def current_build(self) -> Awaitable[BuildResult]:
        """Resolves once the first build of the session has finished."""

    @property
    @abstractmethod
    def build_results(self) -> AsyncIterator[BuildResult]:
        """Every rebuild outcome, in order; ends when watching stops."""

    @abstractmethod
    def handler_for(self, directory: str) -> RequestHandler:
        """Return a request handler serving the outputs under ``directory``."""


class BuildEngine(ABC):
    @abstractmethod
    async def build(
        self, options: SharedOptions, *, output_dir: str | None = None
    ) -> BuildResult:
        """Run a single build to completion."""

    @abstractmethod
    async def watch(self, options: SharedOptions) -> WatchHandle:
        """Start a continuous build session and return its handle."""
