"""``build_runner watch`` and ``build_runner serve``.

Both commands drive the same :class:`WatchSession`; serve layers listener
management on top of it.

Ordering for serve:

1. the watch session starts before any listener is bound;
2. no target is reported as served before the first build finished;
3. listeners are closed only after the rebuild stream ended, and the command
   returns only once every close completed.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import TYPE_CHECKING, TextIO

from build_runner import server
from build_runner.builder import EXIT_OK, log_result
from build_runner.engine import BuildEngine, BuildResult, WatchHandle

if TYPE_CHECKING:  # pragma: no cover
    from build_runner.engine import RequestHandler
    from build_runner.options import ServeOptions, SharedOptions

logger = logging.getLogger("build_runner.watcher")


class WatchSession:
    """Lifecycle of one continuous-build session."""

    def __init__(self, handle: WatchHandle) -> None:
        self._handle = handle

    @classmethod
    async def start(cls, engine: BuildEngine, options: SharedOptions) -> WatchSession:
        handle = await engine.watch(options)
        return cls(handle)

    def handler_for(self, directory: str) -> RequestHandler:
        return self._handle.handler_for(directory)

    async def wait_for_first_build(self) -> BuildResult:
        result = await self._handle.current_build
        log_result(result)
        return result

    async def drain(self) -> int:
        """Consume rebuild results until the engine ends the stream."""

        count = 0
        async for result in self._handle.build_results:
            count += 1
            log_result(result)
        logger.debug("Rebuild stream ended after %d build(s).", count)
        return count


async def run_watch(engine: BuildEngine, options: SharedOptions) -> int:
    session = await WatchSession.start(engine, options)
    await session.wait_for_first_build()
    await session.drain()
    return EXIT_OK


async def _close_all(servers: list[server.Server]) -> None:
    if not servers:
        return
    results = await asyncio.gather(*(s.close() for s in servers), return_exceptions=True)
    for s, res in zip(servers, results, strict=True):
        if isinstance(res, BaseException):
            logger.warning("Failed closing listener on %s:%d: %s", s.host, s.port, res)


async def bind_targets(session: WatchSession, options: ServeOptions) -> list[server.Server]:
    """Bind one listener per serve target, all concurrently.

    Every bind is allowed to finish; if any failed, the ones that succeeded are
    closed and the first failure is raised.
    """

    results = await asyncio.gather(
        *(
            server.serve(session.handler_for(t.dir), options.hostname, t.port)
            for t in options.serve_targets
        ),
        return_exceptions=True,
    )
    bound = [r for r in results if not isinstance(r, BaseException)]
    failures = [r for r in results if isinstance(r, BaseException)]
    if failures:
        await _close_all(bound)
        for failure in failures[1:]:
            logger.debug("Additional listener failure: %s", failure)
        raise failures[0]
    return bound


async def run_serve(
    engine: BuildEngine,
    options: ServeOptions,
    *,
    out: TextIO | None = None,
) -> int:
    stream = out if out is not None else sys.stdout

    session = await WatchSession.start(engine, options)
    servers = await bind_targets(session, options)
    try:
        await session.wait_for_first_build()
        for target in options.serve_targets:
            stream.write(f"Serving `{target.dir}` on port {target.port}\n")
        stream.flush()
        await session.drain()
    finally:
        await _close_all(servers)
    return EXIT_OK
