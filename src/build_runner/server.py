"""HTTP listeners for ``build_runner serve``."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from aiohttp import web

from build_runner.errors import ListenerBindError

if TYPE_CHECKING:  # pragma: no cover
    from build_runner.engine import RequestHandler

logger = logging.getLogger("build_runner.server")


class Server:
    """One bound listener: a single handler on one host/port."""

    def __init__(self, runner: web.AppRunner, host: str, port: int) -> None:
        self._runner = runner
        self.host = host
        self.port = port
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._runner.cleanup()
        logger.debug("Closed listener on %s:%d", self.host, self.port)


async def serve(handler: RequestHandler, host: str, port: int) -> Server:
    """Bind ``handler`` for every path on ``host:port``."""

    app = web.Application()
    app.router.add_route("*", "/{tail:.*}", handler)
    runner = web.AppRunner(app, access_log=logger if logger.isEnabledFor(logging.DEBUG) else None)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    try:
        await site.start()
    except OSError as e:
        await runner.cleanup()
        raise ListenerBindError(host, port, e.strerror or str(e)) from e
    logger.debug("Listening on %s:%d", host, port)
    return Server(runner, host, port)
