"""Child process spawning with shared stdin forwarding.

Only one reader may own the parent's stdin at a time, so every spawned child
receives input through a single process-wide event loop reader.
:meth:`ProcessManager.terminate_stdin` releases it; until then a pending
reader keeps the loop watching the terminal.
"""

from __future__ import annotations

import asyncio
import logging
import os
import stat
import sys
from typing import ClassVar

logger = logging.getLogger("build_runner.process")


def _forwardable_stdin_fd() -> int | None:
    stream = sys.stdin
    if stream is None:
        return None
    try:
        fd = stream.fileno()
        mode = os.fstat(fd).st_mode
    except (OSError, ValueError, AttributeError):
        # Replaced or closed stdin (e.g. under a test runner's capture).
        return None
    # Regular files cannot be polled; children simply inherit them.
    if os.isatty(fd) or stat.S_ISFIFO(mode) or stat.S_ISSOCK(mode):
        return fd
    return None


class ProcessManager:
    _stdin_fd: ClassVar[int | None] = None
    _stdin_loop: ClassVar[asyncio.AbstractEventLoop | None] = None
    _sinks: ClassVar[list[asyncio.StreamWriter]] = []

    async def spawn(
        self, command: str, args: list[str], *, cwd: str | None = None
    ) -> asyncio.subprocess.Process:
        """Start ``command`` with ``args``; stdout/stderr are inherited."""

        fd = _forwardable_stdin_fd()
        logger.debug("Spawning %s %s", command, " ".join(args))
        proc = await asyncio.create_subprocess_exec(
            command,
            *args,
            cwd=cwd,
            stdin=asyncio.subprocess.PIPE if fd is not None else None,
        )
        if fd is not None and proc.stdin is not None:
            self._attach(fd, proc.stdin)
        return proc

    @classmethod
    def _attach(cls, fd: int, sink: asyncio.StreamWriter) -> None:
        cls._sinks.append(sink)
        if cls._stdin_fd is not None:
            return
        loop = asyncio.get_running_loop()
        try:
            loop.add_reader(fd, cls._forward, fd)
        except (NotImplementedError, OSError, ValueError):
            logger.debug("stdin cannot be forwarded on this platform; closing child input")
            cls._close_sinks()
            return
        cls._stdin_fd = fd
        cls._stdin_loop = loop

    @classmethod
    def _forward(cls, fd: int) -> None:
        try:
            data = os.read(fd, 4096)
        except OSError:
            data = b""
        if not data:
            cls.terminate_stdin()
            return
        for sink in list(cls._sinks):
            if sink.is_closing():
                cls._sinks.remove(sink)
                continue
            sink.write(data)

    @classmethod
    def _close_sinks(cls) -> None:
        for sink in cls._sinks:
            if not sink.is_closing():
                sink.close()
        cls._sinks.clear()

    @classmethod
    def terminate_stdin(cls) -> None:
        """Stop forwarding stdin so nothing keeps the process waiting on input."""

        if cls._stdin_fd is not None and cls._stdin_loop is not None:
            if not cls._stdin_loop.is_closed():
                cls._stdin_loop.remove_reader(cls._stdin_fd)
        cls._stdin_fd = None
        cls._stdin_loop = None
        cls._close_sinks()
