"""Small shared helpers: timing, duration formatting, tool-level logging."""

from __future__ import annotations

import logging
import time

from mcp.server.fastmcp import Context

__all__ = [
    'DualLogger',
    'Timer',
    'humanize_seconds',
]

logger = logging.getLogger(__name__)


class DualLogger:
    """Mirrors tool messages to the module logger and the MCP client context."""

    def __init__(self, ctx: Context, log: logging.Logger = logger) -> None:
        self.ctx = ctx
        self._log = log

    async def info(self, msg: str) -> None:
        self._log.info(msg)
        await self.ctx.info(msg)

    async def warning(self, msg: str) -> None:
        self._log.warning(msg)
        await self.ctx.warning(msg)

    async def error(self, msg: str) -> None:
        self._log.error(msg)
        await self.ctx.error(msg)


class Timer:
    """Stopwatch for measuring elapsed time."""

    def __init__(self) -> None:
        self._start = time.perf_counter()

    def elapsed(self) -> float:
        """Elapsed time in seconds."""
        return time.perf_counter() - self._start


def humanize_seconds(seconds: float) -> str:
    """Format a duration with an abbreviated unit: 45 sec, 1.5 min, 2.5 hr, 3d."""
    for unit, size in (('d', 86400), ('hr', 3600), ('min', 60)):
        if seconds >= size:
            value = f'{seconds / size:.1f}'.rstrip('0').rstrip('.')
            return f'{value}{unit}' if unit == 'd' else f'{value} {unit}'
    return f'{seconds:.0f} sec'
