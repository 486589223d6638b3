"""Middleware — wraps every tool call handled by the dispatcher.

A middleware receives the ``ToolCallContext`` and a ``call_next`` coroutine
function. It may inspect or replace ``context.result`` after awaiting
``call_next``, or short-circuit by setting a result without calling it.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from mcp.types import CallToolResult

logger = logging.getLogger(__name__)


@dataclass
class ToolCallContext:
    name: str
    arguments: dict[str, Any]
    result: CallToolResult | None = None


class ToolMiddleware:
    async def process(
        self,
        context: ToolCallContext,
        call_next: Callable[[], Awaitable[None]],
    ) -> None:
        await call_next()


class ToolLoggingMiddleware(ToolMiddleware):
    """Log every tool call: name, arguments, duration, and result size."""

    async def process(
        self,
        context: ToolCallContext,
        call_next: Callable[[], Awaitable[None]],
    ) -> None:
        name = context.name
        logger.info("[ToolLog] CALLING %s  args=%s", name, context.arguments)
        start = time.perf_counter()

        await call_next()

        elapsed = time.perf_counter() - start
        result = context.result
        result_size = len(result.model_dump_json()) if result is not None else 0
        if result is not None and result.isError:
            logger.warning("[ToolLog] %s failed in %.2fs", name, elapsed)
        else:
            logger.info(
                "[ToolLog] %s completed in %.2fs  result=%d chars",
                name,
                elapsed,
                result_size,
            )
