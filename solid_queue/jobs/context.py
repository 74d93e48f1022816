"""
Execution context handed to job handlers, and handler adaptation.
"""

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import Any, Callable

from solid_queue.core.registries import JobHandler


@dataclass
class JobContext:
    """Everything a handler knows about the job it is running.

    ``payload`` is the decoded JSON value, so tuples come back as lists and
    custom types as plain dicts. Handlers own any further parsing.
    """

    id: int
    handler: str
    payload: Any
    attempt: int
    queue: str
    metadata: dict[str, Any] = field(default_factory=dict)
    stop_event: asyncio.Event | None = field(default=None, repr=False)

    @property
    def stopping(self) -> bool:
        """True once the queue has been asked to shut down."""
        return self.stop_event is not None and self.stop_event.is_set()


class FunctionHandler:
    """Adapts a plain function to the JobHandler protocol.

    Coroutine functions are awaited on the event loop. Synchronous functions
    run in a worker thread so a slow handler only occupies its own slot.
    """

    def __init__(self, func: Callable[[JobContext], Any]):
        self.func = func
        self.name = getattr(func, "__name__", repr(func))

    async def handle(self, ctx: JobContext) -> Any:
        if inspect.iscoroutinefunction(self.func):
            return await self.func(ctx)
        result = await asyncio.to_thread(self.func, ctx)
        if inspect.isawaitable(result):
            return await result
        return result

    def __repr__(self) -> str:
        return f"FunctionHandler({self.name})"


def as_handler(implementation: Any) -> JobHandler:
    """Normalize a registration target into a JobHandler."""
    handle = getattr(implementation, "handle", None)
    if callable(handle):
        if inspect.iscoroutinefunction(handle):
            return implementation
        return FunctionHandler(handle)
    if callable(implementation):
        return FunctionHandler(implementation)
    raise TypeError(
        f"Job handler must be callable or expose handle(ctx), got {type(implementation).__name__}"
    )
