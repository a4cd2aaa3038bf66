from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, Union

from ekostudio.eventlog.writer import EventLogWriter

MessageConsumer = Callable[[Any], Union[None, Awaitable[None]]]


class RecordingCallback:
    """
    Wraps an `on_message` consumer: records each event, then forwards it unchanged.

    Events reach the wrapped consumer in the order they arrive. A write failure is
    raised before the event is forwarded.
    """

    def __init__(self, consumer: MessageConsumer, writer: EventLogWriter) -> None:
        self._consumer = consumer
        self.writer = writer

    async def on_message(self, message: Any) -> None:
        await self.writer.append(message)
        res = self._consumer(message)
        if inspect.isawaitable(res):
            await res

    __call__ = on_message
