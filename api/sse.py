# api/sse.py
import asyncio
import logging
from typing import Coroutine, Optional, Set

from fastapi.responses import StreamingResponse

from llm.stream import normalize_newlines

logger = logging.getLogger(__name__)

_EOF = object()

# producer tasks are only referenced by their response; keep them alive
_running: Set[asyncio.Task] = set()


def format_event(data: str, event: Optional[str] = None) -> str:
    """Frame ``data`` as one server-sent event, one ``data:`` line per line."""
    lines = []
    if event:
        lines.append(f"event: {event}")
    for line in normalize_newlines(data).split("\n"):
        lines.append(f"data: {line}")
    return "\n".join(lines) + "\n\n"


class SSEResponse:
    """Push-style adapter from text fragments to a ``text/event-stream`` body.

    A producer coroutine calls :meth:`send` for every fragment and
    :meth:`close` when it is done. ``send`` hands over one frame at a time
    and returns ``True`` only once the response body has pulled it, so a
    slow client holds the producer back. Sends after close, or after the
    client went away, are dropped and report ``False``.
    """

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        self._closed = False
        self._sending = False
        self._pending: Optional[asyncio.Future] = None

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, fragment: str) -> bool:
        return await self._push(format_event(fragment))

    async def send_error(self, message: str) -> bool:
        return await self._push(format_event(message, event="error"))

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait((_EOF, None))

    def stream(self, producer: Coroutine) -> StreamingResponse:
        return StreamingResponse(
            self._body(producer),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    async def _push(self, frame: str) -> bool:
        if self._closed:
            return False
        pulled = asyncio.get_running_loop().create_future()
        self._sending = True
        self._pending = pulled
        try:
            await self._queue.put((frame, pulled))
            return await pulled
        finally:
            self._sending = False
            self._pending = None

    def _on_producer_done(self, task: asyncio.Task) -> None:
        _running.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Stream producer crashed", exc_info=task.exception())
        if not self._closed:
            self._closed = True
            while not self._queue.empty():
                self._queue.get_nowait()   # frame of an interrupted send
            self._queue.put_nowait((_EOF, None))

    async def _body(self, producer: Coroutine):
        task = asyncio.create_task(producer)
        _running.add(task)
        task.add_done_callback(self._on_producer_done)
        try:
            while True:
                frame, pulled = await self._queue.get()
                if frame is _EOF:
                    break
                if pulled.done():
                    continue
                pulled.set_result(True)
                yield frame
        finally:
            if not self._closed:
                self._closed = True
                if self._pending is not None and not self._pending.done():
                    self._pending.set_result(False)
                if self._sending:
                    # the producer sees the closed flag when its send returns
                    logger.info("Client disconnected during send, stopping completion stream")
                else:
                    logger.info("Client disconnected, cancelling completion stream")
                    task.cancel()
