"""Test doubles and helpers shared by the test modules."""

import asyncio


class FakeProvider:
    """Yields ``fragments`` in order.

    When ``fail_after`` is set the provider raises after emitting that many
    fragments, like a connection dropping mid-stream.
    """

    def __init__(self, fragments=(), fail_after=None):
        self.fragments = list(fragments)
        self.fail_after = fail_after
        self.calls = []
        self.closed = False

    async def complete(self, messages):
        self.calls.append([(m.role, m.content) for m in messages])
        try:
            for i, fragment in enumerate(self.fragments):
                if self.fail_after is not None and i >= self.fail_after:
                    break
                await asyncio.sleep(0)  # yield control to the event loop
                yield fragment
            if self.fail_after is not None:
                raise RuntimeError("connection reset by provider")
        finally:
            self.closed = True


class RecordingResponder:
    """Stands in for :class:`api.sse.SSEResponse` in orchestrator tests.

    ``accept`` limits how many fragments are taken before the responder
    behaves like a disconnected client.
    """

    def __init__(self, store=None, chat_id=None, accept=None):
        self.sent = []
        self.errors = []
        self.closed = False
        self.accept = accept
        self._store = store
        self._chat_id = chat_id
        self.messages_at_close = None

    async def send(self, fragment):
        if self.closed or (self.accept is not None and len(self.sent) >= self.accept):
            return False
        self.sent.append(fragment)
        return True

    async def send_error(self, message):
        self.errors.append(message)
        return not self.closed

    async def close(self):
        if self._store is not None:
            self.messages_at_close = len(self._store.list_messages(self._chat_id))
        self.closed = True


def parse_sse(text: str):
    """Return ``(event, data)`` pairs from an event-stream body."""
    events = []
    for block in text.split("\n\n"):
        if not block:
            continue
        event, data = "message", []
        for line in block.split("\n"):
            if line.startswith("event: "):
                event = line[len("event: "):]
            elif line.startswith("data: "):
                data.append(line[len("data: "):])
        events.append((event, "\n".join(data)))
    return events


