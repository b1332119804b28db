"""Test doubles shared across test modules."""

import asyncio
import json


class FakeSocket:
    """Minimal stand-in for a websockets client connection."""

    def __init__(self):
        self.sent = []
        self.closed = False
        self.incoming = asyncio.Queue()

    async def send(self, text):
        self.sent.append(json.loads(text))

    async def close(self):
        self.closed = True
        self.incoming.put_nowait(None)

    def push(self, frame):
        self.incoming.put_nowait(json.dumps(frame))

    def push_raw(self, raw):
        self.incoming.put_nowait(raw)

    def server_close(self):
        self.incoming.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self.incoming.get()
        if item is None:
            raise StopAsyncIteration
        return item


async def settle(rounds: int = 10):
    """Let scheduled callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


async def wait_forever(delay):
    await asyncio.Event().wait()
