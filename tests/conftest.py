import asyncio

import pytest

from game.timers import Scheduler, Timer


class ManualScheduler(Scheduler):
    """Timers fire only when the test calls advance()."""

    def __init__(self):
        super().__init__()
        self.now = 0.0
        self._queue = []  # (due, seq, timer)
        self._seq = 0

    def call_later(self, delay, callback, *args):
        timer = Timer(self, delay, callback, args)
        self._seq += 1
        self._queue.append((self.now + max(0.0, delay), self._seq, timer))
        self._pending.add(timer)
        return timer

    def advance(self, seconds):
        end = self.now + seconds
        while True:
            due = [e for e in self._queue if e[2].active and e[0] <= end]
            if not due:
                break
            entry = min(due, key=lambda e: (e[0], e[1]))
            self._queue.remove(entry)
            self.now = entry[0]
            entry[2]._fire()
        self.now = end
        self._queue = [e for e in self._queue if e[2].active]


class FakeTransport:
    def __init__(self):
        self.sent = []
        self.closed = False
        self.fail_send = False
        self._incoming = asyncio.Queue()

    async def send(self, frame):
        if self.fail_send:
            raise OSError("broken pipe")
        self.sent.append(frame)

    async def close(self):
        if not self.closed:
            self.closed = True
            self._incoming.put_nowait(None)

    def feed(self, frame):
        self._incoming.put_nowait(frame)

    def drop(self, exc=None):
        """Simulate the peer going away."""
        self._incoming.put_nowait(exc or ConnectionResetError("reset by peer"))

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._incoming.get()
        if item is None:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item


class FakeOpener:
    def __init__(self, failures=0):
        self.failures = failures
        self.calls = 0
        self.transports = []

    async def __call__(self, url):
        self.calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionRefusedError(f"{url} refused")
        transport = FakeTransport()
        self.transports.append(transport)
        return transport

    @property
    def last(self):
        return self.transports[-1]


async def settle(rounds=10):
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def opener():
    return FakeOpener()


@pytest.fixture
def wait():
    return settle


@pytest.fixture
def failing_opener():
    """Factory: an opener whose first ``n`` attempts are refused."""
    return lambda n: FakeOpener(failures=n)
