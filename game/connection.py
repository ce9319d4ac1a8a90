"""
Persistent WebSocket channel to the game authority.

The manager owns one transport at a time. While it is down, outgoing frames
wait in an unbounded FIFO outbox and go out, oldest first, once a channel
opens. Lost channels are retried after a fixed delay, a bounded number of
times in a row; ``reconnect()`` starts a fresh round.

All state lives on the event loop. Callers only ``send()`` and read status.
"""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Deque, List, Optional, Protocol

import websockets
from websockets.exceptions import WebSocketException

from common.net import PING, Frame, is_keepalive_reply
from game import constants as C
from game.messages import ConnectedEvent, Envelope, MessageError, decode_envelope, encode_envelope
from game.timers import Scheduler, Timer

log = logging.getLogger(__name__)

# Failures that mean the channel is gone (ConnectionClosed is a WebSocketException).
TRANSPORT_ERRORS = (OSError, asyncio.TimeoutError, WebSocketException)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class Transport(Protocol):
    async def send(self, frame: str) -> None:
        ...

    async def close(self) -> None:
        ...

    def __aiter__(self) -> AsyncIterator[Frame]:
        ...


Opener = Callable[[str], Awaitable[Transport]]
Listener = Callable[[Envelope], None]
StateListener = Callable[[ConnectionState], None]


async def open_websocket(url: str) -> Transport:
    # Keepalive is done with the protocol's own "ping"/"pong" text frames.
    return await websockets.connect(url, ping_interval=None)


class ConnectionManager:
    def __init__(
        self,
        url: str,
        *,
        opener: Optional[Opener] = None,
        scheduler: Optional[Scheduler] = None,
        reconnect_delay: float = C.RECONNECT_DELAY_S,
        max_reconnect_attempts: int = C.MAX_RECONNECT_ATTEMPTS,
        keepalive_interval: float = C.KEEPALIVE_INTERVAL_S,
    ) -> None:
        self.url = url
        self._opener: Opener = opener or open_websocket
        self.scheduler = scheduler or Scheduler()
        self.reconnect_delay = reconnect_delay
        self.max_reconnect_attempts = max_reconnect_attempts
        self.keepalive_interval = keepalive_interval

        self.state = ConnectionState.DISCONNECTED
        self.reconnect_attempts = 0
        self._torn_down = False

        self._transport: Optional[Transport] = None
        self._reader: Optional[asyncio.Task] = None
        self._writer: Optional[asyncio.Task] = None
        self._outbox: Deque[str] = deque()
        self._outbox_ready = asyncio.Event()
        self._keepalive: Optional[Timer] = None
        self._retry: Optional[Timer] = None

        self._listeners: List[Listener] = []
        self._state_listeners: List[StateListener] = []

    # ---------- Status ----------
    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    @property
    def pending_count(self) -> int:
        """Frames accepted by send() and not yet written to a channel."""
        return sum(1 for f in self._outbox if f != PING)

    @property
    def torn_down(self) -> bool:
        return self._torn_down

    # ---------- Listeners ----------
    def add_listener(self, cb: Listener) -> Callable[[], None]:
        self._listeners.append(cb)
        return lambda: self.remove_listener(cb)

    def remove_listener(self, cb: Listener) -> None:
        if cb in self._listeners:
            self._listeners.remove(cb)

    def add_state_listener(self, cb: StateListener) -> Callable[[], None]:
        self._state_listeners.append(cb)
        return lambda: self.remove_state_listener(cb)

    def remove_state_listener(self, cb: StateListener) -> None:
        if cb in self._state_listeners:
            self._state_listeners.remove(cb)

    # ---------- Public API ----------
    def connect(self) -> None:
        if self._torn_down or self.state is not ConnectionState.DISCONNECTED:
            return
        self._set_state(ConnectionState.CONNECTING)
        log.info("connecting to %s", self.url)
        self._reader = asyncio.get_running_loop().create_task(self._run(), name="connection-reader")

    def reconnect(self) -> None:
        """Manual retry: resets the attempt counter."""
        if self._torn_down:
            return
        self.reconnect_attempts = 0
        if self._retry is not None:
            self._retry.cancel()
            self._retry = None
        self.connect()

    def send(self, envelope: Envelope) -> None:
        """Queue an envelope; it is written as soon as a channel is open."""
        self._outbox.append(encode_envelope(envelope))
        if self.state is ConnectionState.CONNECTED:
            self._outbox_ready.set()

    async def disconnect(self) -> None:
        # Flag first: a retry timer that has already fired checks it.
        self._torn_down = True
        if self._retry is not None:
            self._retry.cancel()
            self._retry = None
        self._stop_keepalive()

        transport, self._transport = self._transport, None
        current = asyncio.current_task()
        tasks = [t for t in (self._reader, self._writer) if t is not None and not t.done() and t is not current]
        for t in tasks:
            t.cancel()
        self._reader = self._writer = None
        if transport is not None:
            await self._close_transport(transport)
        await asyncio.gather(*tasks, return_exceptions=True)
        self._set_state(ConnectionState.DISCONNECTED)
        log.info("disconnected from %s", self.url)

    # ---------- Channel lifecycle ----------
    async def _run(self) -> None:
        try:
            transport = await self._opener(self.url)
        except TRANSPORT_ERRORS as exc:
            log.warning("connect to %s failed: %s", self.url, exc)
            self._handle_disconnect()
            return

        if self._torn_down:
            await self._close_transport(transport)
            return

        self._handle_open(transport)
        try:
            async for frame in transport:
                try:
                    self._handle_frame(frame)
                except Exception:
                    # A bad frame must not take the reader down with it.
                    log.exception("dropping frame that failed to process: %.200r", frame)
        except TRANSPORT_ERRORS as exc:
            log.warning("connection to %s lost: %s", self.url, exc)
        else:
            log.info("connection to %s closed", self.url)
        self._handle_disconnect()

    def _handle_open(self, transport: Transport) -> None:
        self._transport = transport
        self.reconnect_attempts = 0
        self._set_state(ConnectionState.CONNECTED)
        log.info("connected to %s", self.url)

        self._start_keepalive()
        # The writer drains the outbox head-first, so frames queued while
        # offline go out before anything sent from here on.
        if self._outbox:
            log.info("flushing %d queued frame(s)", len(self._outbox))
        self._outbox_ready.set()
        self._writer = asyncio.get_running_loop().create_task(
            self._write_loop(transport), name="connection-writer")

        self._dispatch(ConnectedEvent())

    def _handle_disconnect(self) -> None:
        self._stop_keepalive()
        if self._writer is not None:
            self._writer.cancel()
            self._writer = None
        self._transport = None
        self._reader = None
        # Unanswered probes are meaningless on the next channel.
        kept = [f for f in self._outbox if f != PING]
        self._outbox.clear()
        self._outbox.extend(kept)
        self._set_state(ConnectionState.DISCONNECTED)

        if self._torn_down:
            return
        self.reconnect_attempts += 1
        if self.reconnect_attempts < self.max_reconnect_attempts:
            log.info("retrying in %.1fs (%d/%d)", self.reconnect_delay,
                     self.reconnect_attempts, self.max_reconnect_attempts)
            self._retry = self.scheduler.call_later(self.reconnect_delay, self._retry_connect)
        else:
            log.error("giving up on %s after %d failed attempts; waiting for reconnect()",
                      self.url, self.reconnect_attempts)

    def _retry_connect(self) -> None:
        self._retry = None
        if self._torn_down:
            return
        self.connect()

    async def _write_loop(self, transport: Transport) -> None:
        outbox = self._outbox
        while True:
            if not outbox:
                self._outbox_ready.clear()
                await self._outbox_ready.wait()
                continue
            frame = outbox[0]
            try:
                await transport.send(frame)
            except TRANSPORT_ERRORS as exc:
                # Frame stays at the head of the outbox for the next channel.
                log.warning("send failed: %s", exc)
                await self._close_transport(transport)
                return
            if outbox and outbox[0] is frame:
                outbox.popleft()

    async def _close_transport(self, transport: Transport) -> None:
        try:
            await transport.close()
        except TRANSPORT_ERRORS as exc:
            log.debug("error while closing transport: %s", exc)

    # ---------- Inbound ----------
    def _handle_frame(self, frame: Frame) -> None:
        if is_keepalive_reply(frame):
            return
        try:
            envelope = decode_envelope(frame)
        except MessageError as exc:
            log.warning("dropping malformed frame: %s", exc)
            return
        self._dispatch(envelope)

    def _dispatch(self, envelope: Envelope) -> None:
        for cb in list(self._listeners):
            try:
                cb(envelope)
            except Exception:
                log.exception("listener %r failed on %s", cb, type(envelope).__name__)

    # ---------- Keepalive ----------
    def _start_keepalive(self) -> None:
        self._stop_keepalive()
        self._keepalive = self.scheduler.call_later(self.keepalive_interval, self._send_ping)

    def _stop_keepalive(self) -> None:
        if self._keepalive is not None:
            self._keepalive.cancel()
            self._keepalive = None

    def _send_ping(self) -> None:
        self._keepalive = None
        if self.state is not ConnectionState.CONNECTED:
            return
        self._outbox.append(PING)
        self._outbox_ready.set()
        self._start_keepalive()

    def _set_state(self, state: ConnectionState) -> None:
        if state is self.state:
            return
        self.state = state
        for cb in list(self._state_listeners):
            try:
                cb(state)
            except Exception:
                log.exception("state listener %r failed on %s", cb, state.value)
