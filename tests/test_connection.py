import asyncio
import json

from game.connection import ConnectionManager, ConnectionState
from game.messages import ConnectedEvent, LeaveMessage, RecoverMessage, ReloadMessage, StatsMessage

URL = "ws://authority.test"


def _manager(opener, scheduler, **kw):
    return ConnectionManager(URL, opener=opener, scheduler=scheduler, **kw)


def _types(transport):
    return [f if f == "ping" else json.loads(f)["type"] for f in transport.sent]


def test_queued_frames_flush_in_order_before_new_ones(scheduler, opener, wait):
    async def main():
        conn = _manager(opener, scheduler)
        conn.send(ReloadMessage(player_id="me"))
        conn.send(RecoverMessage(player_id="me"))
        assert conn.pending_count == 2

        def on_message(env):
            if isinstance(env, ConnectedEvent):
                conn.send(LeaveMessage(player_id="me"))
        conn.add_listener(on_message)

        conn.connect()
        await wait()
        assert conn.state is ConnectionState.CONNECTED
        assert _types(opener.last) == ["reload", "recover", "leave"]
        assert conn.pending_count == 0
        await conn.disconnect()

    asyncio.run(main())


def test_reconnect_gives_up_after_max_consecutive_failures(scheduler, failing_opener, wait):
    opener = failing_opener(100)

    async def main():
        conn = _manager(opener, scheduler, reconnect_delay=3.0, max_reconnect_attempts=5)
        conn.connect()
        await wait()
        for _ in range(4):
            scheduler.advance(3.0)
            await wait()
        assert opener.calls == 5
        assert conn.reconnect_attempts == 5
        assert scheduler.pending == 0

        scheduler.advance(60.0)
        await wait()
        assert opener.calls == 5
        assert conn.state is ConnectionState.DISCONNECTED

        conn.reconnect()
        await wait()
        assert opener.calls == 6
        assert conn.reconnect_attempts == 1
        await conn.disconnect()

    asyncio.run(main())


def test_successful_open_resets_attempts(scheduler, failing_opener, wait):
    opener = failing_opener(2)

    async def main():
        conn = _manager(opener, scheduler)
        conn.connect()
        await wait()
        scheduler.advance(3.0)
        await wait()
        assert conn.reconnect_attempts == 2
        scheduler.advance(3.0)
        await wait()
        assert conn.is_connected
        assert conn.reconnect_attempts == 0
        await conn.disconnect()

    asyncio.run(main())


def test_pong_swallowed_and_malformed_frames_dropped(scheduler, opener, wait):
    async def main():
        conn = _manager(opener, scheduler)
        seen = []
        conn.add_listener(seen.append)
        conn.connect()
        await wait()
        opener.last.feed("pong")
        opener.last.feed("{not json")
        opener.last.feed('{"type": "stats"}')
        opener.last.feed('{"type": "stats", "playerId": "me", "data": {"currentAmmo": 9}}')
        await wait()
        assert [type(e) for e in seen] == [ConnectedEvent, StatsMessage]
        assert seen[1].ammo == 9
        assert conn.is_connected
        await conn.disconnect()

    asyncio.run(main())


def test_failing_listener_is_isolated(scheduler, opener, wait):
    async def main():
        conn = _manager(opener, scheduler)
        seen = []

        def broken(env):
            raise RuntimeError("listener bug")

        conn.add_listener(broken)
        conn.add_listener(seen.append)
        conn.connect()
        await wait()
        opener.last.feed('{"type": "leave", "playerId": "p2"}')
        await wait()
        assert len(seen) == 2
        assert conn.is_connected
        await conn.disconnect()

    asyncio.run(main())


def test_lost_channel_retries_and_keeps_outbox(scheduler, opener, wait):
    async def main():
        conn = _manager(opener, scheduler)
        states = []
        conn.add_state_listener(states.append)
        conn.connect()
        await wait()
        first = opener.last
        first.drop()
        await wait()
        assert conn.state is ConnectionState.DISCONNECTED
        assert conn.reconnect_attempts == 1

        conn.send(ReloadMessage(player_id="me"))
        assert conn.pending_count == 1
        scheduler.advance(3.0)
        await wait()
        assert opener.last is not first
        assert _types(opener.last) == ["reload"]
        assert states == [
            ConnectionState.CONNECTING, ConnectionState.CONNECTED, ConnectionState.DISCONNECTED,
            ConnectionState.CONNECTING, ConnectionState.CONNECTED,
        ]
        await conn.disconnect()

    asyncio.run(main())


def test_failed_send_keeps_frame_for_next_channel(scheduler, opener, wait):
    async def main():
        conn = _manager(opener, scheduler)
        conn.connect()
        await wait()
        opener.last.fail_send = True
        conn.send(ReloadMessage(player_id="me"))
        await wait()
        assert conn.state is ConnectionState.DISCONNECTED
        assert conn.pending_count == 1

        scheduler.advance(3.0)
        await wait()
        assert _types(opener.last) == ["reload"]
        await conn.disconnect()

    asyncio.run(main())


def test_disconnect_cancels_scheduled_retry(scheduler, failing_opener, wait):
    opener = failing_opener(1)

    async def main():
        conn = _manager(opener, scheduler)
        conn.connect()
        await wait()
        assert scheduler.pending == 1

        await conn.disconnect()
        assert conn.torn_down
        assert scheduler.pending == 0
        scheduler.advance(30.0)
        conn.reconnect()
        conn.connect()
        await wait()
        assert opener.calls == 1
        assert conn.state is ConnectionState.DISCONNECTED

    asyncio.run(main())


def test_keepalive_pings_while_connected(scheduler, opener, wait):
    async def main():
        conn = _manager(opener, scheduler, keepalive_interval=30.0)
        conn.connect()
        await wait()
        scheduler.advance(30.0)
        await wait()
        scheduler.advance(30.0)
        await wait()
        assert opener.last.sent == ["ping", "ping"]
        # Probes are not counted as pending user frames.
        assert conn.pending_count == 0

        await conn.disconnect()
        assert opener.last.closed
        scheduler.advance(30.0)
        assert opener.last.sent == ["ping", "ping"]

    asyncio.run(main())


def test_out_of_range_number_does_not_stop_the_reader(scheduler, opener, wait):
    async def main():
        conn = _manager(opener, scheduler)
        seen = []
        conn.add_listener(seen.append)
        conn.connect()
        await wait()
        opener.last.feed('{"type":"stats","playerId":"me","data":{"currentAmmo":1e999}}')
        opener.last.feed('{"type":"leave","playerId":"p2"}')
        await wait()
        assert [type(e) for e in seen] == [ConnectedEvent, LeaveMessage]
        assert conn.is_connected
        assert not conn._reader.done()
        await conn.disconnect()

    asyncio.run(main())
