# This file is part of cirrus.
#
# cirrus is free software: you can redistribute it and/or modify
# it under the terms of the GNU Lesser General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# cirrus is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Lesser General Public License for more details.
#
# You should have received a copy of the GNU Lesser General Public License
# along with cirrus.  If not, see <http://www.gnu.org/licenses/>.

import json
import zlib

import pytest
import trio
import trio.testing

from cirrus.core.event import EventType
from cirrus.core.gateway import GatewayHandler, GatewayOp, GatewayState
from cirrus.dataclasses.gateway import GatewayPacket
from cirrus.dataclasses.message import Message

from conftest import dispatch, hello, message, ready

pytestmark = pytest.mark.trio


def packet(data: dict) -> GatewayPacket:
    return GatewayPacket.from_dict(data)


async def connected(gw: GatewayHandler, nursery, sockets, *, session_id="session-1"):
    """
    Connects a gateway and runs it through HELLO and READY.
    """
    await gw.connect(nursery)
    await gw.on_message(packet(hello()))
    await gw.on_message(packet(ready(session_id)))
    return sockets.current


async def test_hello_without_session_identifies(make_gateway, sockets, nursery):
    gw = make_gateway(shard_id=1, shard_count=4, intents=513, large_threshold=100)
    await gw.connect(nursery)
    assert gw.state is GatewayState.AWAITING_HELLO

    await gw.on_message(packet(hello(45000)))

    assert gw.state is GatewayState.IDENTIFYING
    assert gw.heartbeat_interval == 45.0
    assert sockets.current.sent_ops() == [GatewayOp.IDENTIFY]

    identify = sockets.current.last(GatewayOp.IDENTIFY)["d"]
    assert identify["token"] == "token"
    assert identify["shard"] == [1, 4]
    assert identify["intents"] == 513
    assert identify["large_threshold"] == 100
    assert identify["properties"]["browser"] == "cirrus"


async def test_identify_omits_unset_intents(make_gateway, sockets, nursery):
    gw = make_gateway()
    await gw.connect(nursery)
    await gw.on_message(packet(hello()))

    assert "intents" not in sockets.current.last(GatewayOp.IDENTIFY)["d"]


async def test_reconnect_resumes_stored_session(make_gateway, sockets, nursery):
    gw = make_gateway()
    assert gw.session is None

    await connected(gw, nursery, sockets, session_id="abc")
    assert gw.state is GatewayState.CONNECTED
    assert gw.session.session_id == "abc"
    assert not gw.session.invalid

    await gw.on_message(packet(message("hello", 5)))
    await gw.on_close(1006, "connection lost")
    assert gw.state is GatewayState.DISCONNECTED
    assert gw.session.session_id == "abc"

    await gw.connect(nursery)
    await gw.on_message(packet(hello()))

    assert gw.state is GatewayState.RESUMING
    assert sockets.current.sent_ops() == [GatewayOp.RESUME]
    assert sockets.current.last(GatewayOp.RESUME)["d"] == {
        "token": "token", "session_id": "abc", "seq": 5,
    }

    await gw.on_message(packet(dispatch("RESUMED", {"_trace": ["gateway-prd-1"]}, 6)))
    assert gw.state is GatewayState.CONNECTED
    assert gw.session.sequence == 6


async def test_resume_gateway_url_is_used_for_resuming(make_gateway, sockets, nursery):
    gw = make_gateway()
    await gw.connect(nursery)
    await gw.on_message(packet(hello()))
    await gw.on_message(packet(ready(resume_gateway_url="wss://resume.discord.gg")))

    assert gw.url.startswith("wss://resume.discord.gg/?v=10")

    gw.session.invalid = True
    assert gw.url.startswith("wss://gateway.discord.gg/?v=10")


async def test_sequence_follows_every_dispatch(make_gateway, sockets, nursery):
    gw = make_gateway()
    await connected(gw, nursery, sockets)
    assert gw.session.sequence == 1

    for sequence in (2, 3, 7, 8):
        await gw.on_message(packet(message("hi", sequence)))
        assert gw.session.sequence == sequence

    # non-dispatch frames don't touch the sequence
    await gw.on_message(packet({"op": 11, "d": None}))
    assert gw.session.sequence == 8


async def test_new_ready_replaces_session(make_gateway, sockets, nursery):
    gw = make_gateway()
    await connected(gw, nursery, sockets, session_id="first")
    await gw.on_message(packet(message("hi", 10)))

    await gw.on_message(packet(ready("second", sequence=1)))
    assert gw.session.session_id == "second"
    assert gw.session.sequence == 1


async def test_malformed_ready_still_updates_sequence(make_gateway, sockets, nursery, caplog):
    gw = make_gateway()
    await connected(gw, nursery, sockets, session_id="first")

    await gw.on_message(packet(dispatch("READY", {"v": 10}, 9)))

    assert gw.session.session_id == "first"
    assert gw.session.sequence == 9
    assert "Dropping malformed READY" in caplog.text


async def test_invalid_session_forces_identify(make_gateway, sockets, nursery):
    gw = make_gateway()
    ws = await connected(gw, nursery, sockets)

    await gw.on_message(packet({"op": 9, "d": True}))

    assert gw.session.invalid
    assert gw.state is GatewayState.IDENTIFYING
    assert ws.sent_ops()[-1] == GatewayOp.IDENTIFY

    # a reconnect afterwards identifies too
    await gw.on_close(1006, "gone")
    await gw.connect(nursery)
    await gw.on_message(packet(hello()))
    assert sockets.current.sent_ops() == [GatewayOp.IDENTIFY]


async def test_resumable_invalid_session_can_resume(make_gateway, sockets, nursery):
    gw = make_gateway(resume_on_invalid_session=True)
    ws = await connected(gw, nursery, sockets)

    await gw.on_message(packet({"op": 9, "d": True}))
    assert not gw.session.invalid
    assert ws.sent_ops()[-1] == GatewayOp.RESUME

    await gw.on_message(packet({"op": 9, "d": False}))
    assert gw.session.invalid
    assert ws.sent_ops()[-1] == GatewayOp.IDENTIFY


async def test_invalid_session_without_session(make_gateway, sockets, nursery):
    gw = make_gateway(resume_on_invalid_session=True)
    await gw.connect(nursery)
    await gw.on_message(packet(hello()))

    await gw.on_message(packet({"op": 9, "d": True}))
    assert gw.session is None
    assert sockets.current.sent_ops() == [GatewayOp.IDENTIFY, GatewayOp.IDENTIFY]


async def test_reconnect_request_closes_and_keeps_session(make_gateway, sockets, nursery, events):
    fired = []

    async def on_reconnect(ctx):
        fired.append(ctx.event_type)

    events.add_event(EventType.GATEWAY_RECONNECT, on_reconnect)
    gw = make_gateway()
    ws = await connected(gw, nursery, sockets)

    await gw.on_message(packet({"op": 7, "d": None}))
    await trio.testing.wait_all_tasks_blocked()

    assert ws.close_code == GatewayHandler.RESUMABLE_CLOSE_CODE
    assert gw.session.session_id == "session-1"
    assert fired == [EventType.GATEWAY_RECONNECT]


async def test_server_heartbeat_request_is_answered(make_gateway, sockets, nursery):
    gw = make_gateway()
    ws = await connected(gw, nursery, sockets)
    await gw.on_message(packet(message("hi", 4)))
    before = len(ws.sent)

    await gw.on_message(packet({"op": 1, "d": None}))

    assert len(ws.sent) == before + 1
    assert ws.sent[-1] == {"op": 1, "d": 4}


async def test_heartbeat_ack_is_recorded(make_gateway, sockets, nursery):
    gw = make_gateway()
    await connected(gw, nursery, sockets)

    await gw.on_message(packet({"op": 11, "d": None}))
    await gw.on_message(packet({"op": 11, "d": None}))

    assert gw.heartbeat_stats.heartbeat_acks == 2
    assert gw.heartbeat_stats.last_ack_time > 0


async def test_unknown_opcode_is_ignored(make_gateway, sockets, nursery, caplog):
    gw = make_gateway()
    ws = await connected(gw, nursery, sockets)
    sent = list(ws.sent)

    await gw.on_message(GatewayPacket(op=42, data={"what": "is this"}))

    assert gw.state is GatewayState.CONNECTED
    assert ws.sent == sent
    assert "unhandled opcode 42" in caplog.text


async def test_first_heartbeat_has_no_sequence(make_gateway, sockets, nursery):
    gw = make_gateway()
    await gw.connect(nursery)
    await gw.on_message(packet(hello()))
    await trio.testing.wait_all_tasks_blocked()

    heartbeats = [f for f in sockets.current.sent if f["op"] == GatewayOp.HEARTBEAT]
    assert heartbeats == [{"op": 1, "d": None}]


async def test_zombie_connection_reconnects_and_resumes(make_gateway, sockets, nursery,
                                                        autojump_clock):
    gw = make_gateway()
    nursery.start_soon(gw.run)
    await trio.testing.wait_all_tasks_blocked()

    first = sockets.current
    first.feed(hello(10000))
    first.feed(ready("zombie", sequence=3))

    # heartbeats at 0s and 10s go unanswered, so the 20s tick gives up
    await trio.sleep(25)

    assert first.close_code == GatewayHandler.RESUMABLE_CLOSE_CODE
    assert len([f for f in first.sent if f["op"] == GatewayOp.HEARTBEAT]) == 2
    assert len(sockets.sockets) == 2

    second = sockets.current
    second.feed(hello(10000))
    await trio.testing.wait_all_tasks_blocked()

    assert second.sent_ops() == [GatewayOp.RESUME]
    assert second.last(GatewayOp.RESUME)["d"]["seq"] == 3

    await gw.kill()


async def test_acked_heartbeats_keep_the_connection(make_gateway, sockets, nursery,
                                                    autojump_clock):
    gw = make_gateway()
    nursery.start_soon(gw.run)
    await trio.testing.wait_all_tasks_blocked()

    ws = sockets.current
    ws.feed(hello(10000))
    ws.feed(ready())

    for _ in range(5):
        await trio.testing.wait_all_tasks_blocked()
        ws.feed({"op": 11, "d": None})
        await trio.sleep(10)

    assert not ws.closed
    assert len(sockets.sockets) == 1
    assert gw.heartbeat_stats.heartbeat_acks == 5

    await gw.kill()


async def test_malformed_frames_are_dropped(make_gateway, sockets, nursery, events, caplog):
    received = []

    async def on_message(ctx, msg):
        received.append(msg)

    events.add_event(EventType.MESSAGE_CREATE, on_message)
    gw = make_gateway()
    nursery.start_soon(gw.run)
    await trio.testing.wait_all_tasks_blocked()

    ws = sockets.current
    ws.feed({"op": 10, "d": {"heartbeat_interval": None, "_trace": []}})
    ws.feed({"op": 10, "d": {"heartbeat_interval": 41250, "_trace": None}})
    ws.feed({"op": 10, "d": {"heartbeat_interval": 0}})
    ws.feed(hello())
    ws.feed(ready())
    ws.feed("{not json")
    ws.feed(json.dumps({"op": "zero"}))
    ws.feed(dispatch("MESSAGE_CREATE", {"id": "1", "content": "no channel"}, 2))
    ws.feed(dispatch("SOMETHING_NEW", {"id": "1"}, 3))
    ws.feed(message("still alive", 4))
    await trio.testing.wait_all_tasks_blocked()

    assert [m.content for m in received] == ["still alive"]
    assert gw.session.sequence == 4
    assert gw.state is GatewayState.CONNECTED
    assert "Dropping malformed gateway frame" in caplog.text
    assert "Dropping malformed HELLO" in caplog.text
    assert "Dropping HELLO with heartbeat interval 0" in caplog.text
    assert sockets.current is ws
    assert ws.sent_ops() == [GatewayOp.IDENTIFY]
    assert "Dropping malformed MESSAGE_CREATE dispatch" in caplog.text

    await gw.kill()


async def test_dispatch_does_not_block_the_read_loop(make_gateway, sockets, nursery, events):
    release = trio.Event()
    finished = []

    async def slow_handler(ctx, msg):
        await release.wait()
        finished.append(msg.content)

    events.add_event(EventType.MESSAGE_CREATE, slow_handler)
    gw = make_gateway()
    nursery.start_soon(gw.run)
    await trio.testing.wait_all_tasks_blocked()

    ws = sockets.current
    ws.feed(hello())
    ws.feed(ready())
    ws.feed(message("slow", 2))
    ws.feed({"op": 11, "d": None})
    ws.feed(message("slower", 3))
    await trio.testing.wait_all_tasks_blocked()

    assert gw.heartbeat_stats.heartbeat_acks == 1
    assert gw.session.sequence == 3
    assert finished == []

    release.set()
    await trio.testing.wait_all_tasks_blocked()
    assert sorted(finished) == ["slow", "slower"]

    await gw.kill()


async def test_handlers_get_decoded_payloads(make_gateway, sockets, nursery, events):
    received = []

    async def on_message(ctx, msg):
        received.append((ctx.shard_id, ctx.event_type, ctx.gateway, msg))

    events.add_event(EventType.MESSAGE_CREATE, on_message)
    gw = make_gateway(shard_id=2, shard_count=3)
    await connected(gw, nursery, sockets)
    await gw.on_message(packet(message("decoded", 2)))
    await trio.testing.wait_all_tasks_blocked()

    [(shard_id, event_type, gateway, msg)] = received
    assert shard_id == 2
    assert event_type is EventType.MESSAGE_CREATE
    assert gateway is gw
    assert isinstance(msg, Message)
    assert msg.content == "decoded"
    assert msg.author.username == "someone"


async def test_fatal_close_code_stops_reconnecting(make_gateway, sockets):
    gw = make_gateway()

    with trio.fail_after(5):
        async with trio.open_nursery() as inner:
            inner.start_soon(gw.run)
            await trio.testing.wait_all_tasks_blocked()
            sockets.current.feed(hello())
            await trio.testing.wait_all_tasks_blocked()
            sockets.current.disconnect(4004, "Authentication failed.")

    assert len(sockets.sockets) == 1
    assert gw.state is GatewayState.DISCONNECTED


async def test_kill_stops_run(make_gateway, sockets):
    gw = make_gateway()

    with trio.fail_after(5):
        async with trio.open_nursery() as inner:
            inner.start_soon(gw.run)
            await trio.testing.wait_all_tasks_blocked()
            sockets.current.feed(hello())
            await trio.testing.wait_all_tasks_blocked()
            await gw.kill()

    assert sockets.current.close_code == 1000
    assert len(sockets.sockets) == 1


async def test_zlib_stream_frames_are_buffered(make_gateway):
    gw = make_gateway()
    compressor = zlib.compressobj()
    data = compressor.compress(json.dumps(hello()).encode("utf-8"))
    data += compressor.flush(zlib.Z_SYNC_FLUSH)
    assert data.endswith(GatewayHandler.ZLIB_FLUSH_SUFFIX)

    assert gw._decode_frame(data[:5]) is None
    decoded = gw._decode_frame(data[5:])

    assert decoded.op == GatewayOp.HELLO
    assert decoded.data["heartbeat_interval"] == 41250


async def test_empty_frames_are_skipped(make_gateway):
    gw = make_gateway()
    assert gw._decode_frame("") is None
