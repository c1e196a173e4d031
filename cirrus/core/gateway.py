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

"""
Code that wraps the Discord gateway connection.

A :class:`.GatewayHandler` owns one shard's connection. Frames are read off the socket one at a
time in arrival order; heartbeats are sent by a separate task, and dispatches are handed to the
:class:`.EventManager`, which runs each handler in its own task.

.. currentmodule:: cirrus.core.gateway
"""
import enum
import json
import logging
import sys
import time
import zlib
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

import trio

from cirrus.core._ws_wrapper import BasicWebsocketWrapper
from cirrus.core._ws_wrapper.trio_wrapper import TrioWebsocketWrapper
from cirrus.core.event import DECODERS, EventContext, EventManager, EventType
from cirrus.dataclasses.gateway import GatewayPacket, Hello, Ready
from cirrus.exc import GatewayDecodeError


class GatewayOp(enum.IntEnum):
    """
    A mapping of possible gateway operation codes.
    """

    DISPATCH = 0
    HEARTBEAT = 1
    IDENTIFY = 2
    PRESENCE = 3
    VOICE_STATE = 4
    RESUME = 6
    RECONNECT = 7
    REQUEST_MEMBERS = 8
    INVALIDATE_SESSION = 9
    HELLO = 10
    HEARTBEAT_ACK = 11


class GatewayState(enum.Enum):
    """
    The states of a gateway connection.
    """

    #: No socket is open.
    DISCONNECTED = "disconnected"

    #: The socket is open, but HELLO hasn't arrived yet.
    AWAITING_HELLO = "awaiting_hello"

    #: An IDENTIFY has been sent, waiting for READY.
    IDENTIFYING = "identifying"

    #: A RESUME has been sent, waiting for RESUMED.
    RESUMING = "resuming"

    #: The session is live and receiving dispatches.
    CONNECTED = "connected"


class GatewayIntent(enum.IntFlag):
    """
    Enumeration of possible gateway intents.
    """

    GUILDS = 1
    GUILD_MEMBERS = 1 << 1
    GUILD_MODERATION = 1 << 2
    GUILD_EMOJIS = 1 << 3
    GUILD_INTEGRATIONS = 1 << 4
    GUILD_WEBHOOKS = 1 << 5
    GUILD_INVITES = 1 << 6
    GUILD_VOICE_STATES = 1 << 7
    GUILD_PRESENCES = 1 << 8
    GUILD_MESSAGES = 1 << 9
    GUILD_MESSAGE_REACTIONS = 1 << 10
    GUILD_MESSAGE_TYPING = 1 << 11
    DIRECT_MESSAGES = 1 << 12
    DIRECT_MESSAGE_REACTIONS = 1 << 13
    DIRECT_MESSAGE_TYPING = 1 << 14
    MESSAGE_CONTENT = 1 << 15


#: The intents used when none are given. These are all the intents that don't need to be enabled
#: in the developer portal.
DEFAULT_INTENTS = (
    GatewayIntent.GUILDS
    | GatewayIntent.GUILD_MODERATION
    | GatewayIntent.GUILD_EMOJIS
    | GatewayIntent.GUILD_INVITES
    | GatewayIntent.GUILD_MESSAGES
    | GatewayIntent.GUILD_MESSAGE_REACTIONS
    | GatewayIntent.GUILD_MESSAGE_TYPING
    | GatewayIntent.DIRECT_MESSAGES
    | GatewayIntent.DIRECT_MESSAGE_REACTIONS
)


@dataclass
class Session:
    """
    The resumable state of one identified gateway session.
    """

    #: The session ID issued in READY.
    session_id: str

    #: The sequence of the last dispatch received.
    sequence: int = 0

    #: If this session can no longer be resumed.
    invalid: bool = False

    #: The URL to reconnect to when resuming, if Discord sent one.
    resume_url: Optional[str] = None


@dataclass
class HeartbeatStats:
    """
    Represents the statistics for the gateway's heartbeat counters.
    """

    #: The number of heartbeats sent.
    heartbeats: int = 0

    #: The number of heartbeat acks received.
    heartbeat_acks: int = 0

    #: Internal time when the last heartbeat was sent.
    last_heartbeat_time: float = 0

    #: Internal time when the last heartbeat_ack was received.
    last_ack_time: float = 0

    @property
    def gw_time(self) -> float:
        """
        :return: The time between the most recent heartbeat and heartbeat_ack.
        """
        return self.last_ack_time - self.last_heartbeat_time

    @property
    def missed_acks(self) -> int:
        """
        :return: The number of heartbeats sent that haven't been acknowledged.
        """
        return self.heartbeats - self.heartbeat_acks


WebsocketFactory = Callable[[str, trio.Nursery], Awaitable[BasicWebsocketWrapper]]


class GatewayHandler(object):
    """
    Primary class that handles connecting to the Discord gateway.

    .. code-block:: python3

        gw = GatewayHandler(token, "wss://gateway.discord.gg", events=events)
        await gw.run()

    """

    GATEWAY_VERSION = 10
    ZLIB_FLUSH_SUFFIX = b"\x00\x00\xff\xff"

    #: The close code used when the session should be resumed after reconnecting. Closing with
    #: 1000 or 1001 makes Discord invalidate the session.
    RESUMABLE_CLOSE_CODE = 4000

    #: Close codes after which reconnecting cannot succeed.
    FATAL_CLOSE_CODES = frozenset({4004, 4010, 4011, 4012, 4013, 4014})

    def __init__(self, token: str, gateway_url: str, *,
                 shard_id: int = 0,
                 shard_count: int = 1,
                 events: EventManager = None,
                 large_threshold: int = 250,
                 intents: Optional[int] = None,
                 max_missed_acks: int = 2,
                 resume_on_invalid_session: bool = False,
                 websocket_factory: WebsocketFactory = None,
                 logger: logging.Logger = None):
        """
        :param token: The token to identify with.
        :param gateway_url: The gateway URL, as returned from ``GET /gateway``.
        :param shard_id: The shard ID of this connection.
        :param shard_count: The total number of shards.
        :param events: The :class:`.EventManager` to deliver events to.
        :param large_threshold: The member count above which guilds are sent without offline
            members.
        :param intents: The intents bitfield. Not sent if None.
        :param max_missed_acks: How many unacknowledged heartbeats mean the connection is dead.
        :param resume_on_invalid_session: If a resumable INVALID_SESSION should resume instead of
            re-identifying.
        :param websocket_factory: The async callable used to open the socket.
        :param logger: The logger to use.
        """
        self.token = token
        self.gateway_url = gateway_url
        self.shard_id = shard_id
        self.shard_count = shard_count
        self.large_threshold = large_threshold
        self.intents = intents
        self.max_missed_acks = max_missed_acks
        self.resume_on_invalid_session = resume_on_invalid_session

        #: The :class:`.EventManager` events are fired into.
        self.events = events or EventManager()

        self.websocket_factory = websocket_factory or TrioWebsocketWrapper.open
        self.logger = logger or logging.getLogger("cirrus.gateway:shard-{}".format(shard_id))

        #: The current :class:`.GatewayState`.
        self.state = GatewayState.DISCONNECTED

        #: The current :class:`.Session`, kept across reconnects.
        self.session: Optional[Session] = None

        self.heartbeat_stats = HeartbeatStats()

        #: The heartbeat interval from the last HELLO, in seconds.
        self.heartbeat_interval: Optional[float] = None

        self._ws: Optional[BasicWebsocketWrapper] = None
        self._nursery: Optional[trio.Nursery] = None

        # used in the reconnect loop. does not reflect the actual state of the websocket.
        self._is_open = True
        self._send_heartbeats = False
        self._run_cancel_scope: Optional[trio.CancelScope] = None
        self._heartbeat_cancel_scope: Optional[trio.CancelScope] = None

        # used for zlib-streaming
        self._databuffer = bytearray()
        self._decompressor = zlib.decompressobj()

    def __repr__(self) -> str:
        return "<GatewayHandler shard={}/{} state={}>".format(self.shard_id, self.shard_count,
                                                              self.state.name)

    @property
    def url(self) -> str:
        """
        :return: The full URL to connect to, including the query string.
        """
        base = self.gateway_url
        if self.session is not None and not self.session.invalid and self.session.resume_url:
            base = self.session.resume_url

        return "{}/?v={}&encoding=json&compress=zlib-stream".format(base.rstrip("/"),
                                                                    self.GATEWAY_VERSION)

    def _fire(self, event_type: EventType, *args) -> None:
        ctx = EventContext(self.shard_id, event_type, self)
        self.events.fire_event(event_type, *args, ctx=ctx)

    # outbound
    async def send(self, packet: Union[GatewayPacket, dict]) -> None:
        """
        Sends a packet down the websocket.
        """
        if self._ws is None:
            raise RuntimeError("The gateway is not connected")

        if isinstance(packet, GatewayPacket):
            dumped = packet.to_json()
        else:
            dumped = json.dumps(packet)

        await self._ws.send_text(dumped)

    async def _send_heartbeat(self) -> None:
        """
        Sends a heartbeat to Discord.
        """
        sequence = self.session.sequence if self.session is not None else None
        # a sequence of 0 means no dispatch has been seen yet
        sequence = sequence or None

        self.logger.debug("Sending heartbeat #%d with sequence %s",
                          self.heartbeat_stats.heartbeats, sequence)
        await self.send(GatewayPacket(GatewayOp.HEARTBEAT, sequence))
        self.heartbeat_stats.heartbeats += 1
        self.heartbeat_stats.last_heartbeat_time = time.monotonic()

    async def _send_identify(self) -> None:
        """
        Sends an IDENTIFY to Discord.
        """
        payload = {
            "token": self.token,
            "properties": {
                "os": sys.platform,
                "browser": "cirrus",
                "device": "cirrus",
            },
            "large_threshold": self.large_threshold,
            "shard": [self.shard_id, self.shard_count],
        }
        if self.intents is not None:
            payload["intents"] = int(self.intents)

        self.state = GatewayState.IDENTIFYING
        self.logger.info("Identifying as shard %d/%d", self.shard_id, self.shard_count)
        await self.send(GatewayPacket(GatewayOp.IDENTIFY, payload))

    async def _send_resume(self) -> None:
        """
        Sends the RESUME packet.
        """
        payload = {
            "token": self.token,
            "session_id": self.session.session_id,
            "seq": self.session.sequence,
        }

        self.state = GatewayState.RESUMING
        self.logger.info("Resuming session %s from sequence %d", self.session.session_id,
                         self.session.sequence)
        await self.send(GatewayPacket(GatewayOp.RESUME, payload))

    # heartbeating
    async def _heartbeat_loop(self, interval: float, *,
                              task_status=trio.TASK_STATUS_IGNORED) -> None:
        """
        Loops sending heartbeats.
        """
        with trio.CancelScope() as scope:
            self._heartbeat_cancel_scope = scope
            task_status.started()

            while self._send_heartbeats:
                if self.heartbeat_stats.missed_acks >= self.max_missed_acks:
                    self.logger.warning("Connection has zombied (%d heartbeats without an ack), "
                                        "reconnecting.", self.heartbeat_stats.missed_acks)
                    await self._close(code=self.RESUMABLE_CLOSE_CODE, reason="Zombied connection")
                    return

                await self._send_heartbeat()
                await trio.sleep(interval)

    def _stop_heartbeating(self) -> None:
        self._send_heartbeats = False
        if self._heartbeat_cancel_scope is not None:
            self._heartbeat_cancel_scope.cancel()
            self._heartbeat_cancel_scope = None

    # lifecycle
    async def _close(self, code: int = 1000, reason: str = "Websocket closing") -> None:
        """
        Closes the current websocket connection.
        """
        self._send_heartbeats = False
        if self._ws is not None:
            await self._ws.close(code=code, reason=reason)

        self._stop_heartbeating()

    async def connect(self, nursery: trio.Nursery) -> None:
        """
        Opens the websocket. This ONLY connects the actual socket; the handshake happens once HELLO
        arrives.

        :param nursery: The nursery that the heartbeat task and socket tasks run in.
        """
        self._nursery = nursery
        if self.events.task_manager is None:
            self.events.task_manager = nursery

        self._databuffer.clear()
        self._decompressor = zlib.decompressobj()

        url = self.url
        self.logger.debug("Opening websocket connection to %s", url)
        self._ws = await self.websocket_factory(url, nursery)
        await self.on_open()

    async def on_open(self) -> None:
        """
        Called when the socket has been opened.
        """
        self.state = GatewayState.AWAITING_HELLO
        self.heartbeat_stats = HeartbeatStats()
        self.logger.debug("Websocket open, waiting for HELLO")

    async def on_close(self, code: Optional[int], reason: Optional[str]) -> None:
        """
        Called when the socket has been closed. The session is kept so it can be resumed.
        """
        self._stop_heartbeating()
        self.state = GatewayState.DISCONNECTED

        if code in self.FATAL_CLOSE_CODES:
            self.logger.error("Gateway closed with code %s (%s), not reconnecting", code, reason)
            self._is_open = False
        else:
            self.logger.info("Gateway closed with code %s (%s)", code, reason)

    def _decode_frame(self, frame: Union[str, bytes]) -> Optional[GatewayPacket]:
        """
        Decodes one websocket frame, or returns None if there is no complete packet yet or the
        frame is malformed.
        """
        # annoying zlib compression...
        if isinstance(frame, (bytes, bytearray)):
            self._databuffer.extend(frame)
            if not frame.endswith(self.ZLIB_FLUSH_SUFFIX):
                return None

            try:
                data = self._decompressor.decompress(self._databuffer).decode("utf-8")
            except (zlib.error, UnicodeDecodeError):
                self.logger.warning("Dropping frame that could not be decompressed")
                return None
            finally:
                self._databuffer.clear()
        else:
            data = frame

        # empty payloads
        if not data:
            return None

        try:
            return GatewayPacket.from_json(data)
        except GatewayDecodeError as e:
            self.logger.warning("Dropping malformed gateway frame: %s", e)
            return None

    async def on_message(self, packet: GatewayPacket) -> None:
        """
        Handles one inbound packet.
        """
        # the grand old opcode switch
        if packet.op == GatewayOp.DISPATCH:
            await self._handle_dispatch(packet)

        elif packet.op == GatewayOp.HELLO:
            await self._handle_hello(packet)

        elif packet.op == GatewayOp.HEARTBEAT:
            await self._send_heartbeat()

        elif packet.op == GatewayOp.HEARTBEAT_ACK:
            self.heartbeat_stats.heartbeat_acks += 1
            self.heartbeat_stats.last_ack_time = time.monotonic()
            self.logger.debug("Received heartbeat ack #%d", self.heartbeat_stats.heartbeat_acks)
            self._fire(EventType.GATEWAY_HEARTBEAT_ACK)

        elif packet.op == GatewayOp.INVALIDATE_SESSION:
            await self._handle_invalid_session(packet)

        elif packet.op == GatewayOp.RECONNECT:
            self.logger.info("Discord requested a reconnect")
            await self._close(code=self.RESUMABLE_CLOSE_CODE, reason="Reconnect requested")
            self._fire(EventType.GATEWAY_RECONNECT)

        else:
            self.logger.warning("Ignoring unhandled opcode %s", packet.op)

    async def _handle_hello(self, packet: GatewayPacket) -> None:
        try:
            hello = Hello.from_dict(packet.data)
        except GatewayDecodeError as e:
            self.logger.warning("Dropping malformed HELLO: %s", e)
            return

        if hello.heartbeat_interval <= 0:
            self.logger.warning("Dropping HELLO with heartbeat interval %s",
                                hello.heartbeat_interval)
            return

        self.heartbeat_interval = hello.heartbeat_interval / 1000.0
        self.logger.info("Connected to Discord servers %s", ", ".join(hello._trace))
        self.logger.debug("Heartbeating every %s seconds.", self.heartbeat_interval)

        self._stop_heartbeating()
        self._send_heartbeats = True
        await self._nursery.start(self._heartbeat_loop, self.heartbeat_interval)

        if self.session is None or self.session.invalid:
            await self._send_identify()
        else:
            await self._send_resume()

        self._fire(EventType.GATEWAY_HELLO, hello._trace)

    async def _handle_invalid_session(self, packet: GatewayPacket) -> None:
        resumable = bool(packet.data)
        resume = (self.resume_on_invalid_session and resumable and self.session is not None
                  and not self.session.invalid)

        self.logger.warning("Session invalidated (resumable: %s)", resumable)
        if resume:
            await self._send_resume()
        else:
            if self.session is not None:
                self.session.invalid = True
            await self._send_identify()

        self._fire(EventType.GATEWAY_INVALID_SESSION, resumable)

    async def _handle_dispatch(self, packet: GatewayPacket) -> None:
        name = packet.event_name
        try:
            event_type = EventType(name)
        except ValueError:
            event_type = None

        if packet.sequence is not None and self.session is not None:
            self.session.sequence = packet.sequence

        decoded: Any = None
        if event_type is EventType.READY:
            try:
                decoded = Ready.from_dict(packet.data)
            except GatewayDecodeError as e:
                self.logger.warning("Dropping malformed READY: %s", e)
                return

            self.session = Session(decoded.session_id, sequence=packet.sequence or 0,
                                   resume_url=decoded.resume_gateway_url)
            self.logger.info("Session %s is ready", decoded.session_id)

        if event_type is None or not event_type.is_dispatch:
            self.logger.debug("Skipping unknown dispatch %s", name)
            return

        if decoded is None:
            try:
                decoded = DECODERS[event_type](packet.data)
            except GatewayDecodeError as e:
                self.logger.warning("Dropping malformed %s dispatch: %s", name, e)
                return

        if event_type in (EventType.READY, EventType.RESUMED):
            self.state = GatewayState.CONNECTED

        self._fire(event_type, decoded)

    async def _read_loop(self) -> None:
        """
        Reads frames off the websocket until it closes.
        """
        async for frame in self._ws:
            packet = self._decode_frame(frame)
            if packet is None:
                continue

            await self.on_message(packet)

    async def run(self) -> None:
        """
        Runs this gateway connection, reconnecting until it is killed or closed with a fatal code.
        """
        async with trio.open_nursery() as nursery:
            self._run_cancel_scope = nursery.cancel_scope
            self._is_open = True

            while self._is_open:
                await self.connect(nursery)
                await self._read_loop()
                await self.on_close(self._ws.close_code, self._ws.close_reason)

            nursery.cancel_scope.cancel()

    async def kill(self, code: int = 1000, reason: str = "Client shutting down") -> None:
        """
        Kills the gateway gracefully.
        """
        self._is_open = False
        self.logger.warning("Killing the gateway connection.")
        await self._close(code=code, reason=reason)

        if self._run_cancel_scope is not None:
            self._run_cancel_scope.cancel()
