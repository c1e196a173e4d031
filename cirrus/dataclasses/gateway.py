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
Payloads used by the gateway connection itself.

.. currentmodule:: cirrus.dataclasses.gateway
"""
import json
from dataclasses import dataclass
from typing import Any, List, Optional

from cirrus.dataclasses.bases import Payload, list_of, mapped
from cirrus.dataclasses.guild import Guild
from cirrus.dataclasses.user import User
from cirrus.exc import GatewayDecodeError


@dataclass
class GatewayPacket(object):
    """
    A single frame sent over the gateway.
    """

    #: The opcode of this packet.
    op: int

    #: The data of this packet, interpreted according to the opcode and event name.
    data: Any = None

    #: The sequence number of this packet. Only sent with dispatches.
    sequence: Optional[int] = None

    #: The event name of this packet. Only sent with dispatches.
    event_name: Optional[str] = None

    @classmethod
    def from_dict(cls, payload: Any) -> 'GatewayPacket':
        """
        Decodes a packet from a JSON object with ``op``, ``d``, ``s`` and ``t`` keys.

        :raises GatewayDecodeError: If the object is not a valid packet.
        """
        if not isinstance(payload, dict):
            raise GatewayDecodeError("Gateway packet is not an object: {!r}".format(payload))

        op = payload.get("op")
        if not isinstance(op, int) or isinstance(op, bool):
            raise GatewayDecodeError("Gateway packet has no valid opcode: {!r}".format(payload))

        sequence = payload.get("s")
        if sequence is not None and not isinstance(sequence, int):
            raise GatewayDecodeError("Gateway packet has an invalid sequence: {!r}"
                                     .format(sequence))

        event_name = payload.get("t")
        if event_name is not None and not isinstance(event_name, str):
            raise GatewayDecodeError("Gateway packet has an invalid event name: {!r}"
                                     .format(event_name))

        return cls(op=op, data=payload.get("d"), sequence=sequence, event_name=event_name)

    @classmethod
    def from_json(cls, data: str) -> 'GatewayPacket':
        """
        Decodes a packet from a JSON string.
        """
        try:
            decoded = json.loads(data)
        except ValueError as e:
            raise GatewayDecodeError("Gateway frame is not valid JSON") from e

        return cls.from_dict(decoded)

    def to_json(self) -> str:
        """
        :return: The JSON string for sending this packet.
        """
        payload = {"op": int(self.op), "d": self.data}
        if self.sequence is not None:
            payload["s"] = self.sequence

        if self.event_name is not None:
            payload["t"] = self.event_name

        return json.dumps(payload)


@dataclass
class GatewayInfo(Payload):
    """
    Information about the location of Discord's gateway host.
    """

    #: The URL of the gateway.
    url: str

    #: The recommended number of shards. Only returned for bot accounts.
    shards: Optional[int] = None


@dataclass
class Hello(Payload):
    """
    The first packet sent after connecting.
    """

    #: The interval to send heartbeats at, in milliseconds.
    heartbeat_interval: int = mapped(int, nullable=False)

    #: The debug trace of the servers this connection went through.
    _trace: List[str] = mapped(list_of(str), nullable=False, default_factory=list)


@dataclass
class Ready(Payload):
    """
    Sent once a new session has been identified.
    """

    #: The session ID of the new session.
    session_id: str

    #: The gateway version that was accepted.
    v: Optional[int] = None

    #: The :class:`.User` that was identified.
    user: Optional[User] = mapped(User.from_dict, default=None)

    #: The guilds of this user. All of these are unavailable until a GUILD_CREATE for them
    #: arrives.
    guilds: List[Guild] = mapped(list_of(Guild.from_dict), default_factory=list)

    #: The URL to use when reconnecting to resume this session.
    resume_gateway_url: Optional[str] = None


@dataclass
class Resumed(Payload):
    """
    Sent once a session has been resumed, after every missed event has been replayed.
    """

    #: The debug trace of the servers this connection went through.
    _trace: List[str] = mapped(list_of(str), default_factory=list)
