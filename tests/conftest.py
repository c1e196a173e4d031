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
In-process fakes for the HTTP session and the gateway websocket.
"""
import json
import math
import typing

import pytest
import trio

from cirrus.core._ws_wrapper import BasicWebsocketWrapper
from cirrus.core.event import EventManager
from cirrus.core.gateway import GatewayHandler, GatewayOp
from cirrus.core.httpclient import HTTPClient
from cirrus.core.ratelimit import RateLimiter


class FakeResponse(object):
    def __init__(self, status_code: int = 200, body: typing.Any = None,
                 headers: typing.Mapping[str, str] = None):
        self.status_code = status_code
        self._body = body
        self.headers = dict(headers or {})
        if body is not None:
            self.headers.setdefault("Content-Type", "application/json")

    def json(self):
        return self._body

    @property
    def content(self) -> bytes:
        return json.dumps(self._body).encode("utf-8")


class FakeSession(object):
    """
    Records every request and answers with queued responses, or 200 with an empty body once the
    queue runs out.
    """

    def __init__(self, *responses: FakeResponse):
        self.responses = list(responses)
        self.requests = []

    def queue(self, *responses: FakeResponse) -> None:
        self.responses.extend(responses)

    async def request(self, method: str, path: str, headers: dict, json: typing.Any = None):
        await trio.sleep(0)
        self.requests.append({
            "method": method, "path": path, "headers": headers, "json": json,
            "time": trio.current_time(),
        })

        if self.responses:
            return self.responses.pop(0)

        return FakeResponse(200, {})


class FakeWebsocket(BasicWebsocketWrapper):
    """
    A websocket whose inbound frames are fed by the test, and whose outbound frames are recorded.
    """

    def __init__(self, url: str):
        super().__init__(url)
        self.sent = []
        self._send, self._receive = trio.open_memory_channel(math.inf)

    @classmethod
    async def open(cls, url: str, nursery) -> 'FakeWebsocket':
        return cls(url)

    def feed(self, frame: typing.Union[str, bytes, dict]) -> None:
        if isinstance(frame, dict):
            frame = json.dumps(frame)

        self._send.send_nowait(frame)

    async def close(self, code: int = 1000, reason: str = "Client closed connection") -> None:
        if self.close_code is None:
            self.close_code, self.close_reason = code, reason

        await self._send.aclose()

    def disconnect(self, code: int, reason: str = "") -> None:
        """
        Closes the socket from the server's side.
        """
        self.close_code, self.close_reason = code, reason
        self._send.close()

    async def send_text(self, text: str) -> None:
        self.sent.append(json.loads(text))

    async def __aiter__(self):
        async for frame in self._receive:
            yield frame

    @property
    def closed(self) -> bool:
        return self.close_code is not None

    def sent_ops(self, *, heartbeats: bool = False) -> typing.List[int]:
        return [f["op"] for f in self.sent if heartbeats or f["op"] != GatewayOp.HEARTBEAT]

    def last(self, op: int) -> dict:
        return [f for f in self.sent if f["op"] == op][-1]


class FakeSocketFactory(object):
    def __init__(self):
        self.sockets: typing.List[FakeWebsocket] = []

    async def __call__(self, url: str, nursery) -> FakeWebsocket:
        ws = await FakeWebsocket.open(url, nursery)
        self.sockets.append(ws)
        return ws

    @property
    def current(self) -> FakeWebsocket:
        return self.sockets[-1]


def hello(interval: int = 41250) -> dict:
    return {"op": 10, "d": {"heartbeat_interval": interval, "_trace": ["gateway-prd-1"]}}


def dispatch(name: str, data: typing.Any, sequence: int) -> dict:
    return {"op": 0, "t": name, "s": sequence, "d": data}


def ready(session_id: str = "session-1", sequence: int = 1, **extra) -> dict:
    data = {
        "v": 10,
        "session_id": session_id,
        "user": {"id": "80351110224678912", "username": "cirrus-test", "bot": True},
        "guilds": [{"id": "41771983423143937", "unavailable": True}],
    }
    data.update(extra)
    return dispatch("READY", data, sequence)


def message(content: str, sequence: int, message_id: str = "175928847299117063") -> dict:
    data = {
        "id": message_id,
        "channel_id": "290926798999357250",
        "content": content,
        "author": {"id": "80351110224678912", "username": "someone"},
        "timestamp": "2017-07-11T17:27:07.299000+00:00",
    }
    return dispatch("MESSAGE_CREATE", data, sequence)


@pytest.fixture
def sockets() -> FakeSocketFactory:
    return FakeSocketFactory()


@pytest.fixture
def events() -> EventManager:
    return EventManager()


@pytest.fixture
def make_gateway(sockets, events):
    def _make(**kwargs) -> GatewayHandler:
        kwargs.setdefault("events", events)
        return GatewayHandler("token", "wss://gateway.discord.gg",
                              websocket_factory=sockets, **kwargs)

    return _make


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def http(session) -> HTTPClient:
    return HTTPClient("token", session=session, ratelimiter=RateLimiter(clock=trio.current_time))
