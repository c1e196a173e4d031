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
A trio websocket wrapper.
"""
from typing import AsyncIterator, Union

import trio
from trio_websocket import ConnectionClosed, WebSocketConnection, connect_websocket_url

from cirrus import USER_AGENT
from cirrus.core._ws_wrapper import BasicWebsocketWrapper


class TrioWebsocketWrapper(BasicWebsocketWrapper):
    """
    Implements a websocket handler for Trio, using trio-websocket.
    """

    def __init__(self, url: str, nursery: trio.Nursery):
        """
        :param url: The gateway URL.
        :param nursery: The nursery the connection's background tasks run in.
        """
        super().__init__(url)

        self.nursery = nursery
        self._ws: WebSocketConnection = None

    @classmethod
    async def open(cls, url: str, nursery: trio.Nursery) -> 'TrioWebsocketWrapper':
        """
        Opens a new websocket connection.

        :param url: The URL to use.
        :param nursery: The nursery to use.
        """
        obb = cls(url, nursery)
        obb._ws = await connect_websocket_url(
            nursery, url, extra_headers=[(b"User-Agent", USER_AGENT.encode("utf-8"))]
        )
        return obb

    def _set_closed(self, reason) -> None:
        if reason is None:
            return

        self.close_code = reason.code
        self.close_reason = reason.reason

    async def close(self, code: int = 1000, reason: str = "Client closed connection") -> None:
        """
        Closes the websocket.

        :param code: The close code to use.
        :param reason: The close reason to use.
        """
        # the closing handshake can hang on a dead connection
        with trio.move_on_after(5):
            await self._ws.aclose(code=code, reason=reason)

        if self.close_code is None:
            self.close_code, self.close_reason = code, reason

    async def send_text(self, text: str) -> None:
        """
        Sends text down the websocket.

        :param text: The text to send.
        """
        await self._ws.send_message(text)

    async def __aiter__(self) -> AsyncIterator[Union[str, bytes]]:
        while True:
            try:
                message = await self._ws.get_message()
            except ConnectionClosed as e:
                self._set_closed(e.reason)
                return

            yield message
