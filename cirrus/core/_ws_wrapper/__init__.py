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
Websocket wrapper classes, so the gateway doesn't depend on one socket library.
"""
import abc
from collections.abc import AsyncIterable
from typing import AsyncIterator, Optional, Union


class BasicWebsocketWrapper(AsyncIterable):
    """
    The base class for a basic websocket wrapper.

    Iterating over a wrapper yields every text (``str``) or binary (``bytes``) frame until the
    connection closes, after which :attr:`.close_code` and :attr:`.close_reason` are filled in.
    """

    def __init__(self, url: str) -> None:
        #: The gateway URL.
        self.url = url

        #: The close code of this websocket, once closed.
        self.close_code: Optional[int] = None

        #: The close reason of this websocket, once closed.
        self.close_reason: Optional[str] = None

    @classmethod
    @abc.abstractmethod
    async def open(cls, url: str, nursery) -> 'BasicWebsocketWrapper':
        """
        Opens this websocket.
        """

    @abc.abstractmethod
    async def close(self, code: int = 1000, reason: str = "Client closed connection") -> None:
        """
        Closes this websocket.

        :param code: The close code for this websocket.
        :param reason: The close reason for this websocket.
        """

    @abc.abstractmethod
    async def send_text(self, text: str) -> None:
        """
        Sends text down the websocket.
        """

    @abc.abstractmethod
    def __aiter__(self) -> AsyncIterator[Union[str, bytes]]:
        pass
