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
The main client class.

This contains a definition for :class:`.Client` which is used to interface primarily with Discord.

.. currentmodule:: cirrus.core.client
"""
import functools
import logging
import typing
from types import MappingProxyType

import trio

from cirrus.core.event import EventManager, EventType, event as ev_dec, scan_events
from cirrus.core.gateway import DEFAULT_INTENTS, GatewayHandler
from cirrus.core.httpclient import HTTPClient
from cirrus.dataclasses.channel import Channel
from cirrus.dataclasses.message import Message
from cirrus.dataclasses.user import User


class Client(object):
    """
    The main client class. This is used to interact with Discord.

    To start, you can create an instance of the client by passing it the token you want to use:

    .. code-block:: python3

        cl = Client("my.token.string")

    Registering events can be done with the :meth:`.Client.event` decorator, or alternatively
    manual usage of the :class:`.EventManager` on :attr:`.Client.events`.

    .. code-block:: python3

        @cl.event(EventType.READY)
        async def loaded(ctx: EventContext, ready: Ready):
            print("Bot logged in.")

    """

    def __init__(self, token: str, *,
                 token_type: str = "Bot",
                 shard_count: int = 1,
                 intents: typing.Optional[int] = DEFAULT_INTENTS,
                 http: HTTPClient = None,
                 gateway_kwargs: typing.Mapping[str, typing.Any] = None,
                 logger: logging.Logger = None):
        """
        :param token: The current token for this bot.
        :param token_type: The type of the token, used in the Authorization header.
        :param shard_count: The number of shards to run when not autosharding.
        :param intents: The gateway intents to identify with.
        :param http: The :class:`.HTTPClient` to use. One is made from the token if not given.
        :param gateway_kwargs: Extra keyword arguments passed to every :class:`.GatewayHandler`.
            These take precedence over ``events`` and ``intents``.
        :param logger: The logger to use.
        """
        #: The mapping of `shard_id -> gateway` objects.
        self._gateways: typing.MutableMapping[int, GatewayHandler] = {}

        #: The number of shards this client has.
        self.shard_count = shard_count

        #: The token for the bot.
        self._token = token

        self.intents = intents
        self.gateway_kwargs = dict(gateway_kwargs or {})
        self.logger = logger or logging.getLogger("cirrus.client")

        #: The current :class:`.EventManager` for this bot.
        self.events = EventManager()

        #: The :class:`.HTTPClient` used for this bot.
        self.http = http or HTTPClient(token, token_type=token_type)

        #: The cached gateway URL.
        self._gw_url: typing.Optional[str] = None

        self._cancel_scope: typing.Optional[trio.CancelScope] = None

    @property
    def gateways(self) -> typing.Mapping[int, GatewayHandler]:
        """
        :return: A read-only view of the current gateways for this client.
        """
        return MappingProxyType(self._gateways)

    async def get_gateway_url(self) -> str:
        """
        :return: The gateway URL for this bot.
        """
        if self._gw_url:
            return self._gw_url

        info = await self.http.get_gateway()
        self._gw_url = info.url
        return self._gw_url

    async def get_shard_count(self) -> int:
        """
        :return: The shard count recommended for this bot.
        """
        info = await self.http.get_gateway_bot()
        self._gw_url = info.url

        return info.shards or 1

    def event(self, event_type: EventType):
        """
        A convenience decorator to mark a function as an event.

        .. code-block:: python3

            @bot.event(EventType.MESSAGE_CREATE)
            async def something(ctx, message: Message):
                pass

        :param event_type: The :class:`.EventType` to handle.
        """

        def _inner(func):
            f = ev_dec(event_type)(func)
            self.events.add_event(event_type, f)
            return func

        return _inner

    def load_events(self, obb) -> None:
        """
        Registers every method of an object that is marked with :func:`.event`.
        """
        for _, handler in scan_events(obb):
            for event_type in handler.events:
                self.events.add_event(event_type, handler)

    async def wait_for(self, *args, **kwargs) -> typing.Any:
        """
        Shortcut for :meth:`.EventManager.wait_for`.
        """
        return await self.events.wait_for(*args, **kwargs)

    # REST shortcuts
    async def get_user(self, user_id: int) -> User:
        """
        Gets a user by ID.

        :param user_id: The ID of the user to get.
        :return: A new :class:`.User` object.
        """
        return User.from_dict(await self.http.get_user(user_id))

    async def get_channel(self, channel_id: int) -> Channel:
        """
        Gets a channel by ID.
        """
        return Channel.from_dict(await self.http.get_channel(channel_id))

    async def send_message(self, channel_id: int, content: str = None, **kwargs) -> Message:
        """
        Sends a message to a channel.

        :param channel_id: The ID of the channel to send to.
        :param content: The content of the message.
        :return: The :class:`.Message` that was sent.
        """
        return Message.from_dict(await self.http.send_message(channel_id, content, **kwargs))

    # running
    def make_gateway(self, shard_id: int, shard_count: int) -> GatewayHandler:
        """
        Creates the :class:`.GatewayHandler` for one shard.
        """
        kwargs = {"events": self.events, "intents": self.intents, **self.gateway_kwargs}
        return GatewayHandler(self._token, self._gw_url,
                              shard_id=shard_id, shard_count=shard_count, **kwargs)

    async def handle_shard(self, shard_id: int, shard_count: int) -> None:
        """
        Handles a shard.

        :param shard_id: The shard ID to boot and handle.
        :param shard_count: The shard count to send in the identify packet.
        """
        gw = self.make_gateway(shard_id, shard_count)
        self._gateways[shard_id] = gw

        try:
            await gw.run()
        finally:
            self._gateways.pop(shard_id, None)

    async def start(self, shard_count: int) -> None:
        """
        Starts the bot.

        :param shard_count: The number of shards to boot.
        """
        if self._gw_url is None:
            await self.get_gateway_url()

        async with trio.open_nursery() as nursery:
            self._cancel_scope = nursery.cancel_scope
            self.events.task_manager = nursery

            for shard_id in range(0, shard_count):
                self.logger.info("Starting shard %d/%d", shard_id, shard_count)
                nursery.start_soon(self.handle_shard, shard_id, shard_count)

    async def run_async(self, *, autoshard: bool = True) -> None:
        """
        Runs the client asynchronously.

        :param autoshard: If the bot should be autosharded.
        """
        shard_count = self.shard_count
        if autoshard:
            shard_count = await self.get_shard_count()

        self.shard_count = shard_count
        return await self.start(shard_count)

    async def kill(self) -> None:
        """
        Kills the bot by closing all shards.
        """
        for gateway in list(self._gateways.values()):
            await gateway.kill()

        if self._cancel_scope is not None:
            self._cancel_scope.cancel()

    def run(self, *, autoshard: bool = True) -> None:
        """
        Convenience method to run the bot with trio.

        :param autoshard: If the bot should be autosharded.
        """
        p = functools.partial(self.run_async, autoshard=autoshard)
        trio.run(p)
