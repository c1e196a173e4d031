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
Special helpers for events.

Every dispatch Discord can send that the library knows about has an :class:`.EventType`. The
:data:`DECODERS` table maps each of those to the function that decodes its payload; the
:class:`.EventManager` holds the handlers registered for each of them.

.. currentmodule:: cirrus.core.event
"""
import enum
import inspect
import logging
import typing

import trio
from multidict import MultiDict

from cirrus.dataclasses.channel import Channel, TypingStart
from cirrus.dataclasses.gateway import Ready, Resumed
from cirrus.dataclasses.guild import Guild, Member, MemberRemove, PresenceUpdate
from cirrus.dataclasses.message import Message, MessageDelete, MessageUpdate
from cirrus.util import remove_from_multidict



class EventType(enum.Enum):
    """
    The events that handlers can be registered for.

    Members with an upper-case value are gateway dispatches and are named exactly as Discord names
    them. Members with a ``gateway_`` value are fired by the gateway connection itself.
    """

    READY = "READY"
    RESUMED = "RESUMED"

    MESSAGE_CREATE = "MESSAGE_CREATE"
    MESSAGE_UPDATE = "MESSAGE_UPDATE"
    MESSAGE_DELETE = "MESSAGE_DELETE"

    GUILD_CREATE = "GUILD_CREATE"
    GUILD_UPDATE = "GUILD_UPDATE"
    GUILD_DELETE = "GUILD_DELETE"

    GUILD_MEMBER_ADD = "GUILD_MEMBER_ADD"
    GUILD_MEMBER_UPDATE = "GUILD_MEMBER_UPDATE"
    GUILD_MEMBER_REMOVE = "GUILD_MEMBER_REMOVE"

    CHANNEL_CREATE = "CHANNEL_CREATE"
    CHANNEL_UPDATE = "CHANNEL_UPDATE"
    CHANNEL_DELETE = "CHANNEL_DELETE"

    TYPING_START = "TYPING_START"
    PRESENCE_UPDATE = "PRESENCE_UPDATE"

    #: Fired with the server trace when a HELLO is received.
    GATEWAY_HELLO = "gateway_hello"
    #: Fired when a heartbeat is acknowledged.
    GATEWAY_HEARTBEAT_ACK = "gateway_heartbeat_ack"
    #: Fired with the resumable flag when the session is invalidated.
    GATEWAY_INVALID_SESSION = "gateway_invalid_session"
    #: Fired when Discord asks the client to reconnect.
    GATEWAY_RECONNECT = "gateway_reconnect"

    @property
    def is_dispatch(self) -> bool:
        """
        :return: If this event is a gateway dispatch.
        """
        return self in DECODERS


#: The mapping of dispatch event -> the function that decodes its payload.
DECODERS: typing.Mapping[EventType, typing.Callable[[typing.Any], typing.Any]] = {
    EventType.READY: Ready.from_dict,
    EventType.RESUMED: Resumed.from_dict,

    EventType.MESSAGE_CREATE: Message.from_dict,
    EventType.MESSAGE_UPDATE: MessageUpdate.from_dict,
    EventType.MESSAGE_DELETE: MessageDelete.from_dict,

    EventType.GUILD_CREATE: Guild.from_dict,
    EventType.GUILD_UPDATE: Guild.from_dict,
    EventType.GUILD_DELETE: Guild.from_dict,

    EventType.GUILD_MEMBER_ADD: Member.from_dict,
    EventType.GUILD_MEMBER_UPDATE: Member.from_dict,
    EventType.GUILD_MEMBER_REMOVE: MemberRemove.from_dict,

    EventType.CHANNEL_CREATE: Channel.from_dict,
    EventType.CHANNEL_UPDATE: Channel.from_dict,
    EventType.CHANNEL_DELETE: Channel.from_dict,

    EventType.TYPING_START: TypingStart.from_dict,
    EventType.PRESENCE_UPDATE: PresenceUpdate.from_dict,
}


class ListenerExit(Exception):
    """
    Raised when a temporary listener is to be exited.

    .. code-block:: python3

        async def listener(ctx, message):
            if message.author.id == owner_id:
                raise ListenerExit

    """


class EventContext(object):
    """
    Represents a special context that is passed to events.
    """

    def __init__(self, shard_id: int, event_type: EventType, gateway=None):
        """
        :param shard_id: The shard ID this event is for.
        :param event_type: The :class:`.EventType` of this event.
        :param gateway: The :class:`.GatewayHandler` that produced this event.
        """
        #: The shard this event was received on.
        self.shard_id = shard_id

        #: The type of this event.
        self.event_type = event_type

        #: The :class:`.GatewayHandler` that produced this event.
        self.gateway = gateway

    def __repr__(self) -> str:
        return "<EventContext shard_id={} event_type={}>".format(self.shard_id, self.event_type)


class EventManager(object):
    """
    A manager for events.

    This deals with firing of events and temporary listeners. Every handler runs as its own task
    in :attr:`.EventManager.task_manager`, so firing an event never waits on a handler.
    """

    def __init__(self, *, logger: logging.Logger = None):
        #: The nursery used to spawn events.
        self.task_manager: typing.Optional[trio.Nursery] = None

        #: A MultiDict of event listeners.
        self.event_listeners = MultiDict()

        #: A MultiDict of temporary listeners.
        self.temporary_listeners = MultiDict()

        self.logger = logger or logging.getLogger("cirrus.events")

    # add or removal functions
    def add_event(self, event_type: EventType, func) -> None:
        """
        Add an event to the internal registry of events.

        :param event_type: The :class:`.EventType` to register under.
        :param func: The async function to add.
        """
        if not inspect.iscoroutinefunction(func):
            raise TypeError("Event must be an async function")

        self.logger.debug("Registered event `%s` handling `%s`", func, event_type)
        self.event_listeners.add(event_type, func)

    def remove_event(self, event_type: EventType, func) -> None:
        """
        Removes a function event.

        :param event_type: The :class:`.EventType` the event is registered under.
        :param func: The function to remove.
        """
        self.event_listeners = remove_from_multidict(self.event_listeners, key=event_type,
                                                     item=func)

    def add_temporary_listener(self, event_type: EventType, listener) -> None:
        """
        Adds a new temporary listener.

        To remove the listener, you can raise ListenerExit which will exit it and remove the
        listener from the list.

        :param event_type: The :class:`.EventType` to listen to.
        :param listener: The listener function.
        """
        self.temporary_listeners.add(event_type, listener)

    def remove_listener_early(self, event_type: EventType, listener) -> None:
        """
        Removes a temporary listener early.

        :param event_type: The :class:`.EventType` the listener is registered under.
        :param listener: The listener function.
        """
        self.temporary_listeners = remove_from_multidict(self.temporary_listeners,
                                                         key=event_type, item=listener)

    def handlers_for(self, event_type: EventType) -> typing.List[typing.Callable]:
        """
        :return: The handlers registered for an event, in registration order.
        """
        return self.event_listeners.getall(event_type, [])

    # wrapper functions
    async def _safety_wrapper(self, func, *args) -> None:
        """
        Ensures a coro's error is caught and doesn't balloon out.
        """
        try:
            await func(*args)
        except Exception:
            self.logger.exception("Unhandled exception in %s!", getattr(func, "__name__", func))

    async def _listener_wrapper(self, key: EventType, func, *args) -> None:
        """
        Wraps a listener, ensuring ListenerExit is handled properly.
        """
        try:
            await func(*args)
        except ListenerExit:
            self.remove_listener_early(key, func)
        except Exception:
            self.logger.exception("Unhandled exception in listener %s!",
                                  getattr(func, "__name__", func))
            self.remove_listener_early(key, func)

    async def wait_for(self, event_type: EventType, predicate=None) -> typing.Any:
        """
        Waits for an event.

        Returning a truthy value from the predicate will cause it to exit and return.

        :param event_type: The :class:`.EventType` to wait for.
        :param predicate: The predicate to use to check for the event.
        :return: The arguments of the event (without the context). A single argument is returned
            unwrapped.
        """
        done = trio.Event()
        outcome = {}

        async def listener(ctx, *args):
            if done.is_set():
                raise ListenerExit

            if predicate is not None:
                try:
                    res = predicate(*args)
                    if inspect.isawaitable(res):
                        res = await res
                except Exception as e:
                    # signal that an error happened
                    outcome["error"] = e
                    done.set()
                    raise ListenerExit

                if not res:
                    return

            outcome["args"] = args
            done.set()
            raise ListenerExit

        self.add_temporary_listener(event_type, listener)
        try:
            await done.wait()
        finally:
            self.remove_listener_early(event_type, listener)

        if "error" in outcome:
            raise outcome["error"]

        # unwrap tuples, if applicable
        output = outcome["args"]
        if len(output) == 1:
            return output[0]
        return output

    def spawn(self, cofunc, *args) -> None:
        """
        Spawns a new async function using our task manager.

        :param cofunc: The async function to spawn.
        :param args: Args to provide to the async function.
        """
        if self.task_manager is None:
            raise RuntimeError("This EventManager has no nursery to spawn events in")

        self.task_manager.start_soon(cofunc, *args)

    def fire_event(self, event_type: EventType, *args, ctx: EventContext) -> None:
        """
        Fires an event.

        Handlers are started in the order they were registered; this returns without waiting for
        any of them.

        :param event_type: The :class:`.EventType` to fire.
        :param ctx: The :class:`.EventContext` to pass to each handler.
        """
        for handler in self.handlers_for(event_type):
            self.spawn(self._safety_wrapper, handler, ctx, *args)

        for listener in self.temporary_listeners.getall(event_type, []):
            self.spawn(self._listener_wrapper, event_type, listener, ctx, *args)


def event(event_type: EventType, scan: bool = True):
    """
    Marks a function as an event.

    Marked methods on an object are picked up by :meth:`.Client.load_events`.

    :param event_type: The :class:`.EventType` of the event.
    :param scan: Should this event be handled in scans too?
    """

    def __innr(f):
        if not hasattr(f, "events"):
            f.events = set()

        f.is_event = True
        f.events.add(event_type)
        f.scan = scan
        return f

    return __innr


def scan_events(obb) -> typing.Iterator[typing.Tuple[str, typing.Any]]:
    """
    Scans an object for any items marked as an event and yields them.
    """

    def _pred(f):
        return getattr(f, "is_event", False) and getattr(f, "scan", False)

    for name, item in inspect.getmembers(obb, predicate=_pred):
        yield name, item
