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
Wrappers for Channel objects.

.. currentmodule:: cirrus.dataclasses.channel
"""
import datetime
import enum
from dataclasses import dataclass
from typing import Optional

from cirrus.dataclasses.bases import IDPayload, Payload, mapped, optional_int


class ChannelType(enum.IntEnum):
    """
    Returns a mapping from Discord channel type.
    """

    #: A regular guild text channel.
    GUILD_TEXT = 0

    #: A private channel, such as a DM.
    DM = 1

    #: A regular guild voice channel.
    GUILD_VOICE = 2

    #: A group chat.
    GROUP_DM = 3

    #: A category channel; a parent of other channels.
    GUILD_CATEGORY = 4

    #: A news channel that users can follow.
    GUILD_NEWS = 5

    GUILD_NEWS_THREAD = 10
    GUILD_PUBLIC_THREAD = 11
    GUILD_PRIVATE_THREAD = 12
    GUILD_STAGE_VOICE = 13


@dataclass
class Channel(IDPayload):
    """
    Represents a channel object.
    """

    #: The :class:`.ChannelType` of channel this channel is.
    type: ChannelType = mapped(ChannelType, default=ChannelType.GUILD_TEXT)

    #: The ID of the guild this channel is in, or None for private channels.
    guild_id: Optional[int] = mapped(optional_int, default=None)

    #: The name of this channel.
    name: Optional[str] = None

    #: The topic of this channel.
    topic: Optional[str] = None


@dataclass
class TypingStart(Payload):
    """
    Sent when somebody starts typing in a channel.
    """

    #: The ID of the channel the user is typing in.
    channel_id: int = mapped(int)

    #: The ID of the user that is typing.
    user_id: int = mapped(int)

    #: The time the user started typing at.
    timestamp: Optional[datetime.datetime] = mapped(
        lambda ts: datetime.datetime.fromtimestamp(ts, tz=datetime.timezone.utc), default=None
    )

    #: The ID of the guild the channel is in, if any.
    guild_id: Optional[int] = mapped(optional_int, default=None)
