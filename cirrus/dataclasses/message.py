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
Wrappers for Message objects.

.. currentmodule:: cirrus.dataclasses.message
"""
import datetime
from dataclasses import dataclass
from typing import Optional

from cirrus.dataclasses.bases import IDPayload, Payload, mapped, optional_int
from cirrus.dataclasses.user import User
from cirrus.util import to_datetime


@dataclass
class Message(IDPayload):
    """
    Represents a Message.
    """

    #: The ID of the channel this message was sent in.
    channel_id: int = mapped(int)

    #: The content of the message.
    content: str = ""

    #: The :class:`.User` that sent this message.
    author: Optional[User] = mapped(User.from_dict, default=None)

    #: The ID of the guild this message was sent in, if any.
    guild_id: Optional[int] = mapped(optional_int, default=None)

    #: The time this message was created.
    timestamp: Optional[datetime.datetime] = mapped(to_datetime, default=None)

    #: If this message was text-to-speech.
    tts: bool = False


@dataclass
class MessageUpdate(IDPayload):
    """
    A partial message sent when a message is edited. Only ``id`` and ``channel_id`` are always
    present.
    """

    #: The ID of the channel the message is in.
    channel_id: int = mapped(int)

    #: The new content of the message, if it changed.
    content: Optional[str] = None

    #: The ID of the guild the message is in, if any.
    guild_id: Optional[int] = mapped(optional_int, default=None)

    #: The time the message was edited.
    edited_timestamp: Optional[datetime.datetime] = mapped(to_datetime, default=None)


@dataclass
class MessageDelete(Payload):
    """
    Sent when a message is deleted.
    """

    #: The ID of the deleted message.
    id: int = mapped(int)

    #: The ID of the channel the message was deleted from.
    channel_id: int = mapped(int)

    #: The ID of the guild the message was deleted from, if any.
    guild_id: Optional[int] = mapped(optional_int, default=None)
