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
Wrappers for Guild and Member objects.

.. currentmodule:: cirrus.dataclasses.guild
"""
from dataclasses import dataclass, field
from typing import List, Optional

from cirrus.dataclasses.bases import IDPayload, Payload, list_of, mapped, optional_int
from cirrus.dataclasses.user import User


@dataclass
class Guild(IDPayload):
    """
    Represents a guild. Guilds sent in READY are unavailable, and only have an ``id``.
    """

    #: The name of this guild.
    name: Optional[str] = None

    #: If this guild is currently unavailable.
    unavailable: bool = False

    #: The ID of the owner of this guild.
    owner_id: Optional[int] = mapped(optional_int, default=None)

    #: The number of members in this guild. Only sent in GUILD_CREATE.
    member_count: Optional[int] = None


@dataclass
class Member(Payload):
    """
    A member of a guild.
    """

    #: The :class:`.User` this member represents.
    user: User = mapped(User.from_dict)

    #: The ID of the guild this member is in. Not sent for members embedded in other objects.
    guild_id: Optional[int] = mapped(optional_int, default=None)

    #: The nickname of this member.
    nick: Optional[str] = None

    #: The IDs of the roles this member has.
    roles: List[int] = mapped(list_of(int), default_factory=list)


@dataclass
class MemberRemove(Payload):
    """
    Sent when a member leaves, or is removed from, a guild.
    """

    #: The ID of the guild the member was removed from.
    guild_id: int = mapped(int)

    #: The :class:`.User` that was removed.
    user: User = mapped(User.from_dict)


@dataclass
class PresenceUpdate(Payload):
    """
    Sent when the presence of a member changes.
    """

    #: The partial user object. Only ``id`` is guaranteed.
    user: dict = field(default_factory=dict)

    #: The ID of the guild this presence is for.
    guild_id: Optional[int] = mapped(optional_int, default=None)

    #: The new status, e.g. ``online`` or ``dnd``.
    status: Optional[str] = None

    @property
    def user_id(self) -> Optional[int]:
        """
        :return: The ID of the user this presence is for.
        """
        return optional_int(self.user.get("id"))
