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
Wrappers for User objects.

.. currentmodule:: cirrus.dataclasses.user
"""
from dataclasses import dataclass
from typing import Optional

from cirrus.dataclasses.bases import IDPayload


@dataclass
class User(IDPayload):
    """
    This represents a bare user - i.e, somebody without a guild attached.
    """

    #: The username of this user.
    username: Optional[str] = None

    #: The discriminator of this user. ``"0"`` for users with unique usernames.
    discriminator: str = "0"

    #: The avatar hash of this user.
    avatar: Optional[str] = None

    #: If this user is a bot account.
    bot: bool = False

    @property
    def name(self) -> str:
        """
        :return: The name of this user, with the discriminator if they still have one.
        """
        if self.discriminator in (None, "0"):
            return self.username

        return "{}#{}".format(self.username, self.discriminator)
