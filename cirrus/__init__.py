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
Cirrus - a trio-based library for the Discord REST API and gateway.

.. currentmodule:: cirrus

.. autosummary::
    :toctree:

    core
    dataclasses

    exc
    util
"""
import sys
from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("cirrus-chat")
except PackageNotFoundError:
    __version__ = "0.0.0"

_fmt = "DiscordBot (https://github.com/cirrus-chat/cirrus {0}) Python/{1[0]}.{1[1]}"
USER_AGENT = _fmt.format(__version__, sys.version_info)
del _fmt


from cirrus.core.client import Client
from cirrus.core.event import EventContext, EventManager, EventType, event
from cirrus.core.gateway import GatewayHandler, GatewayState
from cirrus.core.httpclient import HTTPClient, Route
from cirrus.core.ratelimit import Bucket, RateLimiter
from cirrus.dataclasses.channel import Channel, ChannelType
from cirrus.dataclasses.guild import Guild, Member
from cirrus.dataclasses.message import Message
from cirrus.dataclasses.user import User
