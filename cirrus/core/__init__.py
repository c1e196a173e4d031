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
The core of cirrus.

This package contains the network interface with Discord: the rate limited HTTP client, the
gateway connection, and the event manager that delivers gateway dispatches to client code.

.. currentmodule:: cirrus.core

.. autosummary::
    :toctree: core

    client
    event
    gateway
    httpclient
    ratelimit
"""
