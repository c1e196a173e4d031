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
Classes that wrap objects returned by Discord.

These are plain :mod:`dataclasses`, decoded from the JSON payloads of gateway dispatches and HTTP
responses. Only the fields the library itself needs are mapped; everything else is available on
the ``raw`` attribute of each object.

.. currentmodule:: cirrus.dataclasses

.. autosummary::
    :toctree: dataclasses

    bases
    channel
    gateway
    guild
    message
    user
"""
