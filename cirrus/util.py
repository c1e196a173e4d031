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
Misc utilities shared throughout the library.

.. currentmodule:: cirrus.util
"""
import datetime
from typing import Any, Optional

from multidict import MultiDict


class _Null(object):
    """
    The type of :data:`NULL`.
    """

    def __repr__(self) -> str:
        return "NULL"

    def __bool__(self) -> bool:
        return False


#: Passed as a JSON body value to send an explicit ``null``, since ``None`` values are dropped.
NULL = _Null()


def remove_from_multidict(d: MultiDict, key: Any, item: Any):
    """
    Removes an item from a multidict key.
    """
    # works by popping all, removing, then re-adding into
    i = d.popall(key, [])
    if item in i:
        i.remove(item)

    for n in i:
        d.add(key, n)

    return d


def clean_payload(payload: dict) -> dict:
    """
    Prepares a JSON body for sending.

    Keys with a value of ``None`` are removed, and keys with a value of :data:`NULL` are sent as
    JSON ``null``.

    .. code-block:: python3

        clean_payload({"nick": None, "channel_id": NULL})  # {"channel_id": None}

    :param payload: The body to clean.
    :return: A new dict that can be passed to the JSON encoder.
    """
    cleaned = {}
    for key, value in payload.items():
        if value is None:
            continue

        if value is NULL:
            value = None

        cleaned[key] = value

    return cleaned


def to_datetime(timestamp: Optional[str]) -> Optional[datetime.datetime]:
    """
    Converts a Discord-formatted timestamp to a datetime object.

    :param timestamp: The timestamp to convert.
    :return: The :class:`datetime.datetime` object that corresponds to this datetime.
    """
    if timestamp is None:
        return None

    if timestamp.endswith("+00:00"):
        timestamp = timestamp[:-6]

    try:
        return datetime.datetime.strptime(timestamp, "%Y-%m-%dT%H:%M:%S.%f")
    except ValueError:
        # wonky datetimes
        return datetime.datetime.strptime(timestamp, "%Y-%m-%dT%H:%M:%S")
