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
Base classes that all dataclasses inherit from.

.. currentmodule:: cirrus.dataclasses.bases
"""
import dataclasses
import datetime
from typing import Any, Callable, Optional, Type, TypeVar

from cirrus.exc import GatewayDecodeError

DISCORD_EPOCH = 1420070400000

P = TypeVar("P", bound="Payload")


def mapped(converter: Callable[[Any], Any], **kwargs) -> Any:
    """
    Declares a dataclass field whose JSON value is passed through ``converter`` when decoded.

    .. code-block:: python3

        @dataclass
        class Message(Payload):
            id: int = mapped(int)

    :param converter: The callable used to convert the value. Not called for ``null`` values.
    :param nullable: If ``null`` is accepted for this field. When False, ``null`` is a decode
        error.
    """
    metadata = kwargs.pop("metadata", {})
    metadata = {**metadata, "converter": converter, "nullable": kwargs.pop("nullable", True)}
    return dataclasses.field(metadata=metadata, **kwargs)


def list_of(converter: Callable[[Any], Any]) -> Callable[[list], list]:
    """
    :return: A converter that applies ``converter`` to every item of a list.
    """
    def _inner(items: list) -> list:
        return [converter(item) for item in items]

    return _inner


@dataclasses.dataclass
class Payload(object):
    """
    The base class for every decoded payload.
    """

    @classmethod
    def from_dict(cls: Type[P], data: Any) -> P:
        """
        Decodes an instance of this class from a JSON object.

        Unknown keys are ignored, and the full object is kept on ``raw``.

        :param data: The decoded JSON object.
        :raises GatewayDecodeError: If the data isn't an object, a required field is missing, or a
            field could not be converted.
        """
        if not isinstance(data, dict):
            raise GatewayDecodeError("Expected an object for {}, got {!r}"
                                     .format(cls.__name__, type(data).__name__))

        kwargs = {}
        for field in dataclasses.fields(cls):
            if field.name not in data:
                if field.default is dataclasses.MISSING \
                        and field.default_factory is dataclasses.MISSING:
                    raise GatewayDecodeError("{} is missing the required field {!r}"
                                             .format(cls.__name__, field.name))
                continue

            value = data[field.name]
            if value is None and not field.metadata.get("nullable", True):
                raise GatewayDecodeError("{}.{} cannot be null".format(cls.__name__, field.name))

            converter = field.metadata.get("converter")
            if converter is not None and value is not None:
                try:
                    value = converter(value)
                except (GatewayDecodeError, TypeError, ValueError, KeyError) as e:
                    raise GatewayDecodeError("Could not decode {}.{} from {!r}"
                                             .format(cls.__name__, field.name, value)) from e

            kwargs[field.name] = value

        obb = cls(**kwargs)
        #: The raw JSON object this was decoded from.
        obb.raw = data
        return obb


@dataclasses.dataclass
class IDPayload(Payload):
    """
    A payload that is identified by a snowflake ID.
    """

    #: The snowflake ID of the object.
    id: int = mapped(int)

    @property
    def snowflake_timestamp(self) -> datetime.datetime:
        """
        :return: The timestamp of the snowflake.
        """
        return datetime.datetime.fromtimestamp(((self.id >> 22) + DISCORD_EPOCH) / 1000,
                                               tz=datetime.timezone.utc)


def optional_int(value: Any) -> Optional[int]:
    """
    Converts a snowflake string to an int, keeping empty values as None.
    """
    if value in (None, ""):
        return None

    return int(value)
