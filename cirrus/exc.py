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
Exceptions raised from within the library.

.. currentmodule:: cirrus.exc
"""
import enum
import warnings
from typing import Any, List, NamedTuple, Optional


class CirrusError(Exception):
    """
    The base class for all cirrus exceptions.
    """


# HTTP based exceptions.
class ErrorCode(enum.IntEnum):
    UNKNOWN_ACCOUNT = 10001
    UNKNOWN_APPLICATION = 10002
    UNKNOWN_CHANNEL = 10003
    UNKNOWN_GUILD = 10004
    UNKNOWN_INTEGRATION = 10005
    UNKNOWN_INVITE = 10006
    UNKNOWN_MEMBER = 10007
    UNKNOWN_MESSAGE = 10008
    UNKNOWN_OVERWRITE = 10009
    UNKNOWN_PROVIDER = 10010
    UNKNOWN_ROLE = 10011
    UNKNOWN_TOKEN = 10012
    UNKNOWN_USER = 10013
    UNKNOWN_EMOJI = 10014
    UNKNOWN_WEBHOOK = 10015

    NO_BOTS = 20001
    ONLY_BOTS = 20002

    MAX_GUILDS = 30001
    MAX_FRIENDS = 30002
    MAX_PINS = 30003
    MAX_ROLES = 30005
    MAX_REACTIONS = 30010
    MAX_GUILD_CHANNELS = 30013

    UNAUTHORIZED = 40001
    MISSING_ACCESS = 50001
    INVALID_ACCOUNT = 50002
    NO_DMS = 50003
    EMBED_DISABLED = 50004
    CANNOT_EDIT = 50005
    CANNOT_SEND_EMPTY_MESSAGE = 50006
    CANNOT_SEND_TO_USER = 50007
    CANNOT_SEND_TO_VC = 50008
    VERIFICATION_TOO_HIGH = 50009
    MISSING_PERMISSIONS = 50013
    INVALID_AUTH_TOKEN = 50014
    NOTE_TOO_LONG = 50015
    INVALID_MESSAGE_COUNT = 50016
    CANNOT_PIN = 50019
    TOO_OLD_TO_BULK_DELETE = 50034
    INVALID_FORM_BODY = 50035

    REACTION_BLOCKED = 90001

    UNKNOWN = 0


class JSONError(NamedTuple):
    """
    A single field-level error from the ``errors`` object of an error response.
    """

    #: The dotted path of the field this error is for, e.g. ``embed.fields.0.name``.
    path: str

    #: The string error code, e.g. ``BASE_TYPE_MAX_LENGTH``.
    code: str

    #: The human readable message.
    message: str


def _flatten_errors(errors: dict, path: str = "") -> List[JSONError]:
    """
    Walks the nested ``errors`` object of an error body, collecting every ``_errors`` list.
    """
    flattened = []

    for key, value in errors.items():
        if key == "_errors":
            for err in value:
                flattened.append(JSONError(path, err.get("code"), err.get("message")))
            continue

        if isinstance(value, dict):
            next_path = "{}.{}".format(path, key) if path else str(key)
            flattened.extend(_flatten_errors(value, next_path))

    return flattened


class HTTPException(CirrusError, ConnectionError):
    """
    Raised when a HTTP request fails with a 400 <= e <= 502 error code.
    """

    def __init__(self, response: Any, error: dict):
        self.response = response

        if not isinstance(error, dict):
            error = {"message": error}

        #: The raw numeric error code for this response.
        self.code = error.get("code", 0)
        try:
            #: The error code for this response.
            self.error_code = ErrorCode(self.code)
        except ValueError:
            warnings.warn("Received unknown error code {}".format(self.code))
            self.error_code = ErrorCode.UNKNOWN

        #: The human readable message for this error.
        self.error_message = error.get("message")

        #: The list of :class:`.JSONError` for individual fields.
        self.errors = _flatten_errors(error.get("errors") or {})

        self.error = error

    @property
    def status_code(self) -> Optional[int]:
        """
        :return: The HTTP status code of the response that caused this error.
        """
        return getattr(self.response, "status_code", None)

    def __str__(self) -> str:
        if self.error_code == ErrorCode.UNKNOWN and not self.error_message:
            return repr(self.error)

        base = "{} ({}): {}".format(self.code, self.error_code.name, self.error_message)
        if not self.errors:
            return base

        lines = ["> {}: {} ({})".format(e.path, e.message, e.code) for e in self.errors]
        return base + "\n" + "\n".join(lines)

    __repr__ = __str__


class Unauthorized(HTTPException):
    """
    Raised when your bot token is invalid.
    """


class Forbidden(HTTPException):
    """
    Raised when you don't have permission for something.
    """


class NotFound(HTTPException):
    """
    Raised when something could not be found.
    """


class RetriesExhausted(CirrusError):
    """
    Raised when a request was rate limited more times than the retry policy allows.
    """

    def __init__(self, key: Any, attempts: int):
        #: The rate limit key of the request that was given up on.
        self.key = key
        #: The number of attempts that were made.
        self.attempts = attempts

    def __str__(self) -> str:
        return "Gave up on {} after {} rate limited attempts".format(self.key, self.attempts)


class RequestTimeout(CirrusError, TimeoutError):
    """
    Raised when a request did not complete before the caller's deadline.
    """


class ClockSkewError(CirrusError, RuntimeError):
    """
    Raised when a bucket is asked to wait until a reset time that has already passed.

    This means either the reset time was computed wrongly or the system clock can't be trusted,
    so it is never retried.
    """


class GatewayDecodeError(CirrusError, ValueError):
    """
    Raised when a gateway frame or dispatch payload could not be decoded.
    """
