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
Rate limit bookkeeping for the HTTP client.

Discord groups routes into **buckets**. Every response tells us which bucket the route belongs to
(``X-RateLimit-Bucket``), how many requests the bucket allows per window, how many are left, and
when the window resets. Several routes can share a single bucket, so the registry here keeps two
indexes: one by our own route key, and one by the server's bucket ID.

.. currentmodule:: cirrus.core.ratelimit
"""
import datetime
import logging
import time
from email.utils import parsedate
from typing import Any, Callable, Hashable, Mapping, MutableMapping, Optional

import pytz
import trio
from multidict import CIMultiDict

from cirrus.exc import ClockSkewError

logger = logging.getLogger("cirrus.ratelimit")

#: The route key the global bucket is stored under.
GLOBAL_KEY = "global"


def parse_date_header(header: str) -> datetime.datetime:
    """
    Parses a date header.

    :param header: The contents of the header to parse.
    :return: A :class:`datetime.datetime` that corresponds to the date header.
    """
    dt = datetime.datetime(*parsedate(header)[:6], tzinfo=pytz.UTC)
    return dt


class Bucket(object):
    """
    A single rate limit bucket.

    Each bucket has its own lock. Holding the lock means the bucket is cooling down; anything else
    that wants to use the bucket waits on the lock rather than sleeping on its own.
    """

    def __init__(self, limit: int, remaining: int, reset_time: float, *,
                 clock: Callable[[], float] = time.time):
        """
        :param limit: The maximum number of requests in one window.
        :param remaining: The number of requests left in the current window.
        :param reset_time: The timestamp the current window ends at.
        :param clock: The function that returns the current timestamp.
        """
        self.update(limit, remaining, reset_time)

        #: The server-assigned ID of this bucket, if known.
        self.bucket_id: Optional[str] = None

        self._clock = clock
        self._lock = trio.Lock()

    def __repr__(self) -> str:
        return "<Bucket id={!r} limit={} remaining={} reset_time={}>".format(
            self.bucket_id, self.limit, self.remaining, self.reset_time
        )

    def update(self, limit: int, remaining: int, reset_time: float) -> None:
        """
        Applies authoritative values to this bucket.
        """
        #: The maximum number of requests in one window.
        self.limit = limit
        #: The number of requests left in the current window.
        self.remaining = remaining
        #: The timestamp the current window ends at.
        self.reset_time = reset_time

    @property
    def locked(self) -> bool:
        """
        :return: If this bucket is currently cooling down.
        """
        return self._lock.locked()

    def time_until_reset(self, now: float = None) -> float:
        """
        :return: The number of seconds until this bucket resets. Negative if it already has.
        """
        if now is None:
            now = self._clock()

        return self.reset_time - now

    def will_limit(self, now: float = None) -> bool:
        """
        :param now: The timestamp to check against. Defaults to the current time.
        :return: True if the next request against this bucket would exceed the limit.
        """
        # checked *before* the request is counted, so the request that would take remaining
        # below zero is the one that waits
        return self.remaining - 1 < 0 and self.time_until_reset(now) >= 0

    def consume(self) -> None:
        """
        Counts one request against this bucket. Called right before the request is sent.
        """
        self.remaining -= 1

    async def wait_until_available(self) -> None:
        """
        Waits for a cooldown in progress to finish. Returns immediately if there isn't one.
        """
        if not self._lock.locked():
            return

        async with self._lock:
            pass

    async def lock_for(self, duration: float) -> None:
        """
        Locks this bucket for ``duration`` seconds.

        If the bucket is already cooling down, this waits for that cooldown instead of starting a
        second one.
        """
        if self._lock.locked():
            return await self.wait_until_available()

        async with self._lock:
            await trio.sleep(duration)

    async def lock_until_reset(self, now: float = None) -> None:
        """
        Locks this bucket until its reset time.

        :param now: The timestamp to compute the wait from. Defaults to the current time.
        :raises ClockSkewError: If the reset time has already passed.
        """
        time_remaining = self.time_until_reset(now)
        if time_remaining < 0:
            raise ClockSkewError(
                "Cannot sleep for negative duration ({:.3f}s). "
                "Clock may be out of sync.".format(time_remaining)
            )

        await self.lock_for(time_remaining)


class RateLimiter(object):
    """
    The registry of :class:`.Bucket` objects for one HTTP client.

    Buckets are keyed by whatever hashable route key the caller uses; the HTTP client uses
    ``(route_key, major_id)`` tuples, and :data:`GLOBAL_KEY` for the global bucket.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time):
        """
        :param clock: The function that returns the current timestamp. Passed to every bucket.
        """
        self.clock = clock

        #: The mapping of route key -> bucket.
        self._bucket_key_map: MutableMapping[Hashable, Bucket] = {}

        #: The mapping of server bucket ID -> bucket.
        self._bucket_id_map: MutableMapping[str, Bucket] = {}

    def get_from_key(self, key: Hashable) -> Optional[Bucket]:
        """
        :param key: The route key to look up.
        :return: The :class:`.Bucket` for the route key, or None if it hasn't been seen yet.
        """
        return self._bucket_key_map.get(key)

    def get_from_id(self, bucket_id: str) -> Optional[Bucket]:
        """
        :param bucket_id: The server-assigned bucket ID.
        :return: The :class:`.Bucket` with the server ID, or None if it hasn't been seen yet.
        """
        return self._bucket_id_map.get(bucket_id)

    @property
    def global_bucket(self) -> Optional[Bucket]:
        """
        :return: The global bucket, if a global rate limit has been seen.
        """
        return self._bucket_key_map.get(GLOBAL_KEY)

    def update(self, key: Hashable, bucket_id: Optional[str],
               limit: int, remaining: int, reset_time: float) -> Bucket:
        """
        Updates (or creates) the bucket for a route key.

        If a bucket already exists for ``bucket_id``, it is updated in place and ``key`` is pointed
        at it. Otherwise, a new bucket is made and stored under both the key and the ID.

        :return: The :class:`.Bucket` that was updated.
        """
        bucket = self._bucket_id_map.get(bucket_id) if bucket_id is not None else None
        if bucket is None:
            existing = self._bucket_key_map.get(key)
            # the key keeps its old bucket unless that bucket belongs to another server ID
            if existing is not None and (bucket_id is None or existing.bucket_id is None):
                bucket = existing

        if bucket is None:
            logger.debug("Creating new bucket for %s (server ID %s)", key, bucket_id)
            bucket = Bucket(limit, remaining, reset_time, clock=self.clock)
        else:
            bucket.update(limit, remaining, reset_time)

        self._bucket_key_map[key] = bucket
        if bucket_id is not None:
            bucket.bucket_id = bucket_id
            self._bucket_id_map[bucket_id] = bucket

        return bucket

    def update_from_headers(self, key: Hashable, headers: Mapping[str, Any]) -> Optional[Bucket]:
        """
        Updates the bucket for a route key from a set of response headers.

        ``Retry-After`` takes precedence over ``X-RateLimit-Reset``. When a ``Date`` header is
        present, the reset timestamp is moved from the server's clock onto ours.

        :param key: The route key the response was for.
        :param headers: The response headers. Header names are matched case-insensitively.
        :return: The :class:`.Bucket` that was updated, or None if the headers had no rate limit
            information.
        """
        headers = CIMultiDict(headers)

        limit = headers.get("X-RateLimit-Limit")
        remaining = headers.get("X-RateLimit-Remaining")
        reset = headers.get("X-RateLimit-Reset")
        bucket_id = headers.get("X-RateLimit-Bucket")
        retry_after = headers.get("Retry-After")

        if retry_after is not None:
            reset_time = self.clock() + float(retry_after)
        elif reset is not None:
            reset_time = float(reset)
            date = headers.get("Date")
            if date is not None:
                server_now = parse_date_header(date).timestamp()
                reset_time = reset_time - server_now + self.clock()
        else:
            reset_time = None

        if limit is not None and remaining is not None and reset_time is not None:
            return self.update(key, bucket_id, int(limit), int(remaining), reset_time)

        if retry_after is not None:
            return self.update(key, bucket_id, 0, 0, reset_time)

        logger.debug("No rate limit headers for %s", key)
        return None
