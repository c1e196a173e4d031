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

import pytest
import trio

from cirrus.core.ratelimit import GLOBAL_KEY, Bucket, RateLimiter, parse_date_header
from cirrus.exc import ClockSkewError


def make_limiter(now: float = 1000.0) -> RateLimiter:
    return RateLimiter(clock=lambda: now)


def test_routes_sharing_a_bucket_id_alias_the_same_bucket():
    limiter = make_limiter()
    first = limiter.update_from_headers(("GET /a", None), {
        "X-RateLimit-Limit": "5", "X-RateLimit-Remaining": "4",
        "X-RateLimit-Reset": "1060", "X-RateLimit-Bucket": "abcd",
    })
    second = limiter.update_from_headers(("GET /b", None), {
        "X-RateLimit-Limit": "10", "X-RateLimit-Remaining": "2",
        "X-RateLimit-Reset": "1070.5", "X-RateLimit-Bucket": "abcd",
    })

    assert first is second
    assert limiter.get_from_key(("GET /a", None)) is limiter.get_from_key(("GET /b", None))
    assert limiter.get_from_id("abcd") is first
    assert (first.limit, first.remaining, first.reset_time) == (10, 2, 1070.5)


def test_distinct_bucket_ids_get_distinct_buckets():
    limiter = make_limiter()
    a = limiter.update(("GET /a", None), "one", 5, 5, 1060)
    b = limiter.update(("GET /b", None), "two", 5, 5, 1060)

    assert a is not b
    assert limiter.get_from_id("one") is a
    assert limiter.get_from_id("two") is b


def test_route_moves_to_a_new_bucket_id():
    limiter = make_limiter()
    old = limiter.update("key", "one", 5, 5, 1060)
    new = limiter.update("key", "two", 5, 3, 1060)

    assert old is not new
    assert limiter.get_from_key("key") is new
    assert limiter.get_from_id("one") is old


def test_update_without_bucket_id_reuses_key_bucket():
    limiter = make_limiter()
    bucket = limiter.update("key", None, 5, 5, 1060)
    assert limiter.update("key", None, 5, 1, 1061) is bucket
    assert bucket.remaining == 1

    # the ID arriving later attaches it to the existing bucket
    assert limiter.update("key", "later", 5, 0, 1062) is bucket
    assert limiter.get_from_id("later") is bucket


def test_lookups_for_unseen_keys():
    limiter = make_limiter()
    assert limiter.get_from_key("nope") is None
    assert limiter.get_from_id("nope") is None
    assert limiter.global_bucket is None


def test_will_limit():
    now = 1000.0
    bucket = Bucket(5, 0, now + 10, clock=lambda: now)
    assert bucket.will_limit()

    # after the reset time, remaining doesn't matter
    assert not bucket.will_limit(now + 10.01)

    bucket.update(5, 1, now + 10)
    assert not bucket.will_limit()


def test_consume_decrements_remaining():
    bucket = Bucket(5, 2, 0)
    bucket.consume()
    bucket.consume()
    assert bucket.remaining == 0


def test_headers_are_case_insensitive():
    limiter = make_limiter()
    bucket = limiter.update_from_headers("key", {
        "x-ratelimit-limit": "5", "x-ratelimit-remaining": "0", "x-ratelimit-reset": "1030",
        "x-ratelimit-bucket": "lower",
    })

    assert bucket.limit == 5
    assert bucket.remaining == 0
    assert bucket.reset_time == 1030
    assert limiter.get_from_id("lower") is bucket


def test_retry_after_overrides_reset():
    limiter = make_limiter(now=1000.0)
    bucket = limiter.update_from_headers("key", {
        "X-RateLimit-Limit": "5", "X-RateLimit-Remaining": "0", "X-RateLimit-Reset": "1500",
        "Retry-After": "3",
    })

    assert bucket.reset_time == 1003.0


def test_retry_after_only_creates_an_empty_bucket():
    limiter = make_limiter(now=1000.0)
    bucket = limiter.update_from_headers("key", {"Retry-After": "2.5"})

    assert (bucket.limit, bucket.remaining, bucket.reset_time) == (0, 0, 1002.5)


def test_date_header_corrects_for_clock_skew():
    # our clock is 100 seconds behind the server
    server_now = parse_date_header("Wed, 01 Jan 2020 00:00:00 GMT").timestamp()
    limiter = make_limiter(now=server_now - 100)

    bucket = limiter.update_from_headers("key", {
        "X-RateLimit-Limit": "1", "X-RateLimit-Remaining": "0",
        "X-RateLimit-Reset": str(server_now + 5), "Date": "Wed, 01 Jan 2020 00:00:00 GMT",
    })

    assert bucket.time_until_reset() == pytest.approx(5)


def test_no_rate_limit_headers():
    limiter = make_limiter()
    assert limiter.update_from_headers("key", {"Content-Type": "application/json"}) is None
    assert limiter.get_from_key("key") is None


def test_global_bucket_lives_in_the_registry():
    limiter = make_limiter()
    bucket = limiter.update(GLOBAL_KEY, None, 0, 0, 1010)
    assert limiter.global_bucket is bucket


@pytest.mark.trio
async def test_negative_wait_is_fatal():
    bucket = Bucket(5, 0, trio.current_time() - 1, clock=trio.current_time)

    with pytest.raises(ClockSkewError):
        await bucket.lock_until_reset()

    assert not bucket.locked


@pytest.mark.trio
async def test_lock_until_reset_waits_for_reset(autojump_clock):
    start = trio.current_time()
    bucket = Bucket(5, 0, start + 30, clock=trio.current_time)

    await bucket.lock_until_reset()
    assert trio.current_time() - start == pytest.approx(30)


@pytest.mark.trio
async def test_concurrent_waiters_do_not_stack(autojump_clock):
    start = trio.current_time()
    bucket = Bucket(1, 0, start + 10, clock=trio.current_time)
    finished = []

    async def waiter():
        await bucket.lock_until_reset()
        finished.append(trio.current_time() - start)

    async with trio.open_nursery() as nursery:
        for _ in range(3):
            nursery.start_soon(waiter)

    assert finished == [pytest.approx(10)] * 3


@pytest.mark.trio
async def test_separate_buckets_do_not_block_each_other(autojump_clock):
    start = trio.current_time()
    slow = Bucket(1, 0, start + 60, clock=trio.current_time)
    fast = Bucket(1, 0, start + 1, clock=trio.current_time)
    finished = {}

    async def wait(name, bucket):
        await bucket.lock_until_reset()
        finished[name] = trio.current_time() - start

    async with trio.open_nursery() as nursery:
        nursery.start_soon(wait, "slow", slow)
        nursery.start_soon(wait, "fast", fast)

    assert finished["fast"] == pytest.approx(1)
    assert finished["slow"] == pytest.approx(60)


@pytest.mark.trio
async def test_wait_until_available_without_cooldown():
    bucket = Bucket(1, 1, 0)
    with trio.fail_after(1):
        await bucket.wait_until_available()
