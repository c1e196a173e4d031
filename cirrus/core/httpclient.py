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
The main Discord HTTP interface.

.. currentmodule:: cirrus.core.httpclient
"""
import logging
import typing
from dataclasses import dataclass
from urllib.parse import quote

import asks
import trio
from multidict import CIMultiDict

import cirrus
from cirrus.core.ratelimit import GLOBAL_KEY, Bucket, RateLimiter
from cirrus.dataclasses.gateway import GatewayInfo
from cirrus.exc import Forbidden, HTTPException, NotFound, RequestTimeout, RetriesExhausted, \
    Unauthorized
from cirrus.util import clean_payload

#: The status codes that count as a successful request.
SUCCESS_CODES = (200, 201, 204)

#: The methods that send a JSON body.
WRITE_METHODS = ("POST", "PUT", "PATCH")


# more of a namespace
class Endpoints:
    API_BASE = "/api/v10"

    USER_ID = "/users/{user_id}"
    USER_ME = "/users/@me"

    GATEWAY = "/gateway"
    GATEWAY_BOT = "/gateway/bot"

    GUILD_ID_BASE = "/guilds/{guild_id}"
    GUILD_MEMBERS = GUILD_ID_BASE + "/members"
    GUILD_MEMBER = GUILD_MEMBERS + "/{member_id}"

    CHANNEL_BASE = "/channels/{channel_id}"
    CHANNEL_MESSAGES = CHANNEL_BASE + "/messages"
    CHANNEL_MESSAGE = CHANNEL_MESSAGES + "/{message_id}"

    def __init__(self, base_url: str = "https://discord.com"):
        """
        :param base_url: The base URL for this set of endpoints.
        """
        self.BASE = base_url


class Route(object):
    """
    A single API route, formatted from one of the :class:`.Endpoints` templates.

    .. code-block:: python3

        route = Route("GET", Endpoints.CHANNEL_MESSAGE, channel_id=1, message_id=2)
        route.path  # '/channels/1/messages/2'
        route.key  # 'GET /channels/{channel_id}/messages/{message_id}'
        route.major_id  # 1
    """

    #: The parameters Discord uses to split a route into separate rate limits.
    MAJOR_PARAMETERS = ("guild_id", "channel_id", "webhook_id")

    def __init__(self, method: str, template: str, **params):
        """
        :param method: The HTTP method for this route.
        :param template: The path template for this route.
        :param params: The values to format the template with.
        """
        self.method = method.upper()
        self.template = template
        self.params = params

    def __repr__(self) -> str:
        return "<Route {} major_id={!r}>".format(self.key, self.major_id)

    @property
    def path(self) -> str:
        """
        :return: The formatted path of this route, with each parameter escaped.
        """
        escaped = {k: quote(str(v), safe="") for k, v in self.params.items()}
        return self.template.format(**escaped)

    @property
    def key(self) -> str:
        """
        :return: The route key for this route, used for rate limiting.
        """
        return "{} {}".format(self.method, self.template)

    @property
    def major_id(self) -> typing.Optional[typing.Any]:
        """
        :return: The value of the major parameter of this route, if it has one.
        """
        for param in self.MAJOR_PARAMETERS:
            if param in self.params:
                return self.params[param]

        return None


@dataclass
class RetryPolicy:
    """
    Controls how many times a rate limited request is retried.
    """

    #: The maximum number of attempts for one request. None means retry until the request goes
    #: through.
    max_attempts: typing.Optional[int] = None

    def should_retry(self, attempts: int) -> bool:
        """
        :param attempts: The number of attempts made so far.
        :return: If another attempt is allowed.
        """
        return self.max_attempts is None or attempts < self.max_attempts


class HTTPClient(object):
    """
    The HTTP client object used to make requests to Discord's servers.

    Every request goes through :meth:`.HTTPClient.request`, which will:

        - Wait for the global bucket and the route's bucket if either of them is exhausted.
        - Make the request, then update the buckets from the rate limit headers.
        - Sleep and retry if the request is rate limited anyway.
        - Raise a :class:`.HTTPException` for error statuses.

    :param token: The token to use for all HTTP requests.
    :param token_type: The token type used in the ``Authorization`` header. ``None`` sends the
        token without a type.
    :param max_connections: The max connections for this HTTP client.
    :param retry_policy: The :class:`.RetryPolicy` for rate limited requests.
    :param session: The session used to send requests. Defaults to a :class:`asks.Session`.
    :param ratelimiter: The :class:`.RateLimiter` to use.
    :param endpoints: The :class:`.Endpoints` to send requests to.
    :param logger: The logger to use. Defaults to ``cirrus.http``.
    """

    def __init__(self, token: str, *,
                 token_type: typing.Optional[str] = "Bot",
                 max_connections: int = 10,
                 retry_policy: RetryPolicy = None,
                 session=None,
                 ratelimiter: RateLimiter = None,
                 endpoints: Endpoints = None,
                 logger: logging.Logger = None):
        #: The token used for all requests.
        self.token = token

        if token_type is not None:
            authorization = "{} {}".format(token_type, token)
        else:
            authorization = token

        # Calculated headers
        self.headers = {
            "User-Agent": cirrus.USER_AGENT,
            "Authorization": authorization,
        }

        self.endpoints = endpoints or Endpoints()
        self.retry_policy = retry_policy or RetryPolicy()

        #: The :class:`.RateLimiter` that keeps track of every bucket.
        self.ratelimiter = ratelimiter or RateLimiter()

        self.logger = logger or logging.getLogger("cirrus.http")

        self._session = session
        self._max_connections = max_connections

    @property
    def session(self):
        """
        :return: The session used to make requests. Created on first use.
        """
        if self._session is None:
            self._session = asks.Session(base_location=self.endpoints.BASE,
                                         endpoint=Endpoints.API_BASE,
                                         connections=self._max_connections)

        return self._session

    # Special wrapper functions
    @staticmethod
    def get_response_data(response) -> typing.Union[str, bytes, dict, list, None]:
        """
        Return either the content of a request or the JSON.

        :param response: The response to use.
        """
        if response.status_code == 204:
            return None

        content_type = CIMultiDict(response.headers).get("Content-Type", "")
        if content_type.startswith("application/json"):
            return response.json()

        return response.content

    async def _make_request(self, method: str, path: str, *,
                            json: typing.Any = None,
                            headers: typing.Mapping[str, str] = None,
                            reason: str = None):
        """
        Makes a request via the current session.

        :returns: The response object.
        """
        request_headers = self.headers.copy()
        if headers is not None:
            request_headers.update(headers)

        # update reason header
        if reason is not None:
            request_headers["X-Audit-Log-Reason"] = quote(reason)

        kwargs = {}
        if json is not None:
            if isinstance(json, dict):
                json = clean_payload(json)

            kwargs["json"] = json
            if method in WRITE_METHODS:
                request_headers["Content-Type"] = "application/json"

        return await self.session.request(method, path=path, headers=request_headers, **kwargs)

    async def _wait_for_bucket(self, key: typing.Hashable, bucket: Bucket) -> None:
        """
        Waits on a bucket before a request is made against it.
        """
        # if someone else is already sleeping the bucket off, wait for them
        await bucket.wait_until_available()

        now = self.ratelimiter.clock()
        if bucket.will_limit(now):
            self.logger.debug("Bucket %s is exhausted, waiting %.2f seconds for it to reset",
                              key, bucket.time_until_reset(now))
            await bucket.lock_until_reset(now)

    async def _handle_rate_limited(self, key: typing.Hashable, response, attempts: int) -> None:
        """
        Handles a 429 response, sleeping for however long Discord asks us to.
        """
        data = self.get_response_data(response)
        if not isinstance(data, dict):
            data = {}

        retry_after = float(data.get("retry_after", 1))
        is_global = bool(data.get("global", False))
        self.logger.warning("Hit a 429 in bucket %s (global: %s, message: %s), retrying in "
                            "%.2f seconds", key, is_global, data.get("message"), retry_after)

        reset_time = self.ratelimiter.clock() + retry_after
        if is_global:
            bucket = self.ratelimiter.update(GLOBAL_KEY, None, 0, 0, reset_time)
        else:
            bucket = self.ratelimiter.update_from_headers(key, response.headers)
            if bucket is None:
                bucket = self.ratelimiter.update(key, None, 0, 0, reset_time)
            else:
                # the body is authoritative over whatever the headers said
                bucket.update(bucket.limit, 0, reset_time)

        if not self.retry_policy.should_retry(attempts):
            raise RetriesExhausted(key, attempts)

        await bucket.lock_for(retry_after)

    async def _request(self, route_key: str, major_id: typing.Any, method: str, path: str,
                       **kwargs):
        """
        The retry loop of :meth:`.HTTPClient.request`.
        """
        key = (route_key, major_id)
        attempts = 0

        while True:
            attempts += 1

            bucket = self.ratelimiter.get_from_key(key)
            global_bucket = self.ratelimiter.global_bucket

            if global_bucket is not None:
                await self._wait_for_bucket(GLOBAL_KEY, global_bucket)
                global_bucket.consume()

            if bucket is not None:
                await self._wait_for_bucket(key, bucket)
                bucket.consume()

            self.logger.debug("%s %s => (pending) (try %d)", method, path, attempts)
            response = await self._make_request(method, path, **kwargs)
            status = response.status_code
            self.logger.debug("%s %s => %d (try %d)", method, path, status, attempts)

            if status == 429:
                await self._handle_rate_limited(key, response, attempts)
                continue

            self.ratelimiter.update_from_headers(key, response.headers)
            headers = CIMultiDict(response.headers)
            if "X-RateLimit-Global" in headers:
                # the bucket ID belongs to the route, the global bucket must not alias it
                headers.popall("X-RateLimit-Bucket", None)
                self.ratelimiter.update_from_headers(GLOBAL_KEY, headers)

            if status in SUCCESS_CODES:
                return response

            # 400 <= status <= 502 are errors that the caller has to deal with.
            # special case 401, 403 and 404, because they're Unique Exceptions(tm).
            if 400 <= status <= 502:
                result = self.get_response_data(response)
                if status == 401:
                    raise Unauthorized(response, result)

                if status == 403:
                    raise Forbidden(response, result)

                if status == 404:
                    raise NotFound(response, result)

                raise HTTPException(response, result)

            self.logger.warning("%s %s returned unrecognised status %d, ignoring",
                                method, path, status)
            return None

    async def request(self, route_key: str, major_id: typing.Any, method: str, path: str, *,
                      json: typing.Any = None,
                      headers: typing.Mapping[str, str] = None,
                      reason: str = None,
                      deadline: float = None):
        """
        Makes a rate-limited request.

        This will respect Discord's X-RateLimit headers to make requests.

        :param route_key: The route key this request falls under.
        :param major_id: The major parameter of the route, if any.
        :param method: The HTTP method to use.
        :param path: The path to request, relative to the API base.
        :param json: The JSON body to send, if any.
        :param headers: Any extra headers to send.
        :param reason: The audit log reason for this request.
        :param deadline: The number of seconds the whole request (including rate limit waits) may
            take.
        :return: The response object for successful requests, or None for unrecognised statuses.
        """
        kwargs = {"json": json, "headers": headers, "reason": reason}
        if deadline is None:
            return await self._request(route_key, major_id, method, path, **kwargs)

        try:
            with trio.fail_after(deadline):
                return await self._request(route_key, major_id, method, path, **kwargs)
        except trio.TooSlowError:
            raise RequestTimeout("{} {} did not finish within {} seconds"
                                 .format(method, path, deadline)) from None

    async def fetch(self, route: Route, **kwargs):
        """
        Makes a rate-limited request for a :class:`.Route`, returning the decoded body.

        Takes the same keyword arguments as :meth:`.HTTPClient.request`.
        """
        response = await self.request(route.key, route.major_id, route.method, route.path,
                                      **kwargs)
        if response is None:
            return None

        return self.get_response_data(response)

    # Non-generic methods
    async def get_gateway(self) -> GatewayInfo:
        """
        :return: The :class:`.GatewayInfo` with the URL of the gateway.
        """
        data = await self.fetch(Route("GET", Endpoints.GATEWAY))
        return GatewayInfo.from_dict(data)

    async def get_gateway_bot(self) -> GatewayInfo:
        """
        :return: The :class:`.GatewayInfo` with the URL and the recommended number of shards.
        """
        data = await self.fetch(Route("GET", Endpoints.GATEWAY_BOT))
        return GatewayInfo.from_dict(data)

    async def get_current_user(self) -> dict:
        """
        Gets the current user.
        """
        return await self.fetch(Route("GET", Endpoints.USER_ME))

    async def get_user(self, user_id: int) -> dict:
        """
        Gets a user from a user ID.

        :param user_id: The ID of the user to fetch.
        :return: A user dictionary.
        """
        return await self.fetch(Route("GET", Endpoints.USER_ID, user_id=user_id))

    async def get_channel(self, channel_id: int) -> dict:
        """
        Gets a channel.

        :param channel_id: The channel ID to get.
        """
        return await self.fetch(Route("GET", Endpoints.CHANNEL_BASE, channel_id=channel_id))

    async def send_message(self, channel_id: int, content: str = None, *,
                           tts: bool = False, embed: dict = None) -> dict:
        """
        Sends a message to a channel.

        :param channel_id: The ID of the channel to send to.
        :param content: The content of the message.
        :param tts: Is this message a text to speech message?
        :param embed: The embed dict to send with this message.
        """
        payload = {
            "content": content,
            "tts": tts,
            "embeds": [embed] if embed is not None else None,
        }

        route = Route("POST", Endpoints.CHANNEL_MESSAGES, channel_id=channel_id)
        return await self.fetch(route, json=payload)

    async def delete_message(self, channel_id: int, message_id: int, *, reason: str = None):
        """
        Deletes a message.

        :param channel_id: The channel ID that the message is in.
        :param message_id: The message ID of the message.
        :param reason: The audit log reason for deleting the message.
        """
        route = Route("DELETE", Endpoints.CHANNEL_MESSAGE,
                      channel_id=channel_id, message_id=message_id)
        return await self.fetch(route, reason=reason)

    async def kick_member(self, guild_id: int, member_id: int, *, reason: str = None):
        """
        Kicks a member from a guild.

        :param guild_id: The guild ID to kick in.
        :param member_id: The member ID to kick from the guild.
        :param reason: The audit log reason for the kick.
        """
        route = Route("DELETE", Endpoints.GUILD_MEMBER, guild_id=guild_id, member_id=member_id)
        return await self.fetch(route, reason=reason)
