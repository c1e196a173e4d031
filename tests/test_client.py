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

from cirrus.core.client import Client
from cirrus.core.event import EventManager

pytestmark = pytest.mark.trio


async def test_make_gateway_defaults():
    client = Client("token", intents=513)
    client._gw_url = "wss://gateway.discord.gg"

    gw = client.make_gateway(1, 2)
    assert (gw.shard_id, gw.shard_count) == (1, 2)
    assert gw.events is client.events
    assert gw.intents == 513


async def test_gateway_kwargs_override_defaults():
    events = EventManager()
    client = Client("token", gateway_kwargs={"intents": 1, "events": events,
                                             "max_missed_acks": 5})
    client._gw_url = "wss://gateway.discord.gg"

    gw = client.make_gateway(0, 1)
    assert gw.intents == 1
    assert gw.events is events
    assert gw.max_missed_acks == 5
