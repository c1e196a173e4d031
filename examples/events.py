"""
An example bot that uses events.
"""

# Events are the main way of listening to things that happen to the bot.
# They are registered with the @bot.event(EventType) decorator, or with the @event() decorator on
# the methods of an object passed to bot.load_events().

# Let's make a handler object that logs all messages, and an event that greets new members.

import logging
import os

# First, the required imports
from cirrus.core.client import Client
from cirrus.core.event import EventContext, EventType, event
from cirrus.dataclasses.gateway import Ready
from cirrus.dataclasses.guild import Member
from cirrus.dataclasses.message import Message


class MessageLogger:
    # We use the decorator to designate what event we wish to listen to.
    @event(EventType.MESSAGE_CREATE)
    # Events take at least one param - the EventContext. This contains our shard ID, as well as
    # the gateway the event came from.
    async def log_message(self, ctx: EventContext, message: Message):
        # `log_message` takes a Message as its second argument, because it's a `MESSAGE_CREATE`
        # event.
        author = message.author.name if message.author is not None else "unknown"
        print("Message received: `{}` from `{}`".format(message.content, author))
        # Finally, log the shard ID.
        print("Shard: {}".format(ctx.shard_id))


bot = Client(os.environ["DISCORD_TOKEN"])
bot.load_events(MessageLogger())


@bot.event(EventType.READY)
async def ready(ctx: EventContext, payload: Ready):
    print("Logged in as {} on shard {}".format(payload.user.name, ctx.shard_id))


# Now, we add the greeting event.
@bot.event(EventType.GUILD_MEMBER_ADD)
async def greet(ctx: EventContext, member: Member):
    print("{} joined guild {}".format(member.user.name, member.guild_id))


# Now, all that is left is to run the bot.
if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    bot.run()
