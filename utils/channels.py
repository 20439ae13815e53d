import logging
import re

import discord

import exception

logger = logging.getLogger(__name__)

CHANNEL_ID_PATTERN = re.compile(r"^\d+$")


async def get_all_forum_posts(channel: discord.ForumChannel) -> list[discord.Thread]:
    """Active and archived posts of a forum channel, each post once."""
    if not isinstance(channel, discord.ForumChannel):
        raise exception.WrongChannelType(f"{channel.id} is not a forum channel")

    posts: dict[int, discord.Thread] = {thread.id: thread for thread in channel.threads}
    try:
        # the cache can miss active posts, the guild listing has all of them
        for thread in await channel.guild.active_threads():
            if thread.parent_id == channel.id:
                posts.setdefault(thread.id, thread)
        active = len(posts)
        async for thread in channel.archived_threads(limit=None):
            posts.setdefault(thread.id, thread)
    except discord.Forbidden as e:
        raise exception.AccessDenied(f"no access to posts of {channel.name}") from e
    except discord.HTTPException as e:
        raise exception.RequestFailed(f"failed to fetch forum posts: {e}") from e

    logger.info(f"Found {active} active and {len(posts) - active} archived posts in {channel.name}")
    return list(posts.values())


def location_for(channel) -> str:
    if isinstance(channel, discord.Thread) and isinstance(channel.parent, discord.ForumChannel):
        return f"forum-post-{channel.name}"
    return f"#{channel.name}"


def parse_channel_id(raw: str) -> int:
    raw = raw.strip()
    if not CHANNEL_ID_PATTERN.match(raw):
        raise exception.InvalidChannelId(f"invalid channel id: {raw}")
    return int(raw)


async def resolve_channel(bot, raw: str):
    """Channel for a user supplied id, from the cache or the API."""
    channel_id = parse_channel_id(raw)
    channel = bot.get_channel(channel_id)
    if channel is not None:
        return channel
    try:
        return await bot.fetch_channel(channel_id)
    except discord.NotFound as e:
        raise exception.ChannelNotFound(f"channel {channel_id} not found") from e
    except discord.Forbidden as e:
        raise exception.AccessDenied(f"no access to channel {channel_id}") from e
    except discord.HTTPException as e:
        raise exception.RequestFailed(f"failed to fetch channel {channel_id}: {e}") from e
